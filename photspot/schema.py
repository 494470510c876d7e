SCHEMA_SQL = r"""
PRAGMA foreign_keys = ON;
PRAGMA journal_mode = WAL;

CREATE TABLE IF NOT EXISTS meta (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);

-- One row per label name in use; a row whose count would reach zero is deleted.
CREATE TABLE IF NOT EXISTS labels (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  name TEXT NOT NULL UNIQUE,
  ref_count INTEGER NOT NULL CHECK (ref_count >= 1)
);

CREATE TABLE IF NOT EXISTS items (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  title TEXT NOT NULL DEFAULT '',
  author TEXT NOT NULL DEFAULT '',
  thumb_url TEXT NOT NULL UNIQUE,
  photo_url TEXT NOT NULL DEFAULT '',
  latitude REAL NOT NULL DEFAULT 0.0,
  longitude REAL NOT NULL DEFAULT 0.0,
  thumb_data BLOB,
  label_id INTEGER NOT NULL,
  region TEXT NOT NULL DEFAULT '',
  created_at TEXT NOT NULL,
  FOREIGN KEY (label_id) REFERENCES labels(id)
);

CREATE INDEX IF NOT EXISTS idx_items_label ON items(label_id);
"""
