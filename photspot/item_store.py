import sqlite3

from .errors import DuplicateItem, NotFound, StorageFailure
from .utils import is_row_id, now_iso

_LIGHT_COLUMNS = (
    "id,title,author,thumb_url,photo_url,latitude,longitude,label_id,region,created_at,"
    "thumb_data IS NOT NULL AS has_thumb"
)


class ItemStore:
    """Item table primitives on a caller-owned connection.

    Nothing here touches label counts; keeping ``items.label_id`` and
    ``labels.ref_count`` in step is the catalog's job.
    """

    def __init__(self, conn):
        self.conn = conn

    @staticmethod
    def _row_to_item(row):
        keys = row.keys()
        item = {
            "id": row["id"],
            "title": row["title"],
            "author": row["author"],
            "thumb_url": row["thumb_url"],
            "photo_url": row["photo_url"],
            "latitude": float(row["latitude"]),
            "longitude": float(row["longitude"]),
            "label_id": row["label_id"],
            "region": row["region"],
            "created_at": row["created_at"],
        }
        if "thumb_data" in keys:
            blob = row["thumb_data"]
            item["thumb_data"] = bytes(blob) if blob is not None else None
            item["has_thumb"] = blob is not None
        else:
            item["has_thumb"] = bool(row["has_thumb"])
        return item

    def find_by_natural_key(self, thumb_url):
        row = self.conn.execute("SELECT * FROM items WHERE thumb_url = ?", (thumb_url,)).fetchone()
        return self._row_to_item(row) if row else None

    def find_by_id(self, item_id):
        if not is_row_id(item_id):
            return None
        row = self.conn.execute("SELECT * FROM items WHERE id = ?", (item_id,)).fetchone()
        return self._row_to_item(row) if row else None

    def scan_all(self, include_thumb=False):
        columns = "*" if include_thumb else _LIGHT_COLUMNS
        cur = self.conn.execute(f"SELECT {columns} FROM items ORDER BY id ASC")
        try:
            for row in cur:
                yield self._row_to_item(row)
        finally:
            cur.close()

    def count(self):
        return int(self.conn.execute("SELECT COUNT(*) FROM items").fetchone()[0])

    def insert(self, record):
        thumb_data = record.get("thumb_data")
        try:
            cur = self.conn.execute(
                """
                INSERT INTO items(
                  title,author,thumb_url,photo_url,latitude,longitude,
                  thumb_data,label_id,region,created_at
                ) VALUES(?,?,?,?,?,?,?,?,?,?)
                """,
                (
                    record.get("title", ""),
                    record.get("author", ""),
                    record["thumb_url"],
                    record.get("photo_url", ""),
                    float(record.get("latitude", 0.0)),
                    float(record.get("longitude", 0.0)),
                    sqlite3.Binary(bytes(thumb_data)) if thumb_data else None,
                    record["label_id"],
                    record.get("region", ""),
                    record.get("created_at") or now_iso(),
                ),
            )
        except sqlite3.IntegrityError as exc:
            if "items.thumb_url" in str(exc):
                raise DuplicateItem(f"item already stored: {record['thumb_url']}") from exc
            raise StorageFailure(f"item insert rejected: {exc}") from exc
        except sqlite3.Error as exc:
            raise StorageFailure(f"item insert failed: {exc}") from exc
        return cur.lastrowid

    def update_label_ref(self, item_id, label_id):
        if not is_row_id(item_id):
            raise NotFound(f"item {item_id} not found")
        cur = self.conn.execute("UPDATE items SET label_id = ? WHERE id = ?", (label_id, item_id))
        if cur.rowcount == 0:
            raise NotFound(f"item {item_id} not found")

    def delete(self, item_id):
        if not is_row_id(item_id):
            raise NotFound(f"item {item_id} not found")
        cur = self.conn.execute("DELETE FROM items WHERE id = ?", (item_id,))
        if cur.rowcount == 0:
            raise NotFound(f"item {item_id} not found")

    def delete_all(self):
        return self.conn.execute("DELETE FROM items").rowcount
