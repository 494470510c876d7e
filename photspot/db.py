import base64
import logging
import os
import sqlite3
import threading
from contextlib import contextmanager

logger = logging.getLogger("PhotSpot")

from .constants import MAX_ITEMS, SCHEMA_VERSION, UNDEFINED_LABEL
from .errors import (
    CapacityExceeded,
    DuplicateItem,
    InvariantViolation,
    NotFound,
    StorageFailure,
)
from .item_store import ItemStore
from .label_store import LabelStore
from .paths import get_db_path
from .schema import SCHEMA_SQL
from .thumbnail import encode_thumbnail
from .utils import normalize_text, now_iso, to_float


class ItemScan:
    """Restartable lazy view over the item table.

    Each iteration opens its own connection and reads a single snapshot, so a
    scan never sees half of a concurrent write.
    """

    def __init__(self, catalog, include_thumb=False):
        self._catalog = catalog
        self._include_thumb = include_thumb

    def __iter__(self):
        with self._catalog._read() as conn:
            yield from ItemStore(conn).scan_all(include_thumb=self._include_thumb)


class PhotSpotCatalog:
    _instance = None
    _lock = threading.Lock()
    # Serializes every multi-step write across all catalog instances in the process.
    _write_lock = threading.RLock()

    @classmethod
    def get(cls):
        with cls._lock:
            if cls._instance is None:
                cls._instance = cls()
            return cls._instance

    def __init__(self, db_path=None, capacity=MAX_ITEMS):
        self.db_path = db_path or get_db_path()
        self.capacity = int(capacity)
        os.makedirs(os.path.dirname(os.path.abspath(self.db_path)), exist_ok=True)
        self._init_db()

    def _connect(self):
        try:
            conn = sqlite3.connect(self.db_path, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA busy_timeout = 5000")
        except sqlite3.Error as exc:
            raise StorageFailure(f"cannot open {self.db_path}: {exc}") from exc
        return conn

    def _init_db(self):
        conn = self._connect()
        try:
            conn.executescript(SCHEMA_SQL)
            conn.execute(
                "INSERT OR REPLACE INTO meta(key,value) VALUES('schema_version', ?)",
                (SCHEMA_VERSION,),
            )
        except sqlite3.Error as exc:
            raise StorageFailure(f"schema init failed: {exc}") from exc
        finally:
            conn.close()
        self.reconcile_labels()

    @contextmanager
    def _write(self):
        with self._write_lock:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except BaseException as exc:
                    conn.rollback()
                    if isinstance(exc, InvariantViolation):
                        logger.error("invariant violated, transaction rolled back: %s", exc)
                    raise
                conn.commit()
            except sqlite3.Error as exc:
                raise StorageFailure(str(exc)) from exc
            finally:
                conn.close()

    @contextmanager
    def _read(self):
        conn = self._connect()
        try:
            # Deferred transaction pins one WAL snapshot for multi-statement reads.
            conn.execute("BEGIN")
            try:
                yield conn
            finally:
                conn.rollback()
        except sqlite3.Error as exc:
            raise StorageFailure(str(exc)) from exc
        finally:
            conn.close()

    @staticmethod
    def _normalize_candidate(candidate):
        candidate = candidate or {}
        thumb_url = normalize_text(candidate.get("thumb_url", ""))
        if not thumb_url:
            raise ValueError("thumb_url is required")
        return {
            "title": normalize_text(candidate.get("title", "")),
            "author": normalize_text(candidate.get("author", "")),
            "thumb_url": thumb_url,
            "photo_url": normalize_text(candidate.get("photo_url", "")),
            "latitude": to_float(candidate.get("latitude"), "latitude"),
            "longitude": to_float(candidate.get("longitude"), "longitude"),
            "region": normalize_text(candidate.get("region", "")),
        }

    # ── catalog operations ──

    def add_item(self, candidate, thumbnail=None):
        record = self._normalize_candidate(candidate)
        with self._write() as conn:
            items = ItemStore(conn)
            labels = LabelStore(conn)

            count = items.count()
            if count >= self.capacity:
                raise CapacityExceeded(f"catalog is full ({count}/{self.capacity})")
            if items.find_by_natural_key(record["thumb_url"]) is not None:
                raise DuplicateItem(f"item already stored: {record['thumb_url']}")

            if thumbnail is not None:
                record["thumb_data"] = encode_thumbnail(thumbnail)

            record["label_id"] = labels.insert_or_touch(UNDEFINED_LABEL)
            record["created_at"] = now_iso()
            item_id = items.insert(record)

        logger.info("item added: id=%s thumb_url=%s", item_id, record["thumb_url"])
        return item_id

    def retag_item(self, item_id, label_name):
        name = normalize_text(label_name)
        if not name:
            raise ValueError("label name is required")

        with self._write() as conn:
            items = ItemStore(conn)
            labels = LabelStore(conn)

            item = items.find_by_id(item_id)
            if item is None:
                raise NotFound(f"item {item_id} not found")
            current = labels.find_by_id(item["label_id"])
            if current is None:
                raise InvariantViolation(f"item {item_id} references missing label {item['label_id']}")
            if current["name"] == name:
                return current["id"]

            # Acquire, repoint, then release: the item never points at a deleted row.
            new_id = labels.insert_or_touch(name)
            items.update_label_ref(item_id, new_id)
            labels.release(current["id"])

        logger.info("item retagged: id=%s %r -> %r (label_id=%s)", item_id, current["name"], name, new_id)
        return new_id

    def delete_item(self, item_id):
        with self._write() as conn:
            items = ItemStore(conn)
            labels = LabelStore(conn)

            item = items.find_by_id(item_id)
            if item is None:
                raise NotFound(f"item {item_id} not found")
            items.delete(item_id)
            labels.release(item["label_id"])

        logger.info("item deleted: id=%s", item_id)

    def get_display_label(self, item_id):
        with self._read() as conn:
            item = ItemStore(conn).find_by_id(item_id)
            if item is None:
                return None
            label = LabelStore(conn).find_by_id(item["label_id"])
        if label is None or label["name"] == UNDEFINED_LABEL:
            return None
        return label["name"]

    def purge_all(self):
        with self._write() as conn:
            removed_items = ItemStore(conn).delete_all()
            removed_labels = LabelStore(conn).delete_all()
        logger.info("catalog purged: items=%d labels=%d", removed_items, removed_labels)
        return {"items": removed_items, "labels": removed_labels}

    # ── read access ──

    def scan_items(self, include_thumb=False):
        return ItemScan(self, include_thumb=include_thumb)

    def scan_labels(self):
        with self._read() as conn:
            return list(LabelStore(conn).scan_all())

    def count_items(self):
        with self._read() as conn:
            return ItemStore(conn).count()

    def get_item(self, item_id, include_thumb=False):
        with self._read() as conn:
            item = ItemStore(conn).find_by_id(item_id)
        if item is None:
            raise NotFound(f"item {item_id} not found")
        if not include_thumb:
            item.pop("thumb_data", None)
        return item

    def get_thumbnail(self, item_id):
        item = self.get_item(item_id, include_thumb=True)
        return item["thumb_data"]

    # ── maintenance ──

    def reconcile_labels(self):
        """Recompute label counts from the item table and repair any drift.

        Labels nobody references are removed, drifted counts are rewritten and
        items pointing at a missing label are moved to the undefined label.
        """
        fixed = removed = repaired = 0
        with self._write() as conn:
            items = ItemStore(conn)
            labels = LabelStore(conn)

            actual = {
                row["label_id"]: int(row["n"])
                for row in conn.execute("SELECT label_id, COUNT(*) AS n FROM items GROUP BY label_id")
            }
            for label in list(labels.scan_all()):
                n = actual.pop(label["id"], 0)
                if n == label["ref_count"]:
                    continue
                labels.set_count(label["id"], n)
                if n == 0:
                    removed += 1
                else:
                    fixed += 1

            for missing_id in actual:
                rows = conn.execute("SELECT id FROM items WHERE label_id = ?", (missing_id,)).fetchall()
                for row in rows:
                    items.update_label_ref(row["id"], labels.insert_or_touch(UNDEFINED_LABEL))
                    repaired += 1

        result = {"fixed": fixed, "removed": removed, "repaired_items": repaired}
        if fixed or removed or repaired:
            logger.warning("label counts repaired: %s", result)
        return result

    def check_integrity(self):
        problems = []
        with self._read() as conn:
            label_rows = list(LabelStore(conn).scan_all())
            actual = {
                row["label_id"]: int(row["n"])
                for row in conn.execute("SELECT label_id, COUNT(*) AS n FROM items GROUP BY label_id")
            }
            item_count = ItemStore(conn).count()

        names = set()
        for label in label_rows:
            if label["ref_count"] <= 0:
                problems.append(f"label {label['id']} has count {label['ref_count']}")
            n = actual.pop(label["id"], 0)
            if n != label["ref_count"]:
                problems.append(f"label {label['id']} count {label['ref_count']} != {n} referencing items")
            if label["name"] in names:
                problems.append(f"label name {label['name']!r} stored twice")
            names.add(label["name"])
        for missing_id, n in sorted(actual.items()):
            problems.append(f"{n} item(s) reference missing label {missing_id}")
        if item_count > self.capacity:
            problems.append(f"{item_count} items exceed capacity {self.capacity}")
        return problems

    def export_bundle(self):
        items = []
        with self._read() as conn:
            for item in ItemStore(conn).scan_all(include_thumb=True):
                blob = item.pop("thumb_data")
                item["thumb_b64"] = base64.b64encode(blob).decode("ascii") if blob else ""
                items.append(item)
            labels = list(LabelStore(conn).scan_all())
        return {
            "version": SCHEMA_VERSION,
            "exported_at": now_iso(),
            "items": items,
            "labels": labels,
        }


__all__ = ["ItemScan", "PhotSpotCatalog"]
