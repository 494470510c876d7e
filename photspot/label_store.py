import logging
import sqlite3

from .errors import InvariantViolation, StorageFailure
from .utils import is_row_id

logger = logging.getLogger("PhotSpot")


class LabelStore:
    def __init__(self, conn):
        self.conn = conn

    @staticmethod
    def _row_to_label(row):
        return {"id": row["id"], "name": row["name"], "ref_count": int(row["ref_count"])}

    def find_by_name(self, name):
        row = self.conn.execute("SELECT * FROM labels WHERE name = ?", (name,)).fetchone()
        return self._row_to_label(row) if row else None

    def find_by_id(self, label_id):
        if not is_row_id(label_id):
            return None
        row = self.conn.execute("SELECT * FROM labels WHERE id = ?", (label_id,)).fetchone()
        return self._row_to_label(row) if row else None

    def scan_all(self):
        cur = self.conn.execute("SELECT * FROM labels ORDER BY id ASC")
        try:
            for row in cur:
                yield self._row_to_label(row)
        finally:
            cur.close()

    def insert_or_touch(self, name):
        """Take one reference on ``name``, creating the label if needed.

        Must run inside the catalog's write transaction; the UNIQUE(name)
        constraint rejects a second row if that is ever bypassed.
        """
        label = self.find_by_name(name)
        if label is not None:
            self.conn.execute(
                "UPDATE labels SET ref_count = ref_count + 1 WHERE id = ?",
                (label["id"],),
            )
            logger.debug("label touched: id=%s name=%r count=%d", label["id"], name, label["ref_count"] + 1)
            return label["id"]

        try:
            cur = self.conn.execute("INSERT INTO labels(name, ref_count) VALUES(?, 1)", (name,))
        except sqlite3.Error as exc:
            raise StorageFailure(f"label insert failed: {exc}") from exc
        logger.debug("label created: id=%s name=%r", cur.lastrowid, name)
        return cur.lastrowid

    def release(self, label_id):
        """Drop one reference; the row is deleted when its count reaches zero."""
        label = self.find_by_id(label_id)
        if label is None:
            raise InvariantViolation(f"release of missing label {label_id}")
        remaining = label["ref_count"] - 1
        if remaining < 0:
            raise InvariantViolation(f"label {label_id} count would go negative ({remaining})")
        if remaining == 0:
            self.conn.execute("DELETE FROM labels WHERE id = ?", (label_id,))
            logger.debug("label removed: id=%s name=%r", label_id, label["name"])
        else:
            self.conn.execute("UPDATE labels SET ref_count = ? WHERE id = ?", (remaining, label_id))
        return remaining

    def set_count(self, label_id, count):
        # Used only by reconciliation; a zero count removes the row.
        if count <= 0:
            self.conn.execute("DELETE FROM labels WHERE id = ?", (label_id,))
        else:
            self.conn.execute("UPDATE labels SET ref_count = ? WHERE id = ?", (count, label_id))

    def delete_all(self):
        return self.conn.execute("DELETE FROM labels").rowcount
