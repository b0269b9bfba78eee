import sqlite3
import json
import logging
from typing import List

from gridcalc.engine import SpreadsheetEngine
from gridcalc.errors import CorruptState

logger = logging.getLogger(__name__)

_SCHEMA = """CREATE TABLE IF NOT EXISTS sheets (
    key TEXT PRIMARY KEY,
    data_json TEXT NOT NULL DEFAULT '[]',
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
)"""


class DatabaseManager:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def get_connection(self):
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize_schema(self):
        with self.get_connection() as conn:
            conn.execute(_SCHEMA)
            conn.commit()


class SheetRepository:
    """Key-value store of serialized sheets."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def save(self, key: str, engine: SpreadsheetEngine) -> None:
        self.put_raw(key, json.dumps(engine.serialize()))
        logger.info("Saved sheet %r (%dx%d)", key, engine.grid.n_rows, engine.grid.n_cols)

    def load(self, key: str, engine: SpreadsheetEngine) -> bool:
        """Load *key* into *engine*. False when nothing is saved under it.

        Raises CorruptState (engine untouched) if the saved data is unusable.
        """
        with self.db.get_connection() as conn:
            row = conn.execute("SELECT data_json FROM sheets WHERE key = ?", (key,)).fetchone()
        if row is None:
            return False
        try:
            data = json.loads(row["data_json"])
        except json.JSONDecodeError as e:
            raise CorruptState(f"Saved sheet {key!r} is not valid JSON") from e
        engine.deserialize(data)
        return True

    def list_keys(self) -> List[str]:
        with self.db.get_connection() as conn:
            rows = conn.execute("SELECT key FROM sheets ORDER BY key ASC").fetchall()
            return [r["key"] for r in rows]

    def delete(self, key: str) -> bool:
        with self.db.get_connection() as conn:
            cursor = conn.execute("DELETE FROM sheets WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0

    def put_raw(self, key: str, data_json: str) -> None:
        """Store already-encoded data as-is."""
        sql = "INSERT OR REPLACE INTO sheets (key, data_json, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)"
        with self.db.get_connection() as conn:
            conn.execute(sql, (key, data_json))
            conn.commit()
