from __future__ import annotations

import logging
import sqlite3
import threading
import time
import uuid

from tweetcord.models.types import RunOutcome
from tweetcord.storage.watermark import WatermarkStore

logger = logging.getLogger(__name__)

WATERMARK_KEY = "last_item_id"


class SqliteWatermarkStore(WatermarkStore):
    """Watermark plus a history of run outcomes in a local sqlite file."""

    def __init__(self, db_path: str = "tweetcord.db", key: str = WATERMARK_KEY) -> None:
        self._db_path = db_path
        self._key = key
        self.name = f"sqlite:{db_path}"
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS watermarks (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS runs (
                    id TEXT PRIMARY KEY,
                    status TEXT,
                    message TEXT,
                    items_processed INTEGER,
                    items_failed INTEGER,
                    newest_item_id TEXT,
                    timestamp TEXT
                )
                """
            )
            self._conn.commit()

    def _load(self) -> str | None:
        with self._lock:
            cursor = self._conn.execute(
                "SELECT value FROM watermarks WHERE key = ?",
                (self._key,),
            )
            row = cursor.fetchone()
        return row["value"] if row is not None else None

    def _save(self, item_id: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO watermarks (key, value, updated_at) VALUES (?, ?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, "
                "updated_at = excluded.updated_at",
                (self._key, item_id, time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())),
            )
            self._conn.commit()

    def record_run(self, outcome: RunOutcome) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO runs "
                "(id, status, message, items_processed, items_failed, newest_item_id, timestamp) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    str(uuid.uuid4()),
                    outcome.status.value,
                    outcome.message,
                    outcome.items_processed,
                    outcome.items_failed,
                    outcome.newest_item_id,
                    time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
                ),
            )
            self._conn.commit()

    def recent_runs(self, limit: int = 10) -> list[dict]:
        with self._lock:
            cursor = self._conn.execute(
                "SELECT status, message, items_processed, items_failed, newest_item_id, timestamp "
                "FROM runs ORDER BY timestamp DESC, rowid DESC LIMIT ?",
                (limit,),
            )
            rows = cursor.fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        with self._lock:
            try:
                self._conn.commit()
                self._conn.close()
                logger.info("Database connection closed")
            except sqlite3.Error as exc:
                logger.error("Error closing database: %s", exc)
