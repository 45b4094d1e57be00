# src/tokenvest/database/storage_manager.py
"""
SQLite-backed document store for vault state.

Values are serialized to JSON, so any structure made of dicts, lists,
strings and numbers can be stored under a string key.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from tokenvest.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class StorageManager:
    """
    Named JSON documents in one SQLite table.

    Usable as a context manager; the connection is closed on exit.
    """

    def __init__(self, db_path: Path):
        """
        Open (or create) the database file and the key/value table.

        Args:
            db_path (Path): The path to the SQLite database file. The directory
                            will be created if it does not exist.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: sqlite3.Connection | None = None

        try:
            self._conn = sqlite3.connect(self.db_path, isolation_level="EXCLUSIVE")
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
            self._create_table()
        except sqlite3.Error as e:
            logger.error(
                "Database connection failed",
                extra={"event": "storage.connect_failed", "path": str(self.db_path), "error": str(e)},
            )
            raise StorageError(f"Database connection failed: {e}") from e

    def _create_table(self):
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS vault_documents (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    def set(self, key: str, value: Any):
        """
        Insert or replace the document stored under ``key``.

        Args:
            key (str): The unique key for the data.
            value (Any): JSON-serializable object to store.
        """
        try:
            value_json = json.dumps(value)
            with self._conn:
                self._conn.execute(
                    """
                    INSERT INTO vault_documents (key, value)
                    VALUES (?, ?)
                    ON CONFLICT(key) DO UPDATE SET value = excluded.value
                    """,
                    (key, value_json),
                )
        except (sqlite3.Error, TypeError) as e:
            logger.error(
                "Failed to store key",
                extra={"event": "storage.set_failed", "key": key, "error": str(e)},
            )
            raise StorageError(f"Failed to set key '{key}': {e}") from e

    def get(self, key: str, default: Any | None = None) -> Any:
        """
        Retrieves a value by its key.

        Returns:
            Any: The deserialized object, or ``default`` if the key is absent.
        """
        try:
            cursor = self._conn.execute("SELECT value FROM vault_documents WHERE key = ?", (key,))
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to get key '{key}': {e}") from e
        if row:
            return json.loads(row[0])
        return default

    def delete(self, key: str) -> bool:
        try:
            with self._conn:
                cursor = self._conn.execute("DELETE FROM vault_documents WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to delete key '{key}': {e}") from e
        return cursor.rowcount > 0

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
