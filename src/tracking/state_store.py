"""SQLite-backed key/value state store for session logs and pending uploads."""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from ..config import Config

__all__ = ["SqliteStateStore"]

logger = logging.getLogger(__name__)


class SqliteStateStore:
    """Persistent string-keyed store for JSON-serializable values.

    Mirrors the semantics of an editor's global state: ``get`` returns None for
    unknown keys, ``update`` overwrites (last write wins) and ``update(key, None)``
    removes the key.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file. Defaults to data dir.
        """
        if db_path is None:
            db_path = Config.get_data_dir() / "state.db"

        self.db_path = db_path
        self._local = threading.local()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "connection"):
            self._local.connection = sqlite3.connect(str(self.db_path))
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for database cursor."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._cursor() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def get(self, key: str) -> Any:
        """Get the value stored under ``key``, or None."""
        with self._cursor() as cursor:
            cursor.execute("SELECT value FROM state WHERE key = ?", (key,))
            row = cursor.fetchone()

        if row is None:
            return None
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring undecodable value for {key}: {e}")
            return None

    def update(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key``; None deletes the key."""
        with self._cursor() as cursor:
            if value is None:
                cursor.execute("DELETE FROM state WHERE key = ?", (key,))
                return

            now = datetime.now(timezone.utc).isoformat()
            cursor.execute(
                """
                INSERT INTO state (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value), now),
            )

    def keys(self) -> list[str]:
        """List every stored key."""
        with self._cursor() as cursor:
            cursor.execute("SELECT key FROM state ORDER BY key ASC")
            return [row["key"] for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "connection"):
            self._local.connection.close()
            del self._local.connection
