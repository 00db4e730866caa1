"""Device-local fallback storage.

The whole collection is kept as a single JSON array under one key of a
SQLite key-value table, so reads and writes always move the full set.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from ..errors import LocalStoreError

logger = logging.getLogger(__name__)

DEFAULT_KEY = "cravingLogs"

KV_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


class LocalStore:
    """Durable key-value slot holding the serialized record collection."""

    def __init__(self, db_path: str | Path, key: str = DEFAULT_KEY):
        """Initialize the local store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
            key: Key under which the collection is stored.
        """
        self.db_path = Path(db_path).expanduser()
        self.key = key
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._conn is not None:
            return

        try:
            if str(self.db_path) != ":memory:":
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.executescript(KV_SCHEMA)
            self._conn.commit()
        except (OSError, sqlite3.Error) as e:
            self._conn = None
            raise LocalStoreError(f"Cannot open local store {self.db_path}: {e}") from e

        logger.info(f"LocalStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("LocalStore connection closed")

    def _ensure_connected(self) -> sqlite3.Connection:
        """Ensure we have a database connection."""
        if self._conn is None:
            self.connect()
        return self._conn

    def read_all(self) -> list[Any]:
        """Read the stored collection.

        Returns:
            Raw stored items, unvalidated. Empty if nothing was stored yet.

        Raises:
            LocalStoreError: If the stored payload is corrupt or unreadable.
        """
        conn = self._ensure_connected()

        try:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (self.key,)
            ).fetchone()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Cannot read local store: {e}") from e

        if row is None:
            return []

        try:
            items = json.loads(row[0])
        except (TypeError, ValueError) as e:
            raise LocalStoreError(f"Corrupt payload under {self.key!r}: {e}") from e

        if not isinstance(items, list):
            raise LocalStoreError(
                f"Expected a JSON array under {self.key!r}, got {type(items).__name__}"
            )
        return items

    def write_all(self, items: list[Any]) -> None:
        """Replace the stored collection.

        Raises:
            LocalStoreError: If the items cannot be serialized or written.
        """
        conn = self._ensure_connected()

        try:
            payload = json.dumps(items)
        except (TypeError, ValueError) as e:
            raise LocalStoreError(f"Cannot serialize records: {e}") from e

        try:
            conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (self.key, payload),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Cannot write local store: {e}") from e

        logger.debug(f"Wrote {len(items)} items under {self.key!r}")

    def clear(self) -> None:
        """Delete the stored collection."""
        conn = self._ensure_connected()
        try:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (self.key,))
            conn.commit()
        except sqlite3.Error as e:
            raise LocalStoreError(f"Cannot clear local store: {e}") from e
        logger.info(f"Cleared local collection {self.key!r}")
