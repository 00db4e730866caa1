"""SQLite storage for the remote collection service."""

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from ..records import format_timestamp

logger = logging.getLogger(__name__)

COLLECTION_SCHEMA = """
-- Append-only craving records, one collection per app and identity
CREATE TABLE IF NOT EXISTS cravings (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    collection TEXT NOT NULL,
    duration INTEGER NOT NULL,
    date TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_cravings_collection ON cravings(collection, seq);
"""


def collection_key(app_id: str, identity: str) -> str:
    return f"artifacts/{app_id}/users/{identity}/cravings"


class CollectionStore:
    """Append-only per-identity collections with server-assigned timestamps."""

    def __init__(
        self,
        db_path: str | Path,
        clock: Callable[[], datetime] | None = None,
    ):
        self.db_path = Path(db_path).expanduser()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Initialize database connection and schema."""
        if self._conn is not None:
            return
        if str(self.db_path) != ":memory:":
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(COLLECTION_SCHEMA)
        self._conn.commit()
        logger.info(f"CollectionStore connected to {self.db_path}")

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _ensure_connected(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    def append(self, app_id: str, identity: str, duration: int) -> dict[str, Any]:
        """Append a record, stamping it with the server clock.

        Returns:
            The stored item.
        """
        conn = self._ensure_connected()

        item = {
            "id": uuid.uuid4().hex,
            "duration": duration,
            "date": format_timestamp(self._clock()),
        }
        conn.execute(
            "INSERT INTO cravings (id, collection, duration, date) VALUES (?, ?, ?, ?)",
            (item["id"], collection_key(app_id, identity), duration, item["date"]),
        )
        conn.commit()

        logger.debug(f"Appended {item['id']} to {collection_key(app_id, identity)}")
        return item

    def snapshot(self, app_id: str, identity: str) -> tuple[int, list[dict[str, Any]]]:
        """Read a whole collection.

        Returns:
            Tuple of (version, items oldest first). The version changes
            whenever the collection does.
        """
        conn = self._ensure_connected()

        cursor = conn.execute(
            """
            SELECT seq, id, duration, date
            FROM cravings
            WHERE collection = ?
            ORDER BY seq ASC
            """,
            (collection_key(app_id, identity),),
        )

        items = []
        version = 0
        for row in cursor:
            version = row["seq"]
            items.append(
                {"id": row["id"], "duration": row["duration"], "date": row["date"]}
            )
        return version, items
