"""Remote authoritative store interface.

A remote store holds one append-only collection per identity and pushes the
full collection to subscribers whenever it changes.
"""

import itertools
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable

from ..errors import RemoteSubscribeError, RemoteWriteError
from ..records import format_timestamp

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[list[dict[str, Any]]], None]
ErrorCallback = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class RemoteStore(ABC):
    """Authoritative per-identity collection with push notifications."""

    @abstractmethod
    def subscribe(
        self,
        identity: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        """Listen to an identity's collection.

        ``on_snapshot`` receives the full collection after subscribing and
        after every mutation. ``on_error`` is called at most once, after which
        no more snapshots are delivered.

        Returns:
            Function that cancels the subscription.

        Raises:
            RemoteSubscribeError: If the subscription cannot be opened.
        """

    @abstractmethod
    async def write(self, identity: str, duration_ms: int) -> str:
        """Append one record; the store assigns its id and timestamp.

        Returns:
            Id of the created item.

        Raises:
            RemoteWriteError: If the write failed.
        """

    async def close(self) -> None:
        """Release any resources held by the store."""


class InMemoryRemoteStore(RemoteStore):
    """In-process remote store.

    Snapshots are pushed synchronously, which makes delivery order
    deterministic. ``fail_subscribe`` and ``fail_writes`` simulate an
    unreachable backend.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._collections: dict[str, list[dict[str, Any]]] = {}
        self._subscribers: dict[int, tuple[str, SnapshotCallback, ErrorCallback]] = {}
        self._ids = itertools.count(1)
        self.fail_subscribe = False
        self.fail_writes = False

    def subscribe(
        self,
        identity: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        if self.fail_subscribe:
            raise RemoteSubscribeError("Remote store unreachable")

        token = next(self._ids)
        self._subscribers[token] = (identity, on_snapshot, on_error)
        logger.debug(f"Subscriber {token} listening to {identity}")
        on_snapshot(self.snapshot(identity))

        def unsubscribe() -> None:
            self._subscribers.pop(token, None)

        return unsubscribe

    async def write(self, identity: str, duration_ms: int) -> str:
        if self.fail_writes:
            raise RemoteWriteError("Remote store unreachable")

        item = {
            "id": uuid.uuid4().hex,
            "duration": duration_ms,
            "date": format_timestamp(self._clock()),
        }
        self._collections.setdefault(identity, []).append(item)
        self._publish(identity)
        return item["id"]

    def snapshot(self, identity: str) -> list[dict[str, Any]]:
        """Copy of an identity's collection in insertion order."""
        return [
            dict(item) if isinstance(item, dict) else item
            for item in self._collections.get(identity, [])
        ]

    def insert_raw(self, identity: str, item: Any) -> None:
        """Store an item as-is, bypassing write validation."""
        self._collections.setdefault(identity, []).append(item)
        self._publish(identity)

    def fail(self, identity: str, error: Exception) -> None:
        """Deliver an error to an identity's subscribers and drop them."""
        for token, (sub_identity, _, on_error) in list(self._subscribers.items()):
            if sub_identity == identity:
                del self._subscribers[token]
                on_error(error)

    def subscriber_count(self, identity: str | None = None) -> int:
        """Number of open subscriptions, optionally for one identity."""
        return sum(
            1
            for sub_identity, _, _ in self._subscribers.values()
            if identity is None or sub_identity == identity
        )

    def _publish(self, identity: str) -> None:
        for sub_identity, on_snapshot, _ in list(self._subscribers.values()):
            if sub_identity == identity:
                on_snapshot(self.snapshot(identity))
