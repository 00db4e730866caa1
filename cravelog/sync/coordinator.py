"""Coordinates the remote and local stores behind one observable record list.

Exactly one store is authoritative at a time. While the remote store is
authoritative every pushed snapshot replaces the record list; after any
remote failure the coordinator falls back to the local store, replaces the
list with the local collection and reports a degraded-mode notice. No public
method raises.
"""

import itertools
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from numbers import Real
from typing import Any, Callable

from ..errors import LocalStoreError
from ..records import LogRecord, validate_record, validate_records
from ..storage.local_store import LocalStore
from ..storage.remote_store import RemoteStore, Unsubscribe

logger = logging.getLogger(__name__)

DEGRADED_MESSAGE = "sync degraded, using local data"


class Authority(Enum):
    """Store currently treated as the source of truth."""

    REMOTE = "remote"
    LOCAL = "local"


class SyncErrorKind(Enum):
    REMOTE_SUBSCRIBE = "remote_subscribe"
    REMOTE_WRITE = "remote_write"


@dataclass(frozen=True)
class SyncError:
    """Non-fatal condition reported to observers after a fallback."""

    kind: SyncErrorKind
    message: str
    detail: str | None = None


RecordsObserver = Callable[[list[LogRecord]], None]
ErrorObserver = Callable[[SyncError], None]


class SyncCoordinator:
    """Owns the canonical record list and decides which store backs it."""

    def __init__(
        self,
        local: LocalStore,
        remote: RemoteStore | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the coordinator.

        Args:
            local: Fallback store, always available.
            remote: Authoritative store, or None when not configured.
            clock: Source of device timestamps for local records.
        """
        self.local = local
        self.remote = remote
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._identity: str | None = None
        self._authority = Authority.LOCAL
        self._records: list[LogRecord] = []
        self._error: SyncError | None = None

        self._remote_unsubscribe: Unsubscribe | None = None
        # Bumped on every authority change so stale remote callbacks are ignored
        self._generation = 0

        self._observers: dict[int, tuple[RecordsObserver, ErrorObserver | None]] = {}
        self._tokens = itertools.count(1)

    @property
    def identity(self) -> str | None:
        return self._identity

    @property
    def authority(self) -> Authority:
        return self._authority

    @property
    def records(self) -> list[LogRecord]:
        """Current records, newest first."""
        return list(self._records)

    @property
    def error(self) -> SyncError | None:
        """Degraded-mode notice, if the session fell back to local data."""
        return self._error

    # ==================== Identity transitions ====================

    def on_identity_available(self, identity: str) -> None:
        """Switch to the remote store for ``identity``.

        Falls back to local data if no remote store is configured or the
        subscription cannot be opened.
        """
        self._identity = identity

        if self.remote is None:
            logger.info("No remote store configured, using local data")
            self._error = None
            self._use_local()
            return

        self._cancel_remote()
        self._authority = Authority.REMOTE
        self._error = None
        generation = self._generation

        def on_snapshot(items: list[Any]) -> None:
            if generation != self._generation:
                return
            try:
                records = validate_records(items)
            except Exception as e:
                logger.error(f"Error processing remote snapshot: {e}")
                self._fall_back(SyncErrorKind.REMOTE_SUBSCRIBE, e)
                return
            self._set_records(records)

        def on_error(error: Exception) -> None:
            if generation != self._generation:
                return
            logger.error(f"Remote subscription failed: {error}")
            self._fall_back(SyncErrorKind.REMOTE_SUBSCRIBE, error)

        try:
            unsubscribe = self.remote.subscribe(identity, on_snapshot, on_error)
        except Exception as e:
            logger.error(f"Cannot subscribe to remote store: {e}")
            if generation == self._generation:
                self._fall_back(SyncErrorKind.REMOTE_SUBSCRIBE, e)
            return

        if generation == self._generation:
            self._remote_unsubscribe = unsubscribe
            logger.info(f"Remote store authoritative for identity {identity}")
        else:
            # The subscription already failed synchronously
            unsubscribe()

    def on_identity_unavailable(self) -> None:
        """Switch to local-only mode."""
        self._identity = None
        self._error = None
        self._use_local()

    # ==================== Appending ====================

    async def append(self, duration_ms: int) -> LogRecord | None:
        """Log a resistance duration.

        Non-positive durations are ignored. Remote writes surface through the
        next pushed snapshot; local writes are published immediately.

        Returns:
            The record created locally, or None for remote writes and no-ops.
        """
        if (
            isinstance(duration_ms, bool)
            or not isinstance(duration_ms, Real)
            or not math.isfinite(duration_ms)
            or int(duration_ms) <= 0
        ):
            logger.debug(f"Invalid duration {duration_ms!r}, not logging")
            return None
        duration_ms = int(duration_ms)

        if self._authority is Authority.REMOTE and self._identity is not None:
            generation = self._generation
            try:
                item_id = await self.remote.write(self._identity, duration_ms)
            except Exception as e:
                logger.error(f"Remote write failed: {e}")
                if (
                    generation == self._generation
                    and self._authority is Authority.REMOTE
                ):
                    self._fall_back(SyncErrorKind.REMOTE_WRITE, e)
                return self._append_local(duration_ms)
            logger.debug(f"Logged {duration_ms}ms remotely as {item_id}")
            return None

        return self._append_local(duration_ms)

    def _append_local(self, duration_ms: int) -> LogRecord | None:
        record = LogRecord(
            id=uuid.uuid4().hex,
            duration_ms=duration_ms,
            occurred_at=self._clock(),
        )

        try:
            stored = self.local.read_all()
        except LocalStoreError as e:
            logger.error(f"Error loading local records, starting over: {e}")
            stored = []

        updated = [record.to_dict(), *stored]
        try:
            self.local.write_all(updated)
        except LocalStoreError as e:
            logger.error(f"Error saving to local store: {e}")
            return None

        logger.debug(f"Logged {duration_ms}ms locally as {record.id}")
        if self._authority is Authority.LOCAL:
            self._set_records(validate_records(updated))
        # Stored timestamps carry millisecond precision
        return validate_record(record.to_dict())

    # ==================== Observers ====================

    def subscribe(
        self,
        on_records: RecordsObserver,
        on_error: ErrorObserver | None = None,
    ) -> Callable[[], None]:
        """Register an observer.

        The observer immediately receives the current records, then every
        replacement. ``on_error`` receives degraded-mode notices.

        Returns:
            Function that removes exactly this registration.
        """
        token = next(self._tokens)
        self._observers[token] = (on_records, on_error)

        self._call(on_records, self.records)
        if on_error is not None and self._error is not None:
            self._call(on_error, self._error)

        def unsubscribe() -> None:
            self._observers.pop(token, None)

        return unsubscribe

    def close(self) -> None:
        """Cancel the remote subscription and drop all observers."""
        self._cancel_remote()
        self._observers.clear()

    # ==================== Internals ====================

    def _cancel_remote(self) -> None:
        self._generation += 1
        if self._remote_unsubscribe is not None:
            unsubscribe, self._remote_unsubscribe = self._remote_unsubscribe, None
            try:
                unsubscribe()
            except Exception as e:
                logger.warning(f"Error cancelling remote subscription: {e}")

    def _use_local(self) -> None:
        self._cancel_remote()
        self._authority = Authority.LOCAL
        self._set_records(self._load_local())

    def _fall_back(self, kind: SyncErrorKind, cause: Exception) -> None:
        logger.warning(f"Falling back to local data after {kind.value} failure")
        self._use_local()
        self._error = SyncError(kind=kind, message=DEGRADED_MESSAGE, detail=str(cause))
        for _, on_error in list(self._observers.values()):
            if on_error is not None:
                self._call(on_error, self._error)

    def _load_local(self) -> list[LogRecord]:
        try:
            return validate_records(self.local.read_all())
        except LocalStoreError as e:
            logger.error(f"Error loading from local store: {e}")
            return []

    def _set_records(self, records: list[LogRecord]) -> None:
        self._records = records
        for on_records, _ in list(self._observers.values()):
            self._call(on_records, list(records))

    @staticmethod
    def _call(callback: Callable[[Any], None], value: Any) -> None:
        try:
            callback(value)
        except Exception as e:
            logger.exception(f"Observer raised: {e}")
