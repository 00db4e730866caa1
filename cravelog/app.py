"""Wires configuration, stores, coordinator and timer together."""

import asyncio
import logging
from typing import Any, Callable

from .config import Config
from .records import LogRecord
from .storage import HttpRemoteStore, LocalStore, RemoteStore
from .sync import SyncCoordinator
from .timer import ResistanceTimer

logger = logging.getLogger(__name__)


def build_remote_store(config: Config) -> RemoteStore | None:
    """Create the remote store, or None when it is not configured."""
    if not config.remote.configured:
        return None
    return HttpRemoteStore(
        base_url=config.remote.url,
        app_id=config.identity.app_id,
        poll_interval=config.remote.poll_interval_seconds,
        timeout=config.remote.timeout,
        max_retries=config.remote.max_retries,
    )


class CravelogApp:
    """Running application: one coordinator and one timer on an event loop."""

    def __init__(
        self,
        config: Config,
        local: LocalStore | None = None,
        remote: RemoteStore | None = None,
    ):
        self.config = config
        self.local = local or LocalStore(config.local.db_path, key=config.local.key)
        self.remote = remote if remote is not None else build_remote_store(config)
        self.coordinator = SyncCoordinator(self.local, self.remote)
        self.timer: ResistanceTimer | None = None
        self._pending: set[asyncio.Task] = set()

    def start(
        self,
        identity: str | None = None,
        on_timer_change: Callable[[ResistanceTimer], None] | None = None,
    ) -> None:
        """Resolve the data source and create the timer.

        Must be called from a running event loop.
        """
        identity = identity or self.config.identity.token
        if identity:
            self.coordinator.on_identity_available(identity)
        else:
            self.coordinator.on_identity_unavailable()

        self.timer = ResistanceTimer(
            scheduler=asyncio.get_running_loop(),
            on_log=self._log_duration,
            disarm_window_ms=self.config.timer.disarm_window_ms,
            tick_ms=self.config.timer.tick_ms,
            on_change=on_timer_change,
        )
        logger.info(f"Started with {self.coordinator.authority.value} data")

    def _log_duration(self, duration_ms: int) -> None:
        task = asyncio.get_running_loop().create_task(
            self.coordinator.append(duration_ms)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def append(self, duration_ms: int) -> LogRecord | None:
        return await self.coordinator.append(duration_ms)

    def subscribe(self, on_records: Callable[[list[LogRecord]], Any], on_error=None):
        return self.coordinator.subscribe(on_records, on_error)

    async def stop(self) -> None:
        """Finish pending writes and release every resource."""
        if self.timer is not None:
            self.timer.close()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self.coordinator.close()
        if self.remote is not None:
            await self.remote.close()
        self.local.close()
        logger.info("Stopped")
