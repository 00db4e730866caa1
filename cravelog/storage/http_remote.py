"""Remote store backed by the cravelog collection service over HTTP.

Push delivery is emulated by a polling task per subscription that forwards
the collection whenever its version changes.
"""

import asyncio
import logging
from typing import Any

import httpx

from ..errors import RemoteStoreError, RemoteSubscribeError, RemoteWriteError
from .remote_store import ErrorCallback, RemoteStore, SnapshotCallback, Unsubscribe

logger = logging.getLogger(__name__)


def collection_path(app_id: str, identity: str) -> str:
    """URL path of an identity's collection."""
    return f"/api/artifacts/{app_id}/users/{identity}/cravings"


class HttpRemoteStore(RemoteStore):
    """Client for the remote collection service.

    Reads retry with exponential backoff; writes are attempted once so a
    record is never appended twice.
    """

    def __init__(
        self,
        base_url: str,
        app_id: str,
        poll_interval: float = 2.0,
        timeout: float = 10.0,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the HTTP remote store.

        Args:
            base_url: Base URL of the collection service.
            app_id: Application namespace for collections.
            poll_interval: Seconds between collection polls.
            timeout: Request timeout in seconds.
            max_retries: Maximum attempts per read.
            transport: Optional httpx transport, mainly for tests.
        """
        self.base_url = base_url.rstrip("/")
        self.app_id = app_id
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.max_retries = max(max_retries, 1)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._wakeups: dict[str, set[asyncio.Event]] = {}

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def _request(
        self,
        method: str,
        path: str,
        json_data: Any = None,
        attempts: int = 1,
    ) -> Any:
        """Make an HTTP request, retrying transient failures.

        Raises:
            RemoteStoreError: If every attempt failed or the server refused.
        """
        client = self._get_client()
        backoff = 0.5
        last_error = "no attempts made"

        for attempt in range(attempts):
            try:
                response = await client.request(method, path, json=json_data)

                if response.status_code in (200, 201):
                    return response.json()
                elif response.status_code >= 500:
                    last_error = f"HTTP {response.status_code}"
                    logger.warning(
                        f"Server error {response.status_code}, "
                        f"attempt {attempt + 1}/{attempts}"
                    )
                else:
                    raise RemoteStoreError(
                        f"HTTP {response.status_code}: {response.text}"
                    )

            except httpx.ConnectError as e:
                last_error = f"Connection failed: {e}"
                logger.warning(f"Connection failed, attempt {attempt + 1}/{attempts}")
            except httpx.TimeoutException:
                last_error = "Request timeout"
                logger.warning(f"Request timeout, attempt {attempt + 1}/{attempts}")
            except httpx.HTTPError as e:
                raise RemoteStoreError(f"Request error: {e}") from e
            except ValueError as e:
                raise RemoteStoreError(f"Invalid response body: {e}") from e

            if attempt < attempts - 1:
                await asyncio.sleep(backoff)
                backoff *= 2

        raise RemoteStoreError(last_error)

    async def fetch(self, identity: str) -> tuple[int, list[Any]]:
        """Fetch an identity's collection.

        Returns:
            Tuple of (collection version, raw items).
        """
        data = await self._request(
            "GET", collection_path(self.app_id, identity), attempts=self.max_retries
        )
        if not isinstance(data, dict) or not isinstance(data.get("items"), list):
            raise RemoteStoreError("Malformed collection response")
        try:
            version = int(data.get("version", 0))
        except (TypeError, ValueError) as e:
            raise RemoteStoreError("Malformed collection response") from e
        return version, data["items"]

    def subscribe(
        self,
        identity: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> Unsubscribe:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            raise RemoteSubscribeError("Subscriptions need a running event loop") from e

        wakeup = asyncio.Event()
        self._wakeups.setdefault(identity, set()).add(wakeup)
        task = loop.create_task(self._poll(identity, wakeup, on_snapshot, on_error))
        logger.info(f"Subscribed to {collection_path(self.app_id, identity)}")

        def unsubscribe() -> None:
            self._wakeups.get(identity, set()).discard(wakeup)
            task.cancel()

        return unsubscribe

    async def _poll(
        self,
        identity: str,
        wakeup: asyncio.Event,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        last_version: int | None = None

        while True:
            try:
                version, items = await self.fetch(identity)
            except RemoteStoreError as e:
                logger.error(f"Subscription to {identity} failed: {e}")
                self._wakeups.get(identity, set()).discard(wakeup)
                on_error(RemoteSubscribeError(str(e)))
                return

            if version != last_version:
                last_version = version
                on_snapshot(items)

            try:
                await asyncio.wait_for(wakeup.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
            wakeup.clear()

    async def write(self, identity: str, duration_ms: int) -> str:
        try:
            data = await self._request(
                "POST",
                collection_path(self.app_id, identity),
                {"duration": duration_ms},
            )
        except RemoteStoreError as e:
            raise RemoteWriteError(str(e)) from e

        for wakeup in self._wakeups.get(identity, set()):
            wakeup.set()

        if not isinstance(data, dict) or "id" not in data:
            raise RemoteWriteError("Malformed write response")
        return str(data["id"])

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
