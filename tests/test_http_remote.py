"""Tests for the HTTP remote store."""

import asyncio

import httpx
import pytest

pytest.importorskip("fastapi")

from cravelog.config import Config
from cravelog.errors import RemoteStoreError, RemoteSubscribeError, RemoteWriteError
from cravelog.server import CollectionStore, create_app
from cravelog.storage import HttpRemoteStore, LocalStore
from cravelog.storage.http_remote import collection_path
from cravelog.sync import Authority, SyncCoordinator, SyncErrorKind


async def wait_until(predicate, timeout: float = 3.0) -> None:
    """Poll until predicate() is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def service_store():
    store = CollectionStore(":memory:")
    store.connect()
    yield store
    store.close()


@pytest.fixture
def remote(service_store):
    """HttpRemoteStore wired to the service in-process."""
    app = create_app(Config(), store=service_store)
    return HttpRemoteStore(
        "http://testserver",
        app_id="test-app",
        poll_interval=0.05,
        transport=httpx.ASGITransport(app=app),
    )


def failing_remote(handler, max_retries: int = 1) -> HttpRemoteStore:
    return HttpRemoteStore(
        "http://testserver",
        app_id="test-app",
        poll_interval=0.05,
        max_retries=max_retries,
        transport=httpx.MockTransport(handler),
    )


class TestCollectionPath:
    def test_namespaced_by_app_and_identity(self):
        assert collection_path("app", "u1") == "/api/artifacts/app/users/u1/cravings"


class TestWrites:
    """Tests for remote writes."""

    @pytest.mark.asyncio
    async def test_write_then_fetch(self, remote):
        item_id = await remote.write("alice", 1500)
        version, items = await remote.fetch("alice")
        await remote.close()

        assert version > 0
        assert items[0]["id"] == item_id
        assert items[0]["duration"] == 1500

    @pytest.mark.asyncio
    async def test_server_error_raises_write_error(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, text="boom")

        remote = failing_remote(handler, max_retries=3)

        with pytest.raises(RemoteWriteError):
            await remote.write("alice", 100)
        await remote.close()

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_rejected_write_raises(self, remote):
        with pytest.raises(RemoteWriteError):
            await remote.write("alice", 0)
        await remote.close()

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        remote = failing_remote(handler)

        with pytest.raises(RemoteWriteError):
            await remote.write("alice", 100)
        await remote.close()


class TestSubscriptions:
    """Tests for polling subscriptions."""

    def test_subscribe_needs_running_loop(self, remote):
        with pytest.raises(RemoteSubscribeError):
            remote.subscribe("alice", lambda items: None, lambda error: None)

    @pytest.mark.asyncio
    async def test_initial_snapshot_delivered(self, remote, service_store):
        service_store.append("test-app", "alice", 700)
        snapshots = []

        unsubscribe = remote.subscribe("alice", snapshots.append, lambda e: None)
        await wait_until(lambda: snapshots)
        unsubscribe()
        await remote.close()

        assert [i["duration"] for i in snapshots[0]] == [700]

    @pytest.mark.asyncio
    async def test_write_pushes_new_snapshot(self, remote):
        snapshots = []
        unsubscribe = remote.subscribe("alice", snapshots.append, lambda e: None)
        await wait_until(lambda: snapshots)

        await remote.write("alice", 1200)
        await wait_until(lambda: len(snapshots) >= 2)
        unsubscribe()
        await remote.close()

        assert snapshots[0] == []
        assert [i["duration"] for i in snapshots[-1]] == [1200]

    @pytest.mark.asyncio
    async def test_unchanged_collection_not_redelivered(self, remote):
        snapshots = []
        unsubscribe = remote.subscribe("alice", snapshots.append, lambda e: None)
        await wait_until(lambda: snapshots)

        await asyncio.sleep(0.2)
        unsubscribe()
        await remote.close()

        assert len(snapshots) == 1

    @pytest.mark.asyncio
    async def test_failure_calls_on_error_once(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        remote = failing_remote(handler)
        errors = []
        snapshots = []

        remote.subscribe("alice", snapshots.append, errors.append)
        await wait_until(lambda: errors)
        await asyncio.sleep(0.1)
        await remote.close()

        assert len(errors) == 1
        assert isinstance(errors[0], RemoteSubscribeError)
        assert snapshots == []

    @pytest.mark.asyncio
    async def test_reads_retry_server_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"version": 1, "items": []})

        remote = failing_remote(handler, max_retries=2)

        version, items = await remote.fetch("alice")
        await remote.close()

        assert (version, items) == (1, [])
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_malformed_version_raises(self):
        def handler(request):
            return httpx.Response(200, json={"version": "abc", "items": []})

        remote = failing_remote(handler)

        with pytest.raises(RemoteStoreError):
            await remote.fetch("alice")
        await remote.close()


class TestCoordinatorOverHttp:
    """End-to-end tests with the coordinator and the service."""

    @pytest.mark.asyncio
    async def test_append_round_trip(self, remote):
        local = LocalStore(":memory:")
        coordinator = SyncCoordinator(local, remote)
        seen = []
        coordinator.subscribe(seen.append)

        coordinator.on_identity_available("alice")
        await wait_until(lambda: len(seen) >= 2)
        await coordinator.append(1200)
        await wait_until(lambda: coordinator.records)

        assert coordinator.authority is Authority.REMOTE
        assert [r.duration_ms for r in coordinator.records] == [1200]
        assert local.read_all() == []

        coordinator.close()
        await remote.close()
        local.close()

    @pytest.mark.asyncio
    async def test_unreachable_service_falls_back(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        remote = failing_remote(handler)
        local = LocalStore(":memory:")
        coordinator = SyncCoordinator(local, remote)

        coordinator.on_identity_available("alice")
        await wait_until(lambda: coordinator.authority is Authority.LOCAL)
        await coordinator.append(3000)

        assert [r.duration_ms for r in coordinator.records] == [3000]
        assert coordinator.error is not None

        coordinator.close()
        await remote.close()
        local.close()

    @pytest.mark.asyncio
    async def test_malformed_version_falls_back(self):
        def handler(request):
            return httpx.Response(200, json={"version": "abc", "items": []})

        remote = failing_remote(handler)
        local = LocalStore(":memory:")
        local.write_all([{"id": "a", "duration": 900, "date": "2025-03-01T08:00:00.000Z"}])
        coordinator = SyncCoordinator(local, remote)
        errors = []
        coordinator.subscribe(lambda records: None, errors.append)

        coordinator.on_identity_available("alice")
        await wait_until(lambda: coordinator.authority is Authority.LOCAL)

        assert [r.duration_ms for r in coordinator.records] == [900]
        assert len(errors) == 1
        assert errors[0].kind is SyncErrorKind.REMOTE_SUBSCRIBE

        coordinator.close()
        await remote.close()
        local.close()
