"""Tests for application wiring."""

import asyncio

import pytest

from cravelog.app import CravelogApp, build_remote_store
from cravelog.config import Config, LocalConfig, RemoteConfig, TimerConfig
from cravelog.storage import HttpRemoteStore, InMemoryRemoteStore, LocalStore
from cravelog.sync import Authority
from cravelog.timer import TimerState


@pytest.fixture
def config(tmp_path):
    return Config(
        local=LocalConfig(db_path=str(tmp_path / "local.db")),
        timer=TimerConfig(disarm_window_ms=20, tick_ms=10),
    )


class TestBuildRemoteStore:
    def test_none_without_url(self, config):
        assert build_remote_store(config) is None

    def test_http_store_with_url(self, config):
        config.remote = RemoteConfig(url="http://localhost:9000")

        remote = build_remote_store(config)

        assert isinstance(remote, HttpRemoteStore)
        assert remote.app_id == config.identity.app_id


class TestCravelogApp:
    """Tests for starting and stopping the app."""

    @pytest.mark.asyncio
    async def test_starts_local_without_identity(self, config):
        app = CravelogApp(config)

        app.start()

        assert app.coordinator.authority is Authority.LOCAL
        assert app.timer.state is TimerState.IDLE
        await app.stop()

    @pytest.mark.asyncio
    async def test_starts_remote_with_identity(self, config):
        remote = InMemoryRemoteStore()
        app = CravelogApp(config, remote=remote)

        app.start("alice")

        assert app.coordinator.authority is Authority.REMOTE
        assert remote.subscriber_count("alice") == 1
        await app.stop()
        assert remote.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_identity_from_config(self, config):
        config.identity.token = "bob"
        remote = InMemoryRemoteStore()
        app = CravelogApp(config, remote=remote)

        app.start()

        assert app.coordinator.identity == "bob"
        await app.stop()

    @pytest.mark.asyncio
    async def test_timer_run_is_logged(self, config):
        """Test a real timer run on the event loop ends up in the records."""
        local = LocalStore(":memory:")
        app = CravelogApp(config, local=local)
        app.start()

        app.timer.click()
        await asyncio.sleep(0.1)
        assert app.timer.is_running
        app.timer.click()
        await asyncio.sleep(0.01)

        records = app.coordinator.records
        await app.stop()

        assert len(records) == 1
        assert records[0].duration_ms > 0

    @pytest.mark.asyncio
    async def test_double_click_logs_nothing(self, config):
        app = CravelogApp(config)
        app.start()

        app.timer.click()
        app.timer.click()
        await asyncio.sleep(0.05)

        assert app.timer.state is TimerState.IDLE
        assert app.coordinator.records == []
        await app.stop()
