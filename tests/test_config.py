"""Tests for configuration loading."""

import pytest

from cravelog.config import Config, load_config


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove CRAVELOG_ variables from the environment."""
    import os

    for key in list(os.environ):
        if key.startswith("CRAVELOG_"):
            monkeypatch.delenv(key)


class TestDefaults:
    def test_defaults_without_file(self):
        config = load_config(None)

        assert config.identity.token is None
        assert config.local.key == "cravingLogs"
        assert config.timer.disarm_window_ms == 250
        assert config.timer.tick_ms == 10
        assert not config.remote.configured

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path / "missing.yaml")

        assert config == Config()


class TestYamlLoading:
    """Tests for loading YAML files."""

    def test_sections_loaded(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            """
identity:
  token: abc123
  app_id: my-app
remote:
  url: http://localhost:9000
  poll_interval_seconds: 0.5
local:
  db_path: /tmp/cravelog.db
timer:
  disarm_window_ms: 300
server:
  port: 9000
"""
        )

        config = load_config(path)

        assert config.identity.token == "abc123"
        assert config.identity.app_id == "my-app"
        assert config.remote.url == "http://localhost:9000"
        assert config.remote.poll_interval_seconds == 0.5
        assert config.remote.configured
        assert config.local.db_path == "/tmp/cravelog.db"
        assert config.local.key == "cravingLogs"
        assert config.timer.disarm_window_ms == 300
        assert config.timer.tick_ms == 10
        assert config.server.port == 9000

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        assert load_config(path) == Config()

    def test_disabled_remote_not_configured(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("remote:\n  enabled: false\n  url: http://localhost:9000\n")

        assert not load_config(path).remote.configured


class TestEnvOverrides:
    """Tests for CRAVELOG_ environment overrides."""

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("identity:\n  token: from-file\n")
        monkeypatch.setenv("CRAVELOG_IDENTITY", "from-env")
        monkeypatch.setenv("CRAVELOG_REMOTE_URL", "http://remote:8080")
        monkeypatch.setenv("CRAVELOG_REMOTE_POLL_INTERVAL", "1.5")
        monkeypatch.setenv("CRAVELOG_SERVER_PORT", "9100")

        config = load_config(path)

        assert config.identity.token == "from-env"
        assert config.remote.url == "http://remote:8080"
        assert config.remote.poll_interval_seconds == 1.5
        assert config.server.port == 9100

    def test_remote_enabled_flag(self, monkeypatch):
        monkeypatch.setenv("CRAVELOG_REMOTE_URL", "http://remote:8080")
        monkeypatch.setenv("CRAVELOG_REMOTE_ENABLED", "no")

        config = load_config(None)

        assert not config.remote.enabled
        assert not config.remote.configured
