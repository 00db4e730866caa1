"""Configuration loading for cravelog."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class IdentityConfig:
    """Identity supplied by an external sign-in step.

    The token is opaque; without one the app runs on local data only.
    """

    token: str | None = None
    app_id: str = "default-craving-stopper"


@dataclass
class RemoteConfig:
    enabled: bool = True
    url: str = ""  # URL of the collection service
    poll_interval_seconds: float = 2.0
    timeout: float = 10.0
    max_retries: int = 3

    @property
    def configured(self) -> bool:
        return self.enabled and bool(self.url)


@dataclass
class LocalConfig:
    db_path: str = "~/.cravelog/local.db"
    key: str = "cravingLogs"


@dataclass
class TimerConfig:
    disarm_window_ms: int = 250
    tick_ms: int = 10


@dataclass
class ServerConfig:
    """Configuration for the remote collection service."""

    host: str = "127.0.0.1"
    port: int = 8080
    db_path: str = "~/.cravelog/server.db"


@dataclass
class Config:
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    local: LocalConfig = field(default_factory=LocalConfig)
    timer: TimerConfig = field(default_factory=TimerConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with CRAVELOG_ prefix."""
    return os.environ.get(f"CRAVELOG_{key}", default)


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Identity overrides
    if token := _get_env("IDENTITY"):
        config.identity.token = token
    if app_id := _get_env("APP_ID"):
        config.identity.app_id = app_id

    # Remote overrides
    if enabled := _get_env("REMOTE_ENABLED"):
        config.remote.enabled = _parse_bool(enabled)
    if url := _get_env("REMOTE_URL"):
        config.remote.url = url
    if interval := _get_env("REMOTE_POLL_INTERVAL"):
        config.remote.poll_interval_seconds = float(interval)

    # Local overrides
    if db_path := _get_env("LOCAL_DB_PATH"):
        config.local.db_path = db_path

    # Server overrides
    if host := _get_env("SERVER_HOST"):
        config.server.host = host
    if port := _get_env("SERVER_PORT"):
        config.server.port = int(port)
    if server_db := _get_env("SERVER_DB_PATH"):
        config.server.db_path = server_db

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "identity" in data:
                identity_data = data["identity"] or {}
                config.identity = IdentityConfig(
                    token=identity_data.get("token", config.identity.token),
                    app_id=identity_data.get("app_id", config.identity.app_id),
                )

            if "remote" in data:
                remote_data = data["remote"] or {}
                config.remote = RemoteConfig(
                    enabled=remote_data.get("enabled", config.remote.enabled),
                    url=remote_data.get("url", config.remote.url),
                    poll_interval_seconds=remote_data.get(
                        "poll_interval_seconds", config.remote.poll_interval_seconds
                    ),
                    timeout=remote_data.get("timeout", config.remote.timeout),
                    max_retries=remote_data.get(
                        "max_retries", config.remote.max_retries
                    ),
                )

            if "local" in data:
                local_data = data["local"] or {}
                config.local = LocalConfig(
                    db_path=local_data.get("db_path", config.local.db_path),
                    key=local_data.get("key", config.local.key),
                )

            if "timer" in data:
                timer_data = data["timer"] or {}
                config.timer = TimerConfig(
                    disarm_window_ms=timer_data.get(
                        "disarm_window_ms", config.timer.disarm_window_ms
                    ),
                    tick_ms=timer_data.get("tick_ms", config.timer.tick_ms),
                )

            if "server" in data:
                server_data = data["server"] or {}
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=server_data.get("port", config.server.port),
                    db_path=server_data.get("db_path", config.server.db_path),
                )

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return config
