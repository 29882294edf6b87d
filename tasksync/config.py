"""Configuration loading for tasksync."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class RemoteConfig:
    """Remote task service (Cockpit CMS content API)."""

    base_url: str = "https://cms.hiyan.xyz/:hi-tasks/api"
    content_name: str = "tasks"
    api_token: str | None = None
    timeout: float = 30.0
    max_retries: int = 3


@dataclass
class StorageConfig:
    db_path: str = "~/.tasksync/tasks.db"


@dataclass
class SyncConfig:
    """Configuration for the sync engine."""

    probe_interval_seconds: float = 30.0
    discard_invalid: bool = False
    initial_online: bool | None = None  # None: probe the remote at startup


@dataclass
class Config:
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with TASKSYNC_ prefix."""
    return os.environ.get(f"TASKSYNC_{key}", default)


def _parse_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Remote overrides
    if base_url := _get_env("REMOTE_URL"):
        config.remote.base_url = base_url
    if content_name := _get_env("CONTENT_NAME"):
        config.remote.content_name = content_name
    if token := _get_env("API_TOKEN"):
        config.remote.api_token = token
    if timeout := _get_env("REMOTE_TIMEOUT"):
        config.remote.timeout = float(timeout)

    # Storage overrides
    if db_path := _get_env("DB_PATH"):
        config.storage.db_path = db_path

    # Sync overrides
    if interval := _get_env("PROBE_INTERVAL"):
        config.sync.probe_interval_seconds = float(interval)
    if discard := _get_env("DISCARD_INVALID"):
        config.sync.discard_invalid = _parse_bool(discard)
    if online := _get_env("ONLINE"):
        config.sync.initial_online = _parse_bool(online)

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

            # Parse remote config
            if "remote" in data:
                remote_data = data["remote"]
                config.remote = RemoteConfig(
                    base_url=remote_data.get("base_url", config.remote.base_url),
                    content_name=remote_data.get(
                        "content_name", config.remote.content_name
                    ),
                    api_token=remote_data.get("api_token"),
                    timeout=remote_data.get("timeout", config.remote.timeout),
                    max_retries=remote_data.get(
                        "max_retries", config.remote.max_retries
                    ),
                )

            # Parse storage config
            if "storage" in data:
                config.storage = StorageConfig(
                    db_path=data["storage"].get("db_path", config.storage.db_path)
                )

            # Parse sync config
            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    probe_interval_seconds=sync_data.get(
                        "probe_interval_seconds", config.sync.probe_interval_seconds
                    ),
                    discard_invalid=sync_data.get(
                        "discard_invalid", config.sync.discard_invalid
                    ),
                    initial_online=sync_data.get(
                        "initial_online", config.sync.initial_online
                    ),
                )

    # Apply environment variable overrides
    return _apply_env_overrides(config)
