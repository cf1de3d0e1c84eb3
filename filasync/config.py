"""Sync configuration loaded from environment variables."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass

from .merge import ConflictPolicy


@dataclass
class SyncConfig:
    # Relay connection (required)
    relay_url: str
    app_name: str = "filameter"
    request_timeout: float = 10.0

    # Local persistence
    data_dir: str = "/data"

    # Sync behavior
    cooldown_seconds: int = 5
    poll_interval_seconds: int = 60
    conflict_policy: ConflictPolicy = ConflictPolicy.REMOTE_WINS

    # Logging
    log_level: str = "INFO"

    @property
    def filament_db_path(self) -> str:
        return os.path.join(self.data_dir, "filament.json")

    @property
    def settings_path(self) -> str:
        return os.path.join(self.data_dir, "settings.json")


def _env(key: str, default: str | None = None) -> str:
    val = os.environ.get(key)
    if val is not None:
        return val
    if default is not None:
        return default
    print(f"Error: required environment variable {key} is not set.", file=sys.stderr)
    sys.exit(1)


def _env_int(key: str, default: int) -> int:
    val = os.environ.get(key)
    if val is None:
        return default
    return int(val)


def _env_float(key: str, default: float) -> float:
    val = os.environ.get(key)
    if val is None:
        return default
    return float(val)


def _env_policy(key: str, default: ConflictPolicy) -> ConflictPolicy:
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return ConflictPolicy(val.lower())
    except ValueError:
        print(f"Error: {key} must be one of: {', '.join(p.value for p in ConflictPolicy)}", file=sys.stderr)
        sys.exit(1)


def load_config() -> SyncConfig:
    return SyncConfig(
        relay_url=_env("FILASYNC_RELAY_URL"),
        app_name=_env("FILASYNC_APP_NAME", "filameter"),
        request_timeout=_env_float("FILASYNC_REQUEST_TIMEOUT", 10.0),
        data_dir=_env("FILASYNC_DATA_DIR", "/data"),
        cooldown_seconds=_env_int("FILASYNC_COOLDOWN_SECONDS", 5),
        poll_interval_seconds=_env_int("FILASYNC_POLL_INTERVAL_SECONDS", 60),
        conflict_policy=_env_policy("FILASYNC_CONFLICT_POLICY", ConflictPolicy.REMOTE_WINS),
        log_level=_env("FILASYNC_LOG_LEVEL", "INFO"),
    )
