"""Persistent application settings.

A flat name -> value JSON file. Object values are stored JSON-encoded, the
way the sync identity is kept under `scl-sync`.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from .fileio import atomic_write_json
from .models import SyncIdentity

logger = logging.getLogger(__name__)

SYNC_KEY = "scl-sync"
LAST_MODIFIED_KEY = "scl-last-modified"
# Cooldown anchor; never leaves this device
LAST_SYNC_TIME_KEY = "scl-last-sync-time"


class SettingsStore:
    """JSON-file settings store. `file_path=None` keeps it in memory."""

    def __init__(self, file_path: str | None = None) -> None:
        self._file_path = file_path
        self._values: dict[str, str] = {}

    def load(self) -> None:
        """Load settings from disk. Does nothing if file doesn't exist."""
        if self._file_path is None:
            return
        if not os.path.exists(self._file_path):
            logger.info("No settings file found at %s, starting fresh", self._file_path)
            return
        try:
            with open(self._file_path) as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise TypeError("settings file must hold a JSON object")
            self._values = {str(k): str(v) for k, v in data.items()}
        except (json.JSONDecodeError, TypeError) as e:
            logger.error("Failed to parse settings file %s: %s, starting fresh", self._file_path, e)
            self._values = {}

    def save(self) -> None:
        """Save settings to disk atomically."""
        if self._file_path is None:
            return
        atomic_write_json(self._file_path, self._values)

    def get(self, name: str) -> Any:
        """Return a setting, JSON-decoded when possible, raw otherwise."""
        raw = self._values.get(name)
        if raw is None or raw == "":
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw

    def set(self, name: str, value: Any) -> None:
        if isinstance(value, (dict, list)):
            self._values[name] = json.dumps(value)
        elif value is None:
            self._values[name] = ""
        else:
            self._values[name] = str(value)
        self.save()

    # ── Typed accessors ──────────────────────────────────────────────

    def get_identity(self) -> SyncIdentity | None:
        data = self.get(SYNC_KEY)
        if not isinstance(data, dict):
            return None
        return SyncIdentity.from_dict(data)

    def save_identity(self, identity: SyncIdentity) -> None:
        self.set(SYNC_KEY, identity.to_dict())

    def clear_identity(self) -> None:
        self.set(SYNC_KEY, None)

    def get_last_modified(self) -> str | None:
        value = self.get(LAST_MODIFIED_KEY)
        return str(value) if value else None

    def set_last_modified(self, iso_timestamp: str | None) -> None:
        self.set(LAST_MODIFIED_KEY, iso_timestamp)

    def get_last_sync_time(self) -> float | None:
        value = self.get(LAST_SYNC_TIME_KEY)
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    def set_last_sync_time(self, epoch_seconds: float | None) -> None:
        self.set(LAST_SYNC_TIME_KEY, epoch_seconds)
