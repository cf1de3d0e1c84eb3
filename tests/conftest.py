"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from filasync.config import SyncConfig
from filasync.document_store import DocumentStore
from filasync.local_store import LocalStoreAdapter
from filasync.settings_store import SettingsStore


class FakeClock:
    """Settable clock for cooldown and timestamp tests."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def config(tmp_path) -> SyncConfig:
    return SyncConfig(
        relay_url="http://relay.test/",
        app_name="filameter",
        data_dir=str(tmp_path),
        cooldown_seconds=5,
        poll_interval_seconds=1,
    )


@pytest.fixture
def doc_store() -> DocumentStore:
    return DocumentStore()


@pytest.fixture
def local(doc_store) -> LocalStoreAdapter:
    return LocalStoreAdapter(doc_store)


@pytest.fixture
def settings() -> SettingsStore:
    return SettingsStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc))
