"""Tests for the settings store."""

from __future__ import annotations

import json

from filasync.models import SyncIdentity, SyncStatus
from filasync.settings_store import LAST_MODIFIED_KEY, SYNC_KEY, SettingsStore


class TestSettingsStore:
    def test_fresh_start(self, tmp_path):
        store = SettingsStore(str(tmp_path / "settings.json"))
        store.load()
        assert store.get_identity() is None
        assert store.get_last_modified() is None
        assert store.get_last_sync_time() is None

    def test_identity_round_trip_on_disk(self, tmp_path):
        path = str(tmp_path / "settings.json")
        store = SettingsStore(path)
        store.save_identity(SyncIdentity(sync_key="k1", email="a@b.co", account_type="personal"))

        store2 = SettingsStore(path)
        store2.load()
        identity = store2.get_identity()
        assert identity is not None
        assert identity.sync_key == "k1"
        assert identity.status is SyncStatus.ENGAGED

    def test_identity_stored_as_json_string(self, tmp_path):
        path = str(tmp_path / "settings.json")
        store = SettingsStore(path)
        store.save_identity(SyncIdentity(sync_key="k1", email="a@b.co", last_synced="2026-01-01T00:00:00+00:00"))

        with open(path) as f:
            raw = json.load(f)
        decoded = json.loads(raw[SYNC_KEY])
        assert decoded["syncKey"] == "k1"
        assert decoded["lastSynced"] == "2026-01-01T00:00:00+00:00"
        assert decoded["needsVerification"] is False

    def test_pending_identity(self):
        store = SettingsStore()
        store.save_identity(SyncIdentity(email="a@b.co", needs_verification=True))

        assert store.get_identity().status is SyncStatus.PENDING_VERIFICATION

    def test_clear_identity(self):
        store = SettingsStore()
        store.save_identity(SyncIdentity(sync_key="k1"))
        store.clear_identity()

        assert store.get_identity() is None

    def test_last_modified_kept_as_string(self):
        store = SettingsStore()
        store.set_last_modified("2026-03-01T12:00:00+00:00")

        assert store.get_last_modified() == "2026-03-01T12:00:00+00:00"
        assert store.get(LAST_MODIFIED_KEY) == "2026-03-01T12:00:00+00:00"

    def test_last_sync_time(self):
        store = SettingsStore()
        store.set_last_sync_time(1772366400.5)

        assert store.get_last_sync_time() == 1772366400.5

        store.set_last_sync_time(None)
        assert store.get_last_sync_time() is None

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2, 3]")

        store = SettingsStore(str(path))
        store.load()
        assert store.get_identity() is None
