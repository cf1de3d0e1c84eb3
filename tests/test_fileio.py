"""Tests for atomic JSON writes."""

from __future__ import annotations

import json
import os

import pytest

from filasync.fileio import atomic_write_json


class TestAtomicWriteJson:
    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "data.json"

        atomic_write_json(str(path), {"docs": []})

        assert json.loads(path.read_text()) == {"docs": []}

    def test_replaces_existing_file(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text('{"old": true}')

        atomic_write_json(str(path), {"new": True})

        assert json.loads(path.read_text()) == {"new": True}
        assert os.listdir(tmp_path) == ["data.json"]

    def test_failed_write_keeps_original(self, tmp_path):
        path = tmp_path / "data.json"
        path.write_text('{"old": true}')

        with pytest.raises(TypeError):
            atomic_write_json(str(path), {"bad": object()})

        assert json.loads(path.read_text()) == {"old": True}
        assert os.listdir(tmp_path) == ["data.json"]
