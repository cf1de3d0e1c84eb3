"""Tests for the document store (JSON file persistence)."""

from __future__ import annotations

import json
import os
import tempfile

import pytest

from filasync.document_store import DocumentConflict, DocumentNotFound, DocumentStore, DocumentStoreError


@pytest.fixture
def tmp_file():
    fd, path = tempfile.mkstemp(suffix=".json")
    os.close(fd)
    os.unlink(path)  # start with no file
    yield path
    if os.path.exists(path):
        os.unlink(path)


@pytest.fixture
def sample_doc() -> dict:
    return {"_id": "a1b2c3d4", "filament": "Galaxy Black", "material": "PLA", "used_weight": 123.45}


class TestDocumentStore:
    def test_fresh_start(self, tmp_file):
        store = DocumentStore(tmp_file)
        store.load()
        assert store.all_docs() == []

    def test_save_and_load(self, tmp_file, sample_doc):
        store = DocumentStore(tmp_file)
        rev = store.put(sample_doc)

        # Reload from disk
        store2 = DocumentStore(tmp_file)
        store2.load()
        loaded = store2.get("a1b2c3d4")
        assert loaded["_rev"] == rev
        assert loaded["filament"] == "Galaxy Black"
        assert loaded["used_weight"] == 123.45

    def test_put_assigns_increasing_revisions(self, sample_doc):
        store = DocumentStore()
        first = store.put(sample_doc)
        second = store.put({**sample_doc, "_rev": first, "used_weight": 200.0})

        assert first.startswith("1-")
        assert second.startswith("2-")
        assert store.get("a1b2c3d4")["used_weight"] == 200.0

    def test_stale_revision_conflicts(self, sample_doc):
        store = DocumentStore()
        first = store.put(sample_doc)
        store.put({**sample_doc, "_rev": first})

        with pytest.raises(DocumentConflict):
            store.put({**sample_doc, "_rev": first})

    def test_missing_revision_on_existing_id_conflicts(self, sample_doc):
        store = DocumentStore()
        store.put(sample_doc)

        with pytest.raises(DocumentConflict):
            store.put(sample_doc)

    def test_get_missing(self):
        store = DocumentStore()
        with pytest.raises(DocumentNotFound):
            store.get("nope")

    def test_get_returns_copy(self, sample_doc):
        store = DocumentStore()
        store.put(sample_doc)

        doc = store.get("a1b2c3d4")
        doc["filament"] = "changed"

        assert store.get("a1b2c3d4")["filament"] == "Galaxy Black"

    def test_remove(self, sample_doc):
        store = DocumentStore()
        rev = store.put(sample_doc)
        store.remove("a1b2c3d4", rev)

        with pytest.raises(DocumentNotFound):
            store.get("a1b2c3d4")

    def test_remove_with_stale_revision(self, sample_doc):
        store = DocumentStore()
        store.put(sample_doc)

        with pytest.raises(DocumentConflict):
            store.remove("a1b2c3d4", "1-stale")

    def test_all_docs_skips_metadata(self, sample_doc):
        store = DocumentStore()
        store.put(sample_doc)
        store.put({"_id": "_local/info", "version": 1})
        store.put({"_id": "_design/index", "views": {}})

        assert [d["_id"] for d in store.all_docs()] == ["a1b2c3d4"]

    def test_corrupt_file(self, tmp_file):
        with open(tmp_file, "w") as f:
            f.write("not valid json{{{")

        store = DocumentStore(tmp_file)
        store.load()
        assert store.all_docs() == []

    def test_file_format(self, tmp_file, sample_doc):
        store = DocumentStore(tmp_file)
        store.put(sample_doc)

        with open(tmp_file) as f:
            data = json.load(f)

        assert len(data["docs"]) == 1
        assert data["docs"][0]["_id"] == "a1b2c3d4"
        assert data["docs"][0]["_rev"].startswith("1-")

    def test_clear(self, tmp_file, sample_doc):
        store = DocumentStore(tmp_file)
        store.put(sample_doc)
        store.clear()

        store2 = DocumentStore(tmp_file)
        store2.load()
        assert store2.all_docs() == []

    @pytest.mark.parametrize("bad_id", [42, ["a"], {"id": "a"}])
    def test_non_string_id_rejected(self, tmp_file, bad_id):
        store = DocumentStore(tmp_file)

        with pytest.raises(DocumentStoreError, match="must be a string"):
            store.put({"_id": bad_id, "filament": "Teal"})

        assert store.all_docs() == []
        assert not os.path.exists(tmp_file)
