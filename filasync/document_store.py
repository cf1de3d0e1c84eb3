"""Revisioned JSON document store.

Holds the filament database as a single JSON file with atomic writes to
prevent corruption. Each document carries an `_id` and a `_rev`; an update
must present the current revision or it is rejected as a conflict. Documents
whose id starts with `_local/` hold store-internal metadata and are left out
of `all_docs()`.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import uuid
from typing import Any

from .fileio import atomic_write_json

logger = logging.getLogger(__name__)

LOCAL_PREFIX = "_local/"
DESIGN_PREFIX = "_design/"


class DocumentStoreError(Exception):
    pass


class DocumentNotFound(DocumentStoreError):
    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Document {doc_id} not found")
        self.doc_id = doc_id


class DocumentConflict(DocumentStoreError):
    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Document update conflict on {doc_id}")
        self.doc_id = doc_id


def _next_rev(current: str | None) -> str:
    generation = int(current.split("-", 1)[0]) if current else 0
    return f"{generation + 1}-{uuid.uuid4().hex}"


class DocumentStore:
    """JSON-file document database. `file_path=None` keeps it in memory."""

    def __init__(self, file_path: str | None = None) -> None:
        self._file_path = file_path
        self._docs: dict[str, dict[str, Any]] = {}

    @property
    def file_path(self) -> str | None:
        return self._file_path

    def load(self) -> None:
        """Load documents from disk. Does nothing if the file doesn't exist."""
        if self._file_path is None:
            return
        if not os.path.exists(self._file_path):
            logger.info("No document file found at %s, starting fresh", self._file_path)
            return
        try:
            with open(self._file_path) as f:
                data = json.load(f)
            self._docs = {doc["_id"]: doc for doc in data.get("docs", [])}
            logger.info("Loaded %d documents from %s", len(self._docs), self._file_path)
        except (json.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
            logger.error("Failed to parse document file %s: %s, starting fresh", self._file_path, e)
            self._docs = {}

    def save(self) -> None:
        """Save all documents to disk atomically."""
        if self._file_path is None:
            return
        atomic_write_json(self._file_path, {"docs": list(self._docs.values())})

    def get(self, doc_id: str) -> dict[str, Any]:
        doc = self._docs.get(doc_id)
        if doc is None:
            raise DocumentNotFound(doc_id)
        return copy.deepcopy(doc)

    def put(self, doc: dict[str, Any]) -> str:
        """Insert or update a document and return its new revision.

        An existing id is only updated when `doc["_rev"]` matches the stored
        revision; anything else raises DocumentConflict.
        """
        doc_id = doc.get("_id")
        if not doc_id:
            raise DocumentStoreError("Document is missing an _id")
        if not isinstance(doc_id, str):
            raise DocumentStoreError(f"Document _id must be a string, got {type(doc_id).__name__}")
        existing = self._docs.get(doc_id)
        if existing is not None and doc.get("_rev") != existing.get("_rev"):
            raise DocumentConflict(doc_id)

        rev = _next_rev(existing.get("_rev") if existing else None)
        stored = copy.deepcopy(doc)
        stored["_rev"] = rev
        self._docs[doc_id] = stored
        self.save()
        return rev

    def remove(self, doc_id: str, rev: str | None) -> None:
        existing = self._docs.get(doc_id)
        if existing is None:
            raise DocumentNotFound(doc_id)
        if rev != existing.get("_rev"):
            raise DocumentConflict(doc_id)
        del self._docs[doc_id]
        self.save()

    def all_docs(self) -> list[dict[str, Any]]:
        """Every regular document, in insertion order."""
        return [
            copy.deepcopy(doc)
            for doc_id, doc in self._docs.items()
            if not doc_id.startswith((LOCAL_PREFIX, DESIGN_PREFIX))
        ]

    def clear(self) -> None:
        self._docs.clear()
        self.save()
