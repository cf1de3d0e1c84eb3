"""Local store adapter: the sync engine's view of the filament database.

Wraps a DocumentStore with the export / bulk-import contract the sync engine
relies on, plus backup files and the schema-version migration kept in the
`_local/info` metadata document.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any

from .document_store import DocumentConflict, DocumentNotFound, DocumentStore, DocumentStoreError
from .errors import BulkImportError, ConflictError, StoreUnavailable
from .fileio import atomic_write_json
from .models import ExportEnvelope, strip_revision

logger = logging.getLogger(__name__)

INFO_DOC_ID = "_local/info"
KNOWN_LOCAL_IDS = (INFO_DOC_ID,)
CURRENT_DB_VERSION = 1


@dataclass
class ImportReport:
    """Per-document outcome of a bulk import."""

    inserted: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)  # conflict resolved by revision refresh

    @property
    def total(self) -> int:
        return len(self.inserted) + len(self.updated)


class LocalStoreAdapter:
    """Thin contract over the local document database.

    The store handle may be None (database not opened yet); every operation
    then raises StoreUnavailable before touching anything.
    """

    def __init__(self, store: DocumentStore | None) -> None:
        self._store = store

    @property
    def is_ready(self) -> bool:
        return self._store is not None

    def _require_store(self) -> DocumentStore:
        if self._store is None:
            raise StoreUnavailable("Database not ready.")
        return self._store

    # ── Export / import ──────────────────────────────────────────────

    def export_all(self) -> ExportEnvelope:
        """Snapshot every record plus the known metadata docs, revisions stripped."""
        store = self._require_store()
        regular = [strip_revision(doc) for doc in store.all_docs()]
        local = []
        for doc_id in KNOWN_LOCAL_IDS:
            try:
                local.append(strip_revision(store.get(doc_id)))
            except DocumentNotFound:
                continue
        return ExportEnvelope(regular=regular, local=local)

    def bulk_import(self, envelope: ExportEnvelope) -> ImportReport:
        """Write every document of the envelope into the store.

        A same-id conflict is retried once against the current revision. Any
        other failure aborts the remaining batch.
        """
        store = self._require_store()
        report = ImportReport()
        for doc in [*envelope.regular, *envelope.local]:
            doc_id = doc.get("_id", "")
            incoming = strip_revision(doc)
            try:
                store.put(incoming)
                report.inserted.append(doc_id)
            except DocumentConflict:
                try:
                    current = store.get(doc_id)
                    store.put({**incoming, "_rev": current["_rev"]})
                    report.updated.append(doc_id)
                except (DocumentStoreError, OSError) as e:
                    logger.error("Error updating document after conflict %s: %s", doc_id, e)
                    raise ConflictError(doc_id, str(e)) from e
            except (DocumentStoreError, OSError, TypeError, ValueError) as e:
                logger.error("Error importing document %s: %s", doc_id, e)
                raise BulkImportError(doc_id, str(e)) from e
        logger.info(
            "Imported %d documents (%d inserted, %d updated)",
            report.total, len(report.inserted), len(report.updated),
        )
        return report

    async def export_all_async(self) -> ExportEnvelope:
        return await asyncio.to_thread(self.export_all)

    async def bulk_import_async(self, envelope: ExportEnvelope) -> ImportReport:
        return await asyncio.to_thread(self.bulk_import, envelope)

    # ── Single-record CRUD ───────────────────────────────────────────

    def get(self, doc_id: str) -> dict[str, Any] | None:
        try:
            return self._require_store().get(doc_id)
        except DocumentNotFound:
            return None

    def put(self, doc: dict[str, Any]) -> str:
        return self._require_store().put(doc)

    def delete(self, doc_id: str) -> bool:
        """Delete a record. Returns False when it was already gone."""
        store = self._require_store()
        try:
            current = store.get(doc_id)
            store.remove(doc_id, current.get("_rev"))
        except DocumentNotFound:
            logger.info("Document %s not found for deletion", doc_id)
            return False
        return True

    def all_records(self) -> list[dict[str, Any]]:
        return self._require_store().all_docs()

    # ── Backup files ─────────────────────────────────────────────────

    def export_to_file(self, path: str) -> str:
        """Write the export envelope to `path` (a directory gets a timestamped name)."""
        envelope = self.export_all()
        if os.path.isdir(path):
            path = os.path.join(path, f"filameter-db-export-{int(time.time() * 1000)}.json")
        atomic_write_json(path, envelope.to_dict())
        logger.info("Exported %d records to %s", len(envelope.regular), path)
        return path

    def import_from_file(self, path: str) -> ImportReport:
        with open(path) as f:
            data = json.load(f)
        return self.bulk_import(ExportEnvelope.from_dict(data))

    # ── Schema metadata ──────────────────────────────────────────────

    def migrate(self) -> int:
        """Bring `_local/info` up to CURRENT_DB_VERSION. Returns the resulting version."""
        store = self._require_store()
        try:
            info = store.get(INFO_DOC_ID)
        except DocumentNotFound:
            info = {"_id": INFO_DOC_ID, "version": 0, "synchash": "", "plan": "", "revision": 0}

        version = info.get("version", 0)
        if version < CURRENT_DB_VERSION:
            logger.info("Migrating filament database from version %d to %d", version, CURRENT_DB_VERSION)
            info.update(version=CURRENT_DB_VERSION, updated=int(time.time() * 1000))
            store.put(info)
        return CURRENT_DB_VERSION if version < CURRENT_DB_VERSION else version
