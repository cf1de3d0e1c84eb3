"""Error taxonomy for the sync engine.

Everything here is caught at the orchestrator boundary and turned into a
user-visible alert; nothing is meant to reach a caller of SyncEngine.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for sync failures."""


class InvalidInput(SyncError):
    """Malformed email, empty key, or malformed id/color on record save."""


class TransportError(SyncError):
    """Network failure, timeout, non-2xx status or unreadable relay body."""


class RelayError(SyncError):
    """The relay answered with status "error"; the message is shown verbatim."""


class ConflictError(SyncError):
    """A same-id write conflict survived the single revision-refresh retry."""

    def __init__(self, doc_id: str, message: str) -> None:
        super().__init__(f"Failed to update document {doc_id}: {message}")
        self.doc_id = doc_id


class BulkImportError(SyncError):
    """A non-conflict failure aborted a bulk import."""

    def __init__(self, doc_id: str, message: str) -> None:
        super().__init__(f"Failed to import document {doc_id}: {message}")
        self.doc_id = doc_id


class StoreUnavailable(SyncError):
    """The local document store handle is missing or not initialized."""
