"""Reconcile a local export with a remote snapshot.

This is last-writer-wins-by-source, not a field-level merge: for an id present
on both sides one whole document wins. With the default policy a concurrent
edit made on this device to a record that another device also pushed is
overwritten by the remote copy. Store metadata (`local`) is always taken from
the remote side.
"""

from __future__ import annotations

import enum
from typing import Any

from .models import ExportEnvelope


class ConflictPolicy(str, enum.Enum):
    REMOTE_WINS = "remote_wins"
    LOCAL_WINS = "local_wins"


def merge_envelopes(
    local: ExportEnvelope,
    remote: ExportEnvelope,
    policy: ConflictPolicy = ConflictPolicy.REMOTE_WINS,
) -> ExportEnvelope:
    """Merge two envelopes into one.

    Local ordering is kept for shared and local-only documents; remote-only
    documents follow in remote order. An id repeated on the remote side
    contributes its last copy, once.
    """
    remote_by_id: dict[str, dict[str, Any]] = {
        doc["_id"]: doc for doc in remote.regular if doc.get("_id")
    }
    merged: list[dict[str, Any]] = []
    matched: set[str] = set()

    for local_doc in local.regular:
        doc_id = local_doc.get("_id")
        if doc_id and doc_id in remote_by_id:
            if doc_id in matched:
                continue
            winner = remote_by_id[doc_id] if policy is ConflictPolicy.REMOTE_WINS else local_doc
            merged.append(winner)
            matched.add(doc_id)
        else:
            merged.append(local_doc)

    for remote_doc in remote.regular:
        doc_id = remote_doc.get("_id", "")
        if doc_id in matched:
            continue
        merged.append(remote_by_id.get(doc_id, remote_doc))
        if doc_id:
            matched.add(doc_id)

    return ExportEnvelope(regular=merged, local=list(remote.local))
