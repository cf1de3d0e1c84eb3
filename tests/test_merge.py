"""Tests for envelope merging."""

from __future__ import annotations

from filasync.merge import ConflictPolicy, merge_envelopes
from filasync.models import ExportEnvelope


def _doc(doc_id: str, **fields) -> dict:
    return {"_id": doc_id, "filament": fields.pop("filament", doc_id), "material": "PLA", **fields}


class TestMergeEnvelopes:
    def test_remote_wins_on_shared_id(self):
        local = ExportEnvelope(regular=[_doc("x", used_weight=10)])
        remote = ExportEnvelope(regular=[_doc("x", used_weight=250)])

        merged = merge_envelopes(local, remote)

        assert merged.regular == [_doc("x", used_weight=250)]

    def test_local_wins_policy_keeps_local_copy(self):
        local = ExportEnvelope(regular=[_doc("x", used_weight=10)])
        remote = ExportEnvelope(regular=[_doc("x", used_weight=250)])

        merged = merge_envelopes(local, remote, ConflictPolicy.LOCAL_WINS)

        assert merged.regular == [_doc("x", used_weight=10)]

    def test_two_devices_union(self):
        """Device A holds {a, b}, the relay holds {b', c}: result is {a, b', c}."""
        local = ExportEnvelope(regular=[_doc("a"), _doc("b", color="#000000")])
        remote = ExportEnvelope(regular=[_doc("b", color="#FFFFFF"), _doc("c")])

        merged = merge_envelopes(local, remote)

        assert [d["_id"] for d in merged.regular] == ["a", "b", "c"]
        assert merged.regular[1]["color"] == "#FFFFFF"

    def test_no_record_lost(self):
        local = ExportEnvelope(regular=[_doc("a"), _doc("b")])
        remote = ExportEnvelope(regular=[_doc("c"), _doc("d")])

        merged = merge_envelopes(local, remote)

        assert {d["_id"] for d in merged.regular} == {"a", "b", "c", "d"}

    def test_idempotent(self):
        local = ExportEnvelope(regular=[_doc("a"), _doc("b", used_weight=1)])
        remote = ExportEnvelope(regular=[_doc("b", used_weight=2), _doc("c")], local=[{"_id": "_local/info"}])

        once = merge_envelopes(local, remote)
        twice = merge_envelopes(once, remote)

        assert twice == once

    def test_merge_with_self_is_identity(self):
        envelope = ExportEnvelope(regular=[_doc("a"), _doc("b")], local=[{"_id": "_local/info", "version": 1}])

        assert merge_envelopes(envelope, envelope) == envelope

    def test_empty_remote_keeps_local_records(self):
        local = ExportEnvelope(regular=[_doc("a")], local=[{"_id": "_local/info", "version": 1}])

        merged = merge_envelopes(local, ExportEnvelope())

        assert merged.regular == [_doc("a")]
        assert merged.local == []

    def test_metadata_taken_from_remote(self):
        local = ExportEnvelope(local=[{"_id": "_local/info", "version": 1, "plan": "free"}])
        remote = ExportEnvelope(local=[{"_id": "_local/info", "version": 1, "plan": "pro"}])

        merged = merge_envelopes(local, remote)

        assert merged.local == [{"_id": "_local/info", "version": 1, "plan": "pro"}]

    def test_duplicate_local_ids_collapse_to_one(self):
        local = ExportEnvelope(regular=[_doc("x", used_weight=1), _doc("x", used_weight=2)])
        remote = ExportEnvelope(regular=[_doc("x", used_weight=3)])

        merged = merge_envelopes(local, remote)

        assert merged.regular == [_doc("x", used_weight=3)]

    def test_inputs_not_mutated(self):
        local = ExportEnvelope(regular=[_doc("a")])
        remote = ExportEnvelope(regular=[_doc("b")])

        merge_envelopes(local, remote)

        assert [d["_id"] for d in local.regular] == ["a"]
        assert [d["_id"] for d in remote.regular] == ["b"]

    def test_repeated_remote_id_appears_once(self):
        remote = ExportEnvelope(regular=[_doc("x", used_weight=1), _doc("y"), _doc("x", used_weight=2)])

        merged = merge_envelopes(ExportEnvelope(), remote)

        assert [d["_id"] for d in merged.regular] == ["x", "y"]
        assert merged.regular[0]["used_weight"] == 2
