"""Tests for job rows and the override mapping lifecycle."""

from datetime import datetime, timezone

import pytest

from rulesapp.core.errors import InvalidTransition, MappingNotFound
from rulesapp.core.types import (
    DocumentType,
    IngestionJob,
    IngestionStatus,
    OverrideProposal,
    OverrideStatus,
    ScopeLevel,
)
from rulesapp.storage.table_store import mapping_id_for


def _proposal(source="r1", target="p1"):
    return OverrideProposal(
        source_rule_key="6.01(a)",
        source_chunk_id=source,
        source_scope=ScopeLevel.REGIONAL,
        target_rule_key="6.01(a)",
        target_chunk_id=target,
        target_scope=ScopeLevel.PROVINCIAL,
        confidence=0.9,
        detection_reason="Text contains override pattern: 'replaces rule'",
    )


class TestJobs:
    def test_upsert_and_get(self, table_store):
        started = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        job = IngestionJob("job1", "2025", "ABC", DocumentType.REGIONAL_FR, IngestionStatus.IN_PROGRESS,
                           started_at=started)
        table_store.upsert_job(job)
        assert table_store.get_job("2025", "ABC", "job1") == job

        done = IngestionJob("job1", "2025", "ABC", DocumentType.REGIONAL_FR, IngestionStatus.COMPLETED,
                            page_count=3, chunk_count=7, started_at=started)
        table_store.upsert_job(done)
        loaded = table_store.get_job("2025", "ABC", "job1")
        assert loaded.status is IngestionStatus.COMPLETED
        assert (loaded.page_count, loaded.chunk_count) == (3, 7)

    def test_jobs_partitioned_by_context(self, table_store):
        table_store.upsert_job(IngestionJob("job1", "2025", None, DocumentType.NATIONAL_FR, IngestionStatus.QUEUED))
        assert table_store.get_job("2025", None, "job1") is not None
        assert table_store.get_job("2025", "ABC", "job1") is None
        assert table_store.get_job("2025", None, "missing") is None

    def test_latest_jobs_newest_first(self, table_store):
        for job_id, day in [("old", 1), ("new", 3), ("mid", 2)]:
            table_store.upsert_job(IngestionJob(job_id, "2025", None, DocumentType.NATIONAL_FR,
                                                IngestionStatus.COMPLETED,
                                                started_at=datetime(2025, 3, day, tzinfo=timezone.utc)))
        table_store.upsert_job(IngestionJob("waiting", "2025", None, DocumentType.NATIONAL_EN, IngestionStatus.QUEUED))
        table_store.upsert_job(IngestionJob("other", "2025", "ABC", DocumentType.REGIONAL_FR, IngestionStatus.QUEUED))

        assert [j.job_id for j in table_store.latest_jobs("2025", None)] == ["waiting", "new", "mid", "old"]
        assert [j.job_id for j in table_store.latest_jobs("2025", None, limit=2)] == ["waiting", "new"]
        assert [j.job_id for j in table_store.latest_jobs("2025", "ABC")] == ["other"]


class TestOverrideMappings:
    def test_proposals_inserted_once(self, table_store):
        assert table_store.add_proposals("2025", "ABC", [_proposal(), _proposal(target="n1")]) == 2
        assert table_store.add_proposals("2025", "ABC", [_proposal()]) == 0
        mappings = table_store.list_mappings("2025", "ABC")
        assert len(mappings) == 2
        assert all(m.status is OverrideStatus.PROPOSED for m in mappings)
        assert all(m.created_at is not None for m in mappings)

    def test_mapping_id_is_deterministic(self, table_store):
        table_store.add_proposals("2025", "ABC", [_proposal()])
        (m,) = table_store.list_mappings("2025", "ABC")
        assert m.mapping_id == mapping_id_for("r1", "p1")

    def test_confirm(self, table_store):
        table_store.add_proposals("2025", "ABC", [_proposal()])
        mid = mapping_id_for("r1", "p1")
        m = table_store.review_mapping("2025", "ABC", mid, "confirm", "alice")
        assert m.status is OverrideStatus.CONFIRMED
        assert m.reviewed_by == "alice"
        assert m.reviewed_at is not None
        assert m.rejection_reason is None
        assert set(table_store.confirmed_overrides("2025", "ABC")) == {"r1"}

    def test_reject_keeps_reason(self, table_store):
        table_store.add_proposals("2025", "ABC", [_proposal()])
        mid = mapping_id_for("r1", "p1")
        m = table_store.review_mapping("2025", "ABC", mid, "Reject", "bob", reason="not an override")
        assert m.status is OverrideStatus.REJECTED
        assert m.rejection_reason == "not an override"
        assert table_store.confirmed_overrides("2025", "ABC") == {}

    @pytest.mark.parametrize("first,second", [
        ("confirm", "reject"),
        ("reject", "confirm"),
        ("confirm", "confirm"),
    ])
    def test_terminal_states_cannot_change(self, table_store, first, second):
        table_store.add_proposals("2025", "ABC", [_proposal()])
        mid = mapping_id_for("r1", "p1")
        table_store.review_mapping("2025", "ABC", mid, first, "alice")
        with pytest.raises(InvalidTransition):
            table_store.review_mapping("2025", "ABC", mid, second, "bob")

    def test_reingestion_does_not_reset_review(self, table_store):
        table_store.add_proposals("2025", "ABC", [_proposal()])
        mid = mapping_id_for("r1", "p1")
        table_store.review_mapping("2025", "ABC", mid, "confirm", "alice")
        table_store.add_proposals("2025", "ABC", [_proposal()])
        assert table_store.get_mapping("2025", "ABC", mid).status is OverrideStatus.CONFIRMED

    def test_unknown_mapping(self, table_store):
        with pytest.raises(MappingNotFound):
            table_store.get_mapping("2025", "ABC", "nope")
        with pytest.raises(MappingNotFound):
            table_store.review_mapping("2025", "ABC", "nope", "confirm", "alice")

    def test_bad_action(self, table_store):
        table_store.add_proposals("2025", "ABC", [_proposal()])
        with pytest.raises(ValueError):
            table_store.review_mapping("2025", "ABC", mapping_id_for("r1", "p1"), "approve", "alice")

    def test_status_filter_and_partitions(self, table_store):
        table_store.add_proposals("2025", "ABC", [_proposal(), _proposal(target="n1")])
        table_store.review_mapping("2025", "ABC", mapping_id_for("r1", "n1"), "confirm", "alice")
        assert [m.target_chunk_id for m in table_store.list_mappings("2025", "ABC", OverrideStatus.PROPOSED)] == ["p1"]
        assert [m.target_chunk_id for m in table_store.list_mappings("2025", "ABC", OverrideStatus.CONFIRMED)] == ["n1"]
        assert table_store.list_mappings("2025", "XYZ") == []
        assert table_store.list_mappings("2025", None) == []


class TestStatusEnum:
    def test_allowed_transitions(self):
        assert OverrideStatus.PROPOSED.transition(OverrideStatus.CONFIRMED) is OverrideStatus.CONFIRMED
        assert OverrideStatus.PROPOSED.transition(OverrideStatus.REJECTED) is OverrideStatus.REJECTED

    @pytest.mark.parametrize("current,target", [
        (OverrideStatus.PROPOSED, OverrideStatus.PROPOSED),
        (OverrideStatus.CONFIRMED, OverrideStatus.REJECTED),
        (OverrideStatus.REJECTED, OverrideStatus.CONFIRMED),
        (OverrideStatus.CONFIRMED, OverrideStatus.PROPOSED),
    ])
    def test_forbidden_transitions(self, current, target):
        with pytest.raises(InvalidTransition):
            current.transition(target)
