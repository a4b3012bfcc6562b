"""Unit tests for tournament_sync.duplicates."""

from __future__ import annotations

import pytest

from fakes import MemoryWebsiteStore, make_record
from tournament_sync.duplicates import choose_survivor, resolve_duplicates


# ---------------------------------------------------------------------------
# choose_survivor
# ---------------------------------------------------------------------------

class TestChooseSurvivor:
    def test_prefers_linked_record(self):
        matches = [
            make_record("L1"),
            make_record("L2", source_application_id="A9"),
            make_record("L3"),
        ]
        assert choose_survivor(matches).id == "L2"

    def test_prefers_record_linked_to_this_application(self):
        matches = [
            make_record("L1", source_application_id="A9"),
            make_record("L2", source_application_id="A1"),
        ]
        assert choose_survivor(matches, "A1").id == "L2"

    def test_first_linked_wins_ties(self):
        matches = [
            make_record("L1", source_application_id="A7"),
            make_record("L2", source_application_id="A8"),
        ]
        assert choose_survivor(matches, "A1").id == "L1"

    def test_falls_back_to_first(self):
        matches = [make_record("L1"), make_record("L2")]
        assert choose_survivor(matches).id == "L1"

    def test_blank_source_id_is_not_linked(self):
        matches = [make_record("L1"), make_record("L2", source_application_id="")]
        assert choose_survivor(matches).id == "L1"

    def test_empty_raises(self):
        with pytest.raises(ValueError):
            choose_survivor([])


# ---------------------------------------------------------------------------
# resolve_duplicates
# ---------------------------------------------------------------------------

class TestResolveDuplicates:
    def test_deletes_every_non_survivor(self):
        records = [
            make_record("L1"),
            make_record("L2", source_application_id="A1"),
            make_record("L3"),
        ]
        store = MemoryWebsiteStore(records)
        result = resolve_duplicates(store, records, "A1")

        assert result.survivor.id == "L2"
        assert sorted(r.id for r in result.removed) == ["L1", "L3"]
        assert result.failed == []
        assert list(store.records) == ["L2"]

    def test_failed_delete_does_not_stop_siblings(self):
        records = [make_record("L1"), make_record("L2"), make_record("L3")]
        store = MemoryWebsiteStore(records)
        store.fail("delete_tournament", "L2")

        result = resolve_duplicates(store, records)

        assert result.survivor.id == "L1"
        assert [r.id for r in result.removed] == ["L3"]
        assert [r.id for r in result.failed] == ["L2"]
        assert len(result.warnings) == 1
        assert "L2" in result.warnings[0]
        assert sorted(store.records) == ["L1", "L2"]

    def test_already_deleted_counts_as_removed(self):
        records = [make_record("L1"), make_record("L2")]
        store = MemoryWebsiteStore([records[0]])

        result = resolve_duplicates(store, records)

        assert [r.id for r in result.removed] == ["L2"]
        assert result.failed == []

    def test_survivor_is_never_deleted(self):
        records = [make_record("L1"), make_record("L2")]
        store = MemoryWebsiteStore(records)
        resolve_duplicates(store, records)
        assert ("delete_tournament", "L1") not in store.writes
