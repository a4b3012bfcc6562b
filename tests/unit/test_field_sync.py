"""Unit tests for tournament_sync.field_sync."""

from __future__ import annotations

import pytest

from fakes import MemoryWebsiteStore, make_application, make_record
from tournament_sync.field_sync import sync_fields
from tournament_sync.shared import LocalStoreWriteFailure


def test_links_unlinked_survivor():
    store = MemoryWebsiteStore([make_record("L1")])
    updated, changed = sync_fields(store, make_record("L1"), make_application("A1"))

    assert changed is True
    assert updated.source_application_id == "A1"
    assert updated.managed_by_source is True
    assert store.records["L1"].source_application_id == "A1"
    assert store.records["L1"].managed_by_source is True


def test_already_linked_is_untouched():
    survivor = make_record("L1", source_application_id="A9", managed_by_source=True)
    store = MemoryWebsiteStore([survivor])

    updated, changed = sync_fields(store, survivor, make_application("A1"))

    assert changed is False
    assert updated.source_application_id == "A9"
    assert store.writes == []


def test_descriptive_fields_not_overwritten():
    survivor = make_record("L1", name="Summer Cup", venue="Old Hall")
    store = MemoryWebsiteStore([survivor])

    updated, _ = sync_fields(store, survivor, make_application("A1", venue="Harbour Courts"))

    assert updated.venue == "Old Hall"
    assert store.records["L1"].venue == "Old Hall"


def test_vanished_record_reports_no_change():
    store = MemoryWebsiteStore()
    updated, changed = sync_fields(store, make_record("L1"), make_application("A1"))
    assert changed is False
    assert updated.source_application_id is None


def test_write_failure_propagates():
    store = MemoryWebsiteStore([make_record("L1")])
    store.fail("link_source", "L1")
    with pytest.raises(LocalStoreWriteFailure) as exc_info:
        sync_fields(store, make_record("L1"), make_application("A1"))
    assert exc_info.value.record_id == "L1"
    assert exc_info.value.action == "link_source"
