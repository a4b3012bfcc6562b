"""Unit tests for tournament_sync.matching."""

from __future__ import annotations

import pytest

from fakes import make_application, make_record
from tournament_sync.matching import (
    ExactTitleMatcher,
    NormalizedTitleMatcher,
    get_matcher,
    match,
)


class TestExactMatch:
    def test_returns_all_same_title_records_in_order(self):
        records = [
            make_record("L1", "Summer Cup"),
            make_record("L2", "Winter Cup"),
            make_record("L3", "Summer Cup"),
        ]
        result = match(make_application(title="Summer Cup"), records)
        assert [r.id for r in result] == ["L1", "L3"]

    def test_no_match_returns_empty(self):
        assert match(make_application(title="Autumn Open"), [make_record("L1")]) == []

    def test_empty_local_list(self):
        assert match(make_application(), []) == []

    def test_trailing_whitespace_does_not_match(self):
        assert match(make_application(title="Summer Cup"), [make_record("L1", "Summer Cup ")]) == []

    def test_case_sensitive(self):
        assert match(make_application(title="Summer Cup"), [make_record("L1", "summer cup")]) == []

    def test_accepts_any_iterable(self):
        records = {"L1": make_record("L1")}
        assert [r.id for r in match(make_application(), records.values())] == ["L1"]


class TestNormalizedMatch:
    def test_ignores_case_punctuation_and_spacing(self):
        matcher = NormalizedTitleMatcher()
        records = [make_record("L1", "summer  cup!"), make_record("L2", "Summer Cups")]
        result = match(make_application(title="Summer Cup"), records, matcher)
        assert [r.id for r in result] == ["L1"]

    def test_blank_titles_never_match(self):
        matcher = NormalizedTitleMatcher()
        assert not matcher.matches(make_application(title="  "), make_record("L1", ""))


class TestGetMatcher:
    def test_exact(self):
        assert isinstance(get_matcher("exact"), ExactTitleMatcher)

    def test_normalized(self):
        assert isinstance(get_matcher("normalized"), NormalizedTitleMatcher)

    def test_unknown_raises(self):
        with pytest.raises(ValueError, match="Unknown matcher"):
            get_matcher("fuzzy")
