"""tournament_sync.matching

Decides whether a Portal application and a Website tournament denote the
same real-world event.

The default ExactTitleMatcher compares application.title with record.name
using exact, case-sensitive string equality; titles differing only by
trailing whitespace or punctuation do NOT match.  NormalizedTitleMatcher is
the tolerant alternative (selected with `matcher: normalized` in the config).

Matching is a pure read: no store access, no mutation.  Filtering the
applications down to approved ones is the driver's job.
"""

from __future__ import annotations

from typing import Iterable, Protocol

from tournament_sync.models import TournamentApplication, TournamentRecord
from tournament_sync.normalize import normalize_title

MATCHER_NAMES = ("exact", "normalized")


class Matcher(Protocol):
    name: str

    def matches(self, application: TournamentApplication, record: TournamentRecord) -> bool: ...


class ExactTitleMatcher:
    name = "exact"

    def matches(self, application: TournamentApplication, record: TournamentRecord) -> bool:
        return application.title == record.name


class NormalizedTitleMatcher:
    name = "normalized"

    def matches(self, application: TournamentApplication, record: TournamentRecord) -> bool:
        title = normalize_title(application.title)
        return title is not None and title == normalize_title(record.name)


def get_matcher(name: str) -> Matcher:
    if name == "exact":
        return ExactTitleMatcher()
    if name == "normalized":
        return NormalizedTitleMatcher()
    raise ValueError(f"Unknown matcher '{name}'. Must be one of {list(MATCHER_NAMES)}.")


def match(
    application: TournamentApplication,
    local_records: Iterable[TournamentRecord],
    matcher: Matcher | None = None,
) -> list[TournamentRecord]:
    """Return every local record matching the application, in input order."""
    matcher = matcher or ExactTitleMatcher()
    return [r for r in local_records if matcher.matches(application, r)]
