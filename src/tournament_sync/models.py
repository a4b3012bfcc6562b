"""tournament_sync.models

Record types shared by the Portal and Website stores.

TournamentApplication rows are owned by the Portal and never written here.
TournamentRecord rows are the public catalogue; StagedTournament rows live in
the separate staging table and are copied into the catalogue on promotion.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from tournament_sync.normalize import normalize_space

# ---------------------------------------------------------------------------
# Enumerations (stored as text columns with CHECK constraints)
# ---------------------------------------------------------------------------

APPLICATION_STATUSES = ("submitted", "pending_review", "approved", "rejected")
STATUS_APPROVED = "approved"

VISIBILITY_STATES = ("staging", "ready", "live")
VISIBILITY_STAGING = "staging"
VISIBILITY_READY = "ready"
VISIBILITY_LIVE = "live"


# ---------------------------------------------------------------------------
# Portal side
# ---------------------------------------------------------------------------

@dataclass
class TournamentApplication:
    application_id: str
    title: str
    status: str
    start_date: date | None = None
    end_date: date | None = None
    organiser_name: str | None = None
    tel_contact: str | None = None
    email: str | None = None
    venue: str | None = None
    city: str | None = None
    state: str | None = None
    classification: str | None = None
    last_updated: datetime | None = None

    @property
    def is_approved(self) -> bool:
        return self.status == STATUS_APPROVED


# ---------------------------------------------------------------------------
# Website side
# ---------------------------------------------------------------------------

@dataclass
class TournamentRecord:
    id: str
    name: str
    start_date: date | None = None
    end_date: date | None = None
    source_application_id: str | None = None
    managed_by_source: bool = False
    visibility_state: str = VISIBILITY_STAGING
    phone_number: str | None = None
    venue: str | None = None
    organizer: str | None = None
    created_at: datetime | None = None
    completeness_checked_at: datetime | None = None
    promoted_at: datetime | None = None

    @property
    def is_linked(self) -> bool:
        return bool(self.source_application_id)

    def label(self) -> str:
        return f"{self.id} ({self.name!r})"


@dataclass
class StagedTournament:
    """Row of the separate staging table; promoted copies become TournamentRecords."""

    id: str | None
    name: str
    start_date: date | None = None
    end_date: date | None = None
    source_application_id: str | None = None
    phone_number: str | None = None
    venue: str | None = None
    organizer: str | None = None
    staged_at: datetime | None = None
    promoted: bool = False
    promoted_at: datetime | None = None
    live_tournament_id: str | None = None


def record_from_application(application: TournamentApplication) -> TournamentRecord:
    """Map Portal fields onto a new, unsaved staging TournamentRecord."""
    return TournamentRecord(
        id="",
        name=application.title,
        start_date=application.start_date,
        end_date=application.end_date,
        source_application_id=application.application_id,
        managed_by_source=True,
        visibility_state=VISIBILITY_STAGING,
        phone_number=application.tel_contact,
        venue=normalize_space(application.venue),
        organizer=normalize_space(application.organiser_name),
    )
