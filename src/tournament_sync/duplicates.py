"""tournament_sync.duplicates

Collapses several Website tournaments matched to one Portal application
into a single survivor.

Survivor selection (first rule that applies wins):
  1. a record already linked to this application's id
  2. any record carrying a non-empty source_application_id
  3. the first record in the input list

Within a rule, the first record in store order wins.  Ties are not errors.

Every non-survivor is deleted permanently (no soft delete).  Deletes are
independent: a failing delete is recorded and the remaining duplicates are
still removed; already-deleted siblings stay deleted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from tournament_sync.models import TournamentRecord
from tournament_sync.shared import LocalStoreWriteFailure
from tournament_sync.stores import WebsiteStore

log = logging.getLogger(__name__)


@dataclass
class ResolveResult:
    survivor: TournamentRecord
    removed: list[TournamentRecord] = field(default_factory=list)
    failed: list[TournamentRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def choose_survivor(
    matches: list[TournamentRecord],
    application_id: str | None = None,
) -> TournamentRecord:
    if not matches:
        raise ValueError("choose_survivor() needs at least one record")
    if application_id:
        for record in matches:
            if record.source_application_id == application_id:
                return record
    for record in matches:
        if record.is_linked:
            return record
    return matches[0]


def resolve_duplicates(
    store: WebsiteStore,
    matches: list[TournamentRecord],
    application_id: str | None = None,
) -> ResolveResult:
    """Keep one survivor and delete the rest; never raises on a failed delete."""
    survivor = choose_survivor(matches, application_id)
    result = ResolveResult(survivor=survivor)

    for record in matches:
        if record is survivor:
            continue
        try:
            deleted = store.delete_tournament(record.id)
        except LocalStoreWriteFailure as exc:
            log.error("Could not delete duplicate tournament %s: %s", record.label(), exc)
            result.failed.append(record)
            result.warnings.append(f"delete {record.id}: {exc}")
            continue
        if deleted:
            log.info("Removed duplicate tournament %s (kept %s)", record.label(), survivor.id)
        else:
            # Already gone (concurrent delete); the end state is the same.
            log.info("Duplicate tournament %s was already deleted", record.label())
        result.removed.append(record)

    return result
