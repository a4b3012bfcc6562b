"""tournament_sync.reconcile

Portal → Website reconciliation pass (--mode reconcile).

Algorithm (single-threaded, full scan, run to completion):
  1. Read all approved applications from the Portal and all tournaments
     from the Website, once.  A failed read aborts the pass before any
     mutation (SourceUnavailable / LocalStoreUnavailable).
  2. For each application:
       a. match()              — local tournaments with the same title
       b. resolve_duplicates() — only when more than one matched
       c. sync_fields()        — link the survivor if it has no source id
       d. evaluate_record()    — completeness re-check after the link write
  3. Report applications with no local match (candidates for manual
     creation, or staged automatically with create_missing=True) and local
     tournaments no application matched (orphans; reported, never deleted).
     create_missing skips an application already linked to a renamed
     tournament, and stages only one tournament per title in a pass.

Per-record isolation: a failed update or delete is logged with the record
id, counted, and the pass continues.  Tournaments deleted earlier in the
pass are not matched again.

Idempotency: a second pass over unchanged data reports fixed=0 and
duplicates_removed=0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from tournament_sync.duplicates import resolve_duplicates
from tournament_sync.field_sync import sync_fields
from tournament_sync.matching import Matcher, match
from tournament_sync.models import (
    TournamentApplication,
    TournamentRecord,
    record_from_application,
)
from tournament_sync.shared import LocalStoreWriteFailure
from tournament_sync.staging import OUTCOME_PROMOTED, evaluate_record
from tournament_sync.stores import PortalSource, WebsiteStore

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

@dataclass
class ReconcileCounters:
    applications_read: int = 0
    tournaments_read: int = 0
    matched: int = 0
    fixed: int = 0
    duplicates_removed: int = 0
    promoted: int = 0
    created: int = 0
    delete_failures: int = 0
    update_failures: int = 0
    unmatched_source_records: list[str] = field(default_factory=list)
    orphan_local_records: list[str] = field(default_factory=list)
    failed_records: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def failures(self) -> int:
        return self.delete_failures + self.update_failures

    def summary(self) -> dict[str, int]:
        return {
            "matched": self.matched,
            "fixed": self.fixed,
            "duplicatesRemoved": self.duplicates_removed,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "applications_read": self.applications_read,
            "tournaments_read": self.tournaments_read,
            "matched": self.matched,
            "fixed": self.fixed,
            "duplicates_removed": self.duplicates_removed,
            "promoted": self.promoted,
            "created": self.created,
            "delete_failures": self.delete_failures,
            "update_failures": self.update_failures,
            "unmatched_source_records": self.unmatched_source_records,
            "orphan_local_records": self.orphan_local_records,
            "failed_records": self.failed_records,
            "warnings": self.warnings[:50],
        }


# ---------------------------------------------------------------------------
# Driver
# ---------------------------------------------------------------------------

def _recheck(website: WebsiteStore, record_id: str, ctrs: ReconcileCounters) -> None:
    try:
        outcome = evaluate_record(website, record_id)
    except LocalStoreWriteFailure as exc:
        ctrs.update_failures += 1
        ctrs.failed_records.append(record_id)
        ctrs.warnings.append(f"promote {record_id}: {exc}")
        return
    if outcome == OUTCOME_PROMOTED:
        ctrs.promoted += 1


def run_reconcile(
    portal: PortalSource,
    website: WebsiteStore,
    matcher: Matcher | None = None,
    create_missing: bool = False,
) -> ReconcileCounters:
    """Run one reconciliation pass.

    Args:
        portal: Source of approved applications (read-only).
        website: Tournament store; mutated by deletes and link updates.
        matcher: Title matcher; defaults to exact string equality.
        create_missing: Stage a new tournament for every unmatched application.

    Returns:
        ReconcileCounters with run statistics.

    Raises:
        StoreUnavailable: either store could not be read.
    """
    ctrs = ReconcileCounters()

    applications = [a for a in portal.list_approved_applications() if a.is_approved]
    local_records = website.list_tournaments()
    ctrs.applications_read = len(applications)
    ctrs.tournaments_read = len(local_records)
    log.info(
        "Reconciling %d approved applications against %d tournaments",
        len(applications), len(local_records),
    )

    # Surviving local records in store order; deleted ids are dropped.
    remaining: dict[str, TournamentRecord] = {r.id: r for r in local_records}
    matched_ids: set[str] = set()

    for application in applications:
        matches = match(application, remaining.values(), matcher)
        if not matches:
            ctrs.unmatched_source_records.append(application.application_id)
            continue

        ctrs.matched += 1
        matched_ids.update(r.id for r in matches)

        survivor = matches[0]
        if len(matches) > 1:
            result = resolve_duplicates(website, matches, application.application_id)
            survivor = result.survivor
            for removed in result.removed:
                remaining.pop(removed.id, None)
            ctrs.duplicates_removed += len(result.removed)
            ctrs.delete_failures += len(result.failed)
            ctrs.failed_records.extend(r.id for r in result.failed)
            ctrs.warnings.extend(result.warnings)

        try:
            updated, changed = sync_fields(website, survivor, application)
        except LocalStoreWriteFailure as exc:
            log.error("Could not link tournament %s: %s", survivor.label(), exc)
            ctrs.update_failures += 1
            ctrs.failed_records.append(survivor.id)
            ctrs.warnings.append(f"link {survivor.id}: {exc}")
            continue

        remaining[updated.id] = updated
        if changed:
            ctrs.fixed += 1
            log.info(
                "Linked tournament %s to application %s",
                updated.label(), application.application_id,
            )
            _recheck(website, updated.id, ctrs)

    ctrs.orphan_local_records = [
        r.label() for rid, r in remaining.items() if rid not in matched_ids
    ]

    if create_missing:
        _stage_unmatched(website, applications, remaining, matcher, ctrs)

    return ctrs


def _stage_unmatched(
    website: WebsiteStore,
    applications: list[TournamentApplication],
    remaining: dict[str, TournamentRecord],
    matcher: Matcher | None,
    ctrs: ReconcileCounters,
) -> None:
    unmatched = set(ctrs.unmatched_source_records)
    # A tournament renamed locally still carries its application id.
    linked = {r.source_application_id: r for r in remaining.values() if r.source_application_id}
    created: list[TournamentRecord] = []

    for application in applications:
        app_id = application.application_id
        if app_id not in unmatched:
            continue
        if app_id in linked:
            log.warning(
                "Application %s has no title match but is linked to tournament %s; not staging a copy",
                app_id, linked[app_id].label(),
            )
            ctrs.warnings.append(f"create for {app_id}: already linked to {linked[app_id].id}")
            continue
        # At most one new tournament per title in a pass.
        same_title = match(application, created, matcher)
        if same_title:
            log.warning(
                "Application %s shares its title with %s staged this pass; not staging a copy",
                app_id, same_title[0].label(),
            )
            ctrs.warnings.append(f"create for {app_id}: title already staged as {same_title[0].id}")
            continue

        record = record_from_application(application)
        try:
            new_id = website.insert_tournament(record)
        except LocalStoreWriteFailure as exc:
            log.error("Could not stage tournament for application %s: %s", app_id, exc)
            ctrs.update_failures += 1
            ctrs.failed_records.append(app_id)
            ctrs.warnings.append(f"create for {app_id}: {exc}")
            continue
        created.append(replace(record, id=new_id))
        ctrs.created += 1
        log.info("Staged new tournament %s for application %s", new_id, app_id)
        _recheck(website, new_id, ctrs)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

def build_reconcile_report(ctrs: ReconcileCounters, dry_run: bool = False) -> str:
    lines = [
        "=" * 60,
        "Portal → Website Tournament Reconciliation Report",
        f"  dry_run: {dry_run}",
        "=" * 60,
        f"  approved applications read: {ctrs.applications_read}",
        f"  tournaments read:           {ctrs.tournaments_read}",
        f"  matched:                    {ctrs.matched}",
        f"  fixed (linked):             {ctrs.fixed}",
        f"  duplicates removed:         {ctrs.duplicates_removed}",
        f"  promoted to live:           {ctrs.promoted}",
        f"  created (staged):           {ctrs.created}",
        f"Delete failures:              {ctrs.delete_failures}",
        f"Update failures:              {ctrs.update_failures}",
    ]
    sections = (
        ("Applications with no tournament", ctrs.unmatched_source_records),
        ("Tournaments with no application (orphans)", ctrs.orphan_local_records),
        ("Failed records", ctrs.failed_records),
        ("Warnings", ctrs.warnings),
    )
    for heading, items in sections:
        if not items:
            continue
        lines.append(f"\n{heading} ({len(items)}):")
        for item in items[:20]:
            lines.append(f"  {item}")
        if len(items) > 20:
            lines.append(f"  ... and {len(items) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)
