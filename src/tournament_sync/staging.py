"""tournament_sync.staging

Completeness gate and staging promoter (--mode staging_sweep | staging_watch
| staging_promote | staging_purge).

State machine on tournament.visibility_state:

    staging --(all required fields present)--> ready --(immediate)--> live

`live` is terminal.  Required fields: source_application_id, phone_number,
venue, organizer (blank strings count as missing; phone numbers need at
least 7 digits).  A record that fails the check is left untouched and
re-checked on the next sweep; there is no retry limit.

Re-check triggers:
  - evaluate_record() after every write to a staging record
  - run_staging_sweep() over every staging/ready record
  - watch_staging() running the sweep on a fixed interval, with an optional
    per-record StagingBackoff so long-incomplete records are polled less often

Idempotency:
  - Evaluating a live record is a no-op.
  - A record deleted between read and promotion yields 'not_found'; this is
    not an error (a duplicate delete may race a sweep).

Staging-table variant (tournament_staging):
  - stage_tournament() inserts a row; promote_staged() copies complete rows
    into tournament as live and marks them promoted in one store write, so a
    failure leaves the row unpromoted with no tournament behind it.
  - purge_stale_staging() deletes unpromoted rows older than max_age
    (default one hour).  Promoted rows and the tournament table are never
    touched by the purge.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from tournament_sync.models import (
    VISIBILITY_LIVE,
    VISIBILITY_READY,
    VISIBILITY_STAGING,
    StagedTournament,
    TournamentRecord,
)
from tournament_sync.normalize import normalize_phone, trim
from tournament_sync.shared import LocalStoreWriteFailure, StoreUnavailable
from tournament_sync.stores import WebsiteStore

log = logging.getLogger(__name__)

REQUIRED_FIELDS = ("source_application_id", "phone_number", "venue", "organizer")

OUTCOME_PROMOTED = "promoted"
OUTCOME_INCOMPLETE = "incomplete"
OUTCOME_ALREADY_LIVE = "already_live"
OUTCOME_NOT_FOUND = "not_found"

DEFAULT_SWEEP_INTERVAL_SECONDS = 30.0
DEFAULT_PURGE_MAX_AGE = timedelta(hours=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Completeness check
# ---------------------------------------------------------------------------

@dataclass
class CompletenessCheck:
    missing: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.missing


def check_completeness(record: TournamentRecord | StagedTournament) -> CompletenessCheck:
    missing: list[str] = []
    if trim(record.source_application_id) is None:
        missing.append("source_application_id")
    if normalize_phone(record.phone_number) is None:
        missing.append("phone_number")
    if trim(record.venue) is None:
        missing.append("venue")
    if trim(record.organizer) is None:
        missing.append("organizer")
    return CompletenessCheck(missing=missing)


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

@dataclass
class StagingCounters:
    records_checked: int = 0
    records_promoted: int = 0
    records_incomplete: int = 0
    records_already_live: int = 0
    records_not_found: int = 0
    records_skipped_backoff: int = 0
    staged_rows_purged: int = 0
    write_failures: int = 0
    sweeps_run: int = 0
    sweeps_failed: int = 0
    incomplete_records: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def tally(self, outcome: str) -> None:
        if outcome == OUTCOME_PROMOTED:
            self.records_promoted += 1
        elif outcome == OUTCOME_INCOMPLETE:
            self.records_incomplete += 1
        elif outcome == OUTCOME_ALREADY_LIVE:
            self.records_already_live += 1
        elif outcome == OUTCOME_NOT_FOUND:
            self.records_not_found += 1

    def merge(self, other: StagingCounters) -> None:
        for name in (
            "records_checked", "records_promoted", "records_incomplete",
            "records_already_live", "records_not_found", "records_skipped_backoff",
            "staged_rows_purged", "write_failures", "sweeps_run", "sweeps_failed",
        ):
            setattr(self, name, getattr(self, name) + getattr(other, name))
        self.incomplete_records.extend(other.incomplete_records)
        self.warnings.extend(other.warnings)

    def to_dict(self) -> dict[str, Any]:
        d = {
            k: v for k, v in self.__dict__.items()
            if k not in ("incomplete_records", "warnings")
        }
        d["incomplete_records"] = self.incomplete_records[:50]
        d["warnings"] = self.warnings[:50]
        return d


# ---------------------------------------------------------------------------
# Per-record backoff
# ---------------------------------------------------------------------------

@dataclass
class StagingBackoff:
    """Per-record exponential backoff for records that keep failing the gate.

    The first re-check of an incomplete record is due after base_delay; each
    further failure doubles the delay up to base_delay * max_multiplier.
    """

    base_delay: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    max_multiplier: float = 32.0
    _next_due: dict[str, float] = field(default_factory=dict, init=False, repr=False)
    _multiplier: dict[str, float] = field(default_factory=dict, init=False, repr=False)

    def is_due(self, record_id: str, now: float) -> bool:
        return now >= self._next_due.get(record_id, float("-inf"))

    def on_incomplete(self, record_id: str, now: float) -> float:
        """Record a failed check; return the delay until the next one."""
        mult = self._multiplier.get(record_id)
        mult = 1.0 if mult is None else min(mult * 2.0, self.max_multiplier)
        self._multiplier[record_id] = mult
        delay = self.base_delay * mult
        self._next_due[record_id] = now + delay
        return delay

    def forget(self, record_id: str) -> None:
        self._next_due.pop(record_id, None)
        self._multiplier.pop(record_id, None)

    def __len__(self) -> int:
        return len(self._next_due)


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------

def _evaluate(store: WebsiteStore, record: TournamentRecord, now: datetime) -> tuple[str, CompletenessCheck]:
    check = check_completeness(record)
    if record.visibility_state == VISIBILITY_LIVE:
        return OUTCOME_ALREADY_LIVE, check
    if not check.is_complete:
        log.info(
            "Tournament %s still %s: missing %s",
            record.label(), record.visibility_state, ", ".join(check.missing),
        )
        return OUTCOME_INCOMPLETE, check

    if record.visibility_state == VISIBILITY_STAGING:
        if not store.set_visibility(record.id, VISIBILITY_READY, checked_at=now):
            return OUTCOME_NOT_FOUND, check
        log.info("Tournament %s is ready for display", record.label())

    if not store.set_visibility(record.id, VISIBILITY_LIVE, checked_at=now, promoted_at=now):
        return OUTCOME_NOT_FOUND, check
    log.info("Tournament %s promoted to live", record.label())
    return OUTCOME_PROMOTED, check


def evaluate_record(
    store: WebsiteStore,
    record_id: str,
    now: datetime | None = None,
) -> str:
    """Re-check one record after a write; returns one of the OUTCOME_* values.

    Raises:
        LocalStoreWriteFailure: a visibility update failed.
    """
    record = store.get_tournament(record_id)
    if record is None:
        return OUTCOME_NOT_FOUND
    outcome, _check = _evaluate(store, record, now or utcnow())
    return outcome


def run_staging_sweep(
    store: WebsiteStore,
    backoff: StagingBackoff | None = None,
    now: datetime | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> StagingCounters:
    """Re-evaluate every staging/ready tournament once.

    Write failures are counted per record; only a failed read of the
    record list propagates (as LocalStoreUnavailable).
    """
    ctrs = StagingCounters(sweeps_run=1)
    now = now or utcnow()
    records = store.list_tournaments_by_visibility((VISIBILITY_STAGING, VISIBILITY_READY))

    for record in records:
        if backoff is not None and not backoff.is_due(record.id, clock()):
            ctrs.records_skipped_backoff += 1
            continue
        ctrs.records_checked += 1
        try:
            outcome, check = _evaluate(store, record, now)
        except LocalStoreWriteFailure as exc:
            ctrs.write_failures += 1
            ctrs.warnings.append(f"tournament {record.id}: {exc}")
            continue
        ctrs.tally(outcome)
        if outcome == OUTCOME_INCOMPLETE:
            ctrs.incomplete_records.append(
                f"{record.label()} missing {','.join(check.missing)}"
            )
            if backoff is not None:
                backoff.on_incomplete(record.id, clock())
        elif backoff is not None:
            backoff.forget(record.id)

    return ctrs


def watch_staging(
    store: WebsiteStore,
    interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    *,
    max_sweeps: int | None = None,
    backoff: StagingBackoff | None = None,
    promote_staging_table: bool = False,
    after_sweep: Callable[[StagingCounters], None] | None = None,
    on_sweep_error: Callable[[Exception], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> StagingCounters:
    """Run the sweep every `interval` seconds until max_sweeps (or forever).

    A sweep that cannot read the store is logged and retried on the next
    tick; it does not stop the loop.
    """
    totals = StagingCounters()
    sweeps = 0
    while max_sweeps is None or sweeps < max_sweeps:
        if sweeps:
            sleep(interval)
        sweeps += 1
        try:
            ctrs = run_staging_sweep(store, backoff=backoff, clock=clock)
            if promote_staging_table:
                ctrs.merge(promote_staged(store))
        except StoreUnavailable as exc:
            log.error("Staging sweep %d failed: %s", sweeps, exc)
            totals.sweeps_failed += 1
            totals.warnings.append(f"sweep {sweeps}: {exc}")
            if on_sweep_error is not None:
                on_sweep_error(exc)
            continue
        totals.merge(ctrs)
        # Only the latest sweep says what is still incomplete
        totals.incomplete_records = list(ctrs.incomplete_records)
        if after_sweep is not None:
            after_sweep(ctrs)
    return totals


# ---------------------------------------------------------------------------
# Staging-table variant
# ---------------------------------------------------------------------------

def stage_tournament(store: WebsiteStore, staged: StagedTournament) -> str:
    staged_id = store.insert_staged(staged)
    log.info("Staged tournament %r as %s", staged.name, staged_id)
    return staged_id


def promote_staged(store: WebsiteStore, now: datetime | None = None) -> StagingCounters:
    """Copy every complete, unpromoted staging row into tournament as live."""
    ctrs = StagingCounters()
    now = now or utcnow()

    for staged in store.list_unpromoted_staged():
        ctrs.records_checked += 1
        check = check_completeness(staged)
        if not check.is_complete:
            ctrs.records_incomplete += 1
            ctrs.incomplete_records.append(
                f"staged {staged.id} ({staged.name!r}) missing {','.join(check.missing)}"
            )
            continue
        try:
            tournament_id = store.promote_staged_row(staged.id, TournamentRecord(  # type: ignore[arg-type]
                id="",
                name=staged.name,
                start_date=staged.start_date,
                end_date=staged.end_date,
                source_application_id=staged.source_application_id,
                managed_by_source=True,
                visibility_state=VISIBILITY_LIVE,
                phone_number=staged.phone_number,
                venue=staged.venue,
                organizer=staged.organizer,
                promoted_at=now,
            ))
        except LocalStoreWriteFailure as exc:
            ctrs.write_failures += 1
            ctrs.warnings.append(f"staged {staged.id}: {exc}")
            continue
        if tournament_id is None:
            ctrs.records_not_found += 1
            continue
        ctrs.records_promoted += 1
        if staged.staged_at is not None:
            log.info(
                "Promoted staged tournament %r to %s (staged for %s)",
                staged.name, tournament_id, now - staged.staged_at,
            )
        else:
            log.info("Promoted staged tournament %r to %s", staged.name, tournament_id)

    return ctrs


def purge_stale_staging(
    store: WebsiteStore,
    max_age: timedelta = DEFAULT_PURGE_MAX_AGE,
    now: datetime | None = None,
) -> int:
    """Delete unpromoted staging rows staged before now - max_age."""
    cutoff = (now or utcnow()) - max_age
    purged = store.delete_unpromoted_staged_before(cutoff)
    if purged:
        log.info("Purged %d stale staging rows (staged before %s)", purged, cutoff.isoformat())
    return purged


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

def build_staging_report(ctrs: StagingCounters, title: str, dry_run: bool = False) -> str:
    lines = [
        "=" * 60,
        title,
        f"  dry_run: {dry_run}",
        "=" * 60,
        f"  records checked:             {ctrs.records_checked}",
        f"  promoted to live:            {ctrs.records_promoted}",
        f"  still incomplete:            {ctrs.records_incomplete}",
        f"  already live (no-op):        {ctrs.records_already_live}",
        f"  not found (deleted):         {ctrs.records_not_found}",
        f"  skipped (backoff):           {ctrs.records_skipped_backoff}",
        f"  staged rows purged:          {ctrs.staged_rows_purged}",
        f"Write failures:                {ctrs.write_failures}",
    ]
    if ctrs.incomplete_records:
        lines.append(f"\nIncomplete ({len(ctrs.incomplete_records)}):")
        for item in ctrs.incomplete_records[:20]:
            lines.append(f"  {item}")
        if len(ctrs.incomplete_records) > 20:
            lines.append(f"  ... and {len(ctrs.incomplete_records) - 20} more")
    if ctrs.warnings:
        lines.append(f"\nWarnings ({len(ctrs.warnings)}):")
        for w in ctrs.warnings[:20]:
            lines.append(f"  {w}")
        if len(ctrs.warnings) > 20:
            lines.append(f"  ... and {len(ctrs.warnings) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)
