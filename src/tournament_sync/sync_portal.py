"""tournament_sync.sync_portal

Unified CLI entrypoint for Portal → Website tournament sync.

Modes (--mode):
  reconcile        — match approved applications to tournaments, remove
                     duplicates, link survivors, report orphans (default)
  staging_sweep    — one completeness sweep over staging tournaments
  staging_watch    — run the sweep every --sweep-interval seconds
  staging_promote  — promote complete rows from the tournament_staging table
  staging_purge    — delete unpromoted tournament_staging rows older than
                     --purge-max-age-minutes

Usage (reconcile):
    python -m tournament_sync.sync_portal \\
        --mode reconcile \\
        --portal-dsn "$PORTAL_DB_DSN" \\
        --website-dsn "$WEBSITE_DB_DSN" \\
        --config config/tournament_sync.yml

Usage (staging_watch):
    python -m tournament_sync.sync_portal \\
        --mode staging_watch \\
        --website-dsn "$WEBSITE_DB_DSN" \\
        --sweep-interval 30

Exit status: 1 when a store cannot be reached (nothing is committed);
per-record write failures are listed in the report and still exit 0.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timedelta
from pathlib import Path

import click

from tournament_sync.config import SyncConfigValidationError, load_sync_config
from tournament_sync.matching import MATCHER_NAMES, get_matcher
from tournament_sync.reconcile import build_reconcile_report, run_reconcile
from tournament_sync.shared import (
    LocalStoreUnavailable,
    SourceUnavailable,
    StoreUnavailable,
    write_run_report,
)
from tournament_sync.staging import (
    StagingBackoff,
    StagingCounters,
    build_staging_report,
    promote_staged,
    purge_stale_staging,
    run_staging_sweep,
    watch_staging,
)
from tournament_sync.stores import PgPortalSource, PgStoreClient, PgWebsiteStore

MODES = (
    "reconcile",
    "staging_sweep",
    "staging_watch",
    "staging_promote",
    "staging_purge",
)


def _finish(client: PgStoreClient, run_id: str, dry_run: bool) -> None:
    if dry_run:
        client.rollback()
        click.echo(f"[{run_id}] DRY RUN — rolled back.")
    else:
        client.commit()
        click.echo(f"[{run_id}] Committed.")


@click.command()
@click.option(
    "--mode",
    default="reconcile",
    type=click.Choice(list(MODES)),
    show_default=True,
    help="Sync mode",
)
@click.option("--portal-dsn", envvar="PORTAL_DB_DSN", default=None, help="[reconcile] Portal PostgreSQL DSN")
@click.option("--website-dsn", envvar="WEBSITE_DB_DSN", required=True, help="Website PostgreSQL DSN")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False), help="YAML settings file")
@click.option("--matcher", default=None, type=click.Choice(list(MATCHER_NAMES)), help="[reconcile] Override the configured title matcher")
@click.option("--create-missing", is_flag=True, default=False, help="[reconcile] Stage tournaments for unmatched approved applications")
@click.option("--sweep-interval", default=None, type=float, help="[staging_watch] Seconds between sweeps")
@click.option("--max-sweeps", default=None, type=int, help="[staging_watch] Stop after this many sweeps")
@click.option("--purge-max-age-minutes", default=None, type=float, help="[staging_purge] Age after which unpromoted staging rows are deleted")
@click.option("--dry-run", is_flag=True, default=False, help="Roll back instead of committing")
@click.option("--run-id", default=None, help="Run identifier (default: random UUID)")
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    show_default=True,
)
def main(
    mode: str,
    portal_dsn: str | None,
    website_dsn: str,
    config_path: str | None,
    matcher: str | None,
    create_missing: bool,
    sweep_interval: float | None,
    max_sweeps: int | None,
    purge_max_age_minutes: float | None,
    dry_run: bool,
    run_id: str | None,
    log_level: str,
) -> None:
    """Portal → Website tournament sync CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()

    try:
        cfg = load_sync_config(Path(config_path) if config_path else None)
    except SyncConfigValidationError as exc:
        click.echo(f"[{run_id}] ERROR: invalid config {config_path}: {exc}", err=True)
        sys.exit(1)

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")

    website_client = PgStoreClient(website_dsn, unavailable=LocalStoreUnavailable)

    try:
        if mode == "reconcile":
            if not portal_dsn:
                click.echo(f"[{run_id}] ERROR: --portal-dsn is required for reconcile.", err=True)
                sys.exit(1)
            matcher_name = matcher or cfg.matcher
            portal_client = PgStoreClient(portal_dsn, autocommit=True, unavailable=SourceUnavailable)
            click.echo(f"[{run_id}] reconcile matcher={matcher_name}")
            with portal_client, website_client:
                ctrs = run_reconcile(
                    PgPortalSource(portal_client.conn),
                    PgWebsiteStore(website_client.conn),
                    matcher=get_matcher(matcher_name),
                    create_missing=create_missing or cfg.create_missing,
                )
                click.echo(build_reconcile_report(ctrs, dry_run=dry_run))
                _finish(website_client, run_id, dry_run)
            report_path = write_run_report(
                run_id, started_at, mode, dry_run,
                {"matcher": matcher_name},
                ctrs,
            )
            click.echo(f"[{run_id}] Run report: {report_path}")
            click.echo(f"[{run_id}] Summary: {json.dumps(ctrs.summary())}")
            if ctrs.failures:
                click.echo(
                    f"[{run_id}] {ctrs.failures} record(s) failed — see report for follow-up.",
                    err=True,
                )
            return

        if mode == "staging_watch":
            interval = sweep_interval or cfg.sweep_interval_seconds
            backoff = StagingBackoff(
                base_delay=interval,
                max_multiplier=cfg.backoff_max_multiplier,
            )
            click.echo(f"[{run_id}] staging_watch interval={interval}s max_sweeps={max_sweeps}")
            with website_client:
                store = PgWebsiteStore(website_client.conn)

                def _after_sweep(sweep_ctrs: StagingCounters) -> None:
                    click.echo(
                        f"[{run_id}] sweep: checked={sweep_ctrs.records_checked} "
                        f"promoted={sweep_ctrs.records_promoted} "
                        f"incomplete={sweep_ctrs.records_incomplete}"
                    )
                    _finish(website_client, run_id, dry_run)

                try:
                    ctrs = watch_staging(
                        store,
                        interval,
                        max_sweeps=max_sweeps,
                        backoff=backoff,
                        promote_staging_table=True,
                        after_sweep=_after_sweep,
                        on_sweep_error=lambda _exc: website_client.rollback(),
                    )
                except KeyboardInterrupt:
                    click.echo(f"[{run_id}] Interrupted — stopping watch.")
                    return
            click.echo(build_staging_report(ctrs, "Staging Watch Report", dry_run=dry_run))
        else:
            with website_client:
                store = PgWebsiteStore(website_client.conn)
                if mode == "staging_sweep":
                    ctrs = run_staging_sweep(store)
                    title = "Staging Completeness Sweep Report"
                elif mode == "staging_promote":
                    ctrs = promote_staged(store)
                    title = "Staging Table Promotion Report"
                else:
                    max_age = cfg.purge_max_age
                    if purge_max_age_minutes is not None:
                        max_age = timedelta(minutes=purge_max_age_minutes)
                    click.echo(f"[{run_id}] staging_purge max_age={max_age}")
                    ctrs = StagingCounters(staged_rows_purged=purge_stale_staging(store, max_age))
                    title = "Staging Table Purge Report"
                click.echo(build_staging_report(ctrs, title, dry_run=dry_run))
                _finish(website_client, run_id, dry_run)

    except StoreUnavailable as exc:
        click.echo(f"[{run_id}] FATAL: {exc} — nothing committed.", err=True)
        sys.exit(1)

    report_path = write_run_report(run_id, started_at, mode, dry_run, {}, ctrs)
    click.echo(f"[{run_id}] Run report: {report_path}")
    if ctrs.write_failures:
        click.echo(
            f"[{run_id}] {ctrs.write_failures} write failure(s) — see report for follow-up.",
            err=True,
        )


if __name__ == "__main__":
    main()
