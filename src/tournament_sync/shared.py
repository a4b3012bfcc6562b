"""tournament_sync.shared

Shared utilities used by the reconcile and staging modes.
Includes the error taxonomy, the per-mutation SAVEPOINT helper, and
run-report writing support.
"""

from __future__ import annotations

import itertools
import json
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Protocol

import psycopg


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class StoreUnavailable(Exception):
    """A whole store cannot be read; the pass aborts before any mutation."""


class SourceUnavailable(StoreUnavailable):
    """The Portal application feed cannot be read."""


class LocalStoreUnavailable(StoreUnavailable):
    """The Website tournament store cannot be read."""


class LocalStoreWriteFailure(Exception):
    """A single Website update or delete failed; callers count it and continue."""

    def __init__(self, record_id: str, action: str, cause: BaseException | None = None) -> None:
        self.record_id = record_id
        self.action = action
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{action} failed for tournament {record_id}{detail}")


# ---------------------------------------------------------------------------
# SAVEPOINT helper
# ---------------------------------------------------------------------------

_savepoint_seq = itertools.count()


@contextmanager
def savepoint(conn: psycopg.Connection, prefix: str) -> Iterator[None]:
    """Wrap one mutation in a SAVEPOINT; roll back only that mutation on error."""
    sp = f"{prefix}_{next(_savepoint_seq)}"
    conn.execute(f"SAVEPOINT {sp}")
    try:
        yield
    except Exception:
        if not conn.closed:
            conn.execute(f"ROLLBACK TO SAVEPOINT {sp}")
        raise
    conn.execute(f"RELEASE SAVEPOINT {sp}")


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

class SupportsToDict(Protocol):
    def to_dict(self) -> dict[str, Any]: ...


def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    dry_run: bool,
    context: dict[str, Any],
    counters: SupportsToDict,
    reports_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        "dry_run": dry_run,
        **context,
        "counters": counters.to_dict(),
    }
    report_path = reports_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
