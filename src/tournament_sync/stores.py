"""tournament_sync.stores

Store clients for the Portal (application feed) and the Website
(tournament catalogue + staging table).

Connections are never module-level: a PgStoreClient is constructed with a
DSN, opened explicitly (or used as a context manager), and handed to the
PgPortalSource / PgWebsiteStore adapters.  The reconcile and staging modules
only depend on the PortalSource / WebsiteStore protocols, so they run
unchanged against in-memory fakes.

Transactions:
  - The Website connection runs with autocommit=False; the caller commits
    (or rolls back for --dry-run) once the pass is over.
  - Every Website mutation is wrapped in its own SAVEPOINT, so a failing
    update/delete rolls back only itself and surfaces as
    LocalStoreWriteFailure.  The batch as a whole is not atomic.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Protocol

import psycopg

from tournament_sync.models import (
    STATUS_APPROVED,
    StagedTournament,
    TournamentApplication,
    TournamentRecord,
)
from tournament_sync.shared import (
    LocalStoreUnavailable,
    LocalStoreWriteFailure,
    SourceUnavailable,
    StoreUnavailable,
    savepoint,
)

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------

class PortalSource(Protocol):
    def list_approved_applications(self) -> list[TournamentApplication]: ...


class WebsiteStore(Protocol):
    def list_tournaments(self) -> list[TournamentRecord]: ...

    def list_tournaments_by_visibility(self, states: tuple[str, ...]) -> list[TournamentRecord]: ...

    def get_tournament(self, record_id: str) -> TournamentRecord | None: ...

    def insert_tournament(self, record: TournamentRecord) -> str: ...

    def link_source(self, record_id: str, application_id: str) -> bool: ...

    def set_visibility(
        self, record_id: str, state: str, checked_at: datetime, promoted_at: datetime | None = None,
    ) -> bool: ...

    def delete_tournament(self, record_id: str) -> bool: ...

    # staging-table variant
    def insert_staged(self, staged: StagedTournament) -> str: ...

    def list_unpromoted_staged(self) -> list[StagedTournament]: ...

    def promote_staged_row(self, staged_id: str, record: TournamentRecord) -> str | None: ...

    def delete_unpromoted_staged_before(self, cutoff: datetime) -> int: ...


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------

class PgStoreClient:
    """Explicitly opened psycopg connection with guaranteed release.

    Usage:
        with PgStoreClient(dsn, unavailable=SourceUnavailable) as client:
            source = PgPortalSource(client.conn)
    """

    def __init__(
        self,
        dsn: str,
        *,
        autocommit: bool = False,
        unavailable: type[StoreUnavailable] = StoreUnavailable,
    ) -> None:
        self._dsn = dsn
        self._autocommit = autocommit
        self._unavailable = unavailable
        self._conn: psycopg.Connection | None = None

    @property
    def conn(self) -> psycopg.Connection:
        if self._conn is None or self._conn.closed:
            raise RuntimeError("store client is not open")
        return self._conn

    @property
    def is_open(self) -> bool:
        return self._conn is not None and not self._conn.closed

    def open(self) -> psycopg.Connection:
        if self.is_open:
            return self._conn  # type: ignore[return-value]
        try:
            self._conn = psycopg.connect(self._dsn, autocommit=self._autocommit)
        except psycopg.Error as exc:
            raise self._unavailable(f"cannot connect: {exc}") from exc
        return self._conn

    def commit(self) -> None:
        self.conn.commit()

    def rollback(self) -> None:
        if self.is_open:
            self.conn.rollback()

    def close(self) -> None:
        if self._conn is not None and not self._conn.closed:
            self._conn.close()
        self._conn = None

    def __enter__(self) -> PgStoreClient:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None and self.is_open and not self._autocommit:
                self.conn.rollback()
        finally:
            self.close()


# ---------------------------------------------------------------------------
# Portal source
# ---------------------------------------------------------------------------

_APPLICATION_COLS = """
    application_id, title, status, start_date, end_date,
    organiser_name, tel_contact, email, venue, city, state,
    classification, last_updated
"""


def _row_to_application(row: tuple[Any, ...]) -> TournamentApplication:
    return TournamentApplication(
        application_id=str(row[0]),
        title=row[1],
        status=row[2],
        start_date=row[3],
        end_date=row[4],
        organiser_name=row[5],
        tel_contact=row[6],
        email=row[7],
        venue=row[8],
        city=row[9],
        state=row[10],
        classification=row[11],
        last_updated=row[12],
    )


class PgPortalSource:
    """Read-only view over tournament_application."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    def list_approved_applications(self) -> list[TournamentApplication]:
        try:
            rows = self._conn.execute(
                f"""
                SELECT {_APPLICATION_COLS}
                FROM tournament_application
                WHERE status = %s
                ORDER BY submitted_at DESC, application_id ASC
                """,
                (STATUS_APPROVED,),
            ).fetchall()
        except psycopg.Error as exc:
            raise SourceUnavailable(f"cannot read tournament applications: {exc}") from exc
        return [_row_to_application(r) for r in rows]


# ---------------------------------------------------------------------------
# Website store
# ---------------------------------------------------------------------------

_TOURNAMENT_COLS = """
    id, name, start_date, end_date, source_application_id, managed_by_source,
    visibility_state, phone_number, venue, organizer, created_at,
    completeness_checked_at, promoted_at
"""

_STAGED_COLS = """
    id, name, start_date, end_date, source_application_id, phone_number,
    venue, organizer, staged_at, promoted, promoted_at, live_tournament_id
"""


_INSERT_TOURNAMENT_SQL = """
    INSERT INTO tournament
        (name, start_date, end_date, source_application_id, managed_by_source,
         visibility_state, phone_number, venue, organizer, promoted_at)
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
    RETURNING id
"""


def _tournament_params(record: TournamentRecord) -> tuple[Any, ...]:
    return (
        record.name, record.start_date, record.end_date, record.source_application_id,
        record.managed_by_source, record.visibility_state, record.phone_number,
        record.venue, record.organizer, record.promoted_at,
    )


def _row_to_record(row: tuple[Any, ...]) -> TournamentRecord:
    return TournamentRecord(
        id=str(row[0]),
        name=row[1],
        start_date=row[2],
        end_date=row[3],
        source_application_id=row[4],
        managed_by_source=bool(row[5]),
        visibility_state=row[6],
        phone_number=row[7],
        venue=row[8],
        organizer=row[9],
        created_at=row[10],
        completeness_checked_at=row[11],
        promoted_at=row[12],
    )


def _row_to_staged(row: tuple[Any, ...]) -> StagedTournament:
    return StagedTournament(
        id=str(row[0]),
        name=row[1],
        start_date=row[2],
        end_date=row[3],
        source_application_id=row[4],
        phone_number=row[5],
        venue=row[6],
        organizer=row[7],
        staged_at=row[8],
        promoted=bool(row[9]),
        promoted_at=row[10],
        live_tournament_id=str(row[11]) if row[11] else None,
    )


class PgWebsiteStore:
    """Read/write access to tournament and tournament_staging.

    Reads raise LocalStoreUnavailable; writes raise LocalStoreWriteFailure.
    Write methods return False when the target row no longer exists.
    """

    def __init__(self, conn: psycopg.Connection) -> None:
        self._conn = conn

    # -- reads ---------------------------------------------------------------

    def _read(self, sql: str, params: tuple[Any, ...] = ()) -> list[tuple[Any, ...]]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except psycopg.Error as exc:
            raise LocalStoreUnavailable(f"cannot read tournaments: {exc}") from exc

    def list_tournaments(self) -> list[TournamentRecord]:
        rows = self._read(
            f"SELECT {_TOURNAMENT_COLS} FROM tournament ORDER BY created_at ASC, id ASC"
        )
        return [_row_to_record(r) for r in rows]

    def list_tournaments_by_visibility(self, states: tuple[str, ...]) -> list[TournamentRecord]:
        rows = self._read(
            f"""
            SELECT {_TOURNAMENT_COLS} FROM tournament
            WHERE visibility_state = ANY(%s)
            ORDER BY created_at ASC, id ASC
            """,
            (list(states),),
        )
        return [_row_to_record(r) for r in rows]

    def get_tournament(self, record_id: str) -> TournamentRecord | None:
        rows = self._read(
            f"SELECT {_TOURNAMENT_COLS} FROM tournament WHERE id = %s",
            (record_id,),
        )
        return _row_to_record(rows[0]) if rows else None

    def list_unpromoted_staged(self) -> list[StagedTournament]:
        rows = self._read(
            f"""
            SELECT {_STAGED_COLS} FROM tournament_staging
            WHERE NOT promoted
            ORDER BY staged_at ASC, id ASC
            """
        )
        return [_row_to_staged(r) for r in rows]

    # -- writes --------------------------------------------------------------

    def _write(self, record_id: str, action: str, sql: str, params: tuple[Any, ...]) -> int:
        try:
            with savepoint(self._conn, action):
                cur = self._conn.execute(sql, params)
                return cur.rowcount
        except psycopg.Error as exc:
            log.warning("%s failed for tournament %s: %s", action, record_id, exc)
            raise LocalStoreWriteFailure(record_id, action, exc) from exc

    def _insert_returning_id(self, action: str, sql: str, params: tuple[Any, ...]) -> str:
        try:
            with savepoint(self._conn, action):
                row = self._conn.execute(sql, params).fetchone()
        except psycopg.Error as exc:
            log.warning("%s failed: %s", action, exc)
            raise LocalStoreWriteFailure("<new>", action, exc) from exc
        return str(row[0])

    def insert_tournament(self, record: TournamentRecord) -> str:
        return self._insert_returning_id(
            "insert_tournament", _INSERT_TOURNAMENT_SQL, _tournament_params(record),
        )

    def link_source(self, record_id: str, application_id: str) -> bool:
        return self._write(
            record_id,
            "link_source",
            """
            UPDATE tournament
            SET source_application_id = %s, managed_by_source = true
            WHERE id = %s
            """,
            (application_id, record_id),
        ) > 0

    def set_visibility(
        self,
        record_id: str,
        state: str,
        checked_at: datetime,
        promoted_at: datetime | None = None,
    ) -> bool:
        return self._write(
            record_id,
            "set_visibility",
            """
            UPDATE tournament
            SET visibility_state = %s,
                completeness_checked_at = %s,
                promoted_at = COALESCE(%s, promoted_at)
            WHERE id = %s
            """,
            (state, checked_at, promoted_at, record_id),
        ) > 0

    def delete_tournament(self, record_id: str) -> bool:
        return self._write(
            record_id,
            "delete_tournament",
            "DELETE FROM tournament WHERE id = %s",
            (record_id,),
        ) > 0

    def insert_staged(self, staged: StagedTournament) -> str:
        return self._insert_returning_id(
            "insert_staged",
            """
            INSERT INTO tournament_staging
                (name, start_date, end_date, source_application_id,
                 phone_number, venue, organizer, staged_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, COALESCE(%s, clock_timestamp()))
            RETURNING id
            """,
            (staged.name, staged.start_date, staged.end_date, staged.source_application_id,
             staged.phone_number, staged.venue, staged.organizer, staged.staged_at),
        )

    def promote_staged_row(self, staged_id: str, record: TournamentRecord) -> str | None:
        """Claim the staging row, insert its live tournament, and link the two.

        All three statements share one SAVEPOINT: either the row is promoted
        with its tournament, or nothing changes.  Returns the new tournament
        id, or None when the row is gone or already promoted.
        """
        try:
            with savepoint(self._conn, "promote_staged_row"):
                claimed = self._conn.execute(
                    """
                    UPDATE tournament_staging
                    SET promoted = true, promoted_at = %s
                    WHERE id = %s AND NOT promoted
                    RETURNING id
                    """,
                    (record.promoted_at, staged_id),
                ).fetchone()
                if claimed is None:
                    return None
                row = self._conn.execute(
                    _INSERT_TOURNAMENT_SQL, _tournament_params(record),
                ).fetchone()
                tournament_id = str(row[0])
                self._conn.execute(
                    "UPDATE tournament_staging SET live_tournament_id = %s WHERE id = %s",
                    (tournament_id, staged_id),
                )
        except psycopg.Error as exc:
            log.warning("promote_staged_row failed for staged row %s: %s", staged_id, exc)
            raise LocalStoreWriteFailure(staged_id, "promote_staged_row", exc) from exc
        return tournament_id

    def delete_unpromoted_staged_before(self, cutoff: datetime) -> int:
        return self._write(
            "<staging>",
            "purge_staging",
            "DELETE FROM tournament_staging WHERE NOT promoted AND staged_at < %s",
            (cutoff,),
        )
