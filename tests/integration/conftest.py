"""Integration test fixtures.

Applies the Portal and Website migrations against an ephemeral PostgreSQL
database provided by pytest-postgresql.  Both schemas live in the same
database here; in production they are separate DSNs.

Tests are skipped when no PostgreSQL server binaries are installed.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import psycopg
import pytest
from pytest_postgresql import factories

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent.parent
MIGRATIONS = [
    PROJECT_ROOT / "migrations" / "0001_portal_tables.sql",
    PROJECT_ROOT / "migrations" / "0002_website_tables.sql",
]

# ---------------------------------------------------------------------------
# pytest-postgresql process fixture
# ---------------------------------------------------------------------------

postgresql_proc = factories.postgresql_proc()
postgresql = factories.postgresql("postgresql_proc")


def _postgres_available() -> bool:
    return shutil.which("pg_ctl") is not None or shutil.which("pg_config") is not None


# ---------------------------------------------------------------------------
# Schema fixture: applies all migrations for every test
# ---------------------------------------------------------------------------

@pytest.fixture(scope="function")
def db_conn(request):
    """Return (connection, dsn) with schema applied.

    Each test gets a fresh schema via function scope so tests are isolated.
    The connection is left with autocommit off, matching the CLI.
    """
    if not _postgres_available():
        pytest.skip("PostgreSQL binaries not available")
    pg = request.getfixturevalue("postgresql")
    dsn = (
        f"host={pg.info.host} "
        f"port={pg.info.port} "
        f"dbname={pg.info.dbname} "
        f"user={pg.info.user} "
        f"password={pg.info.password or ''}"
    )
    conn = psycopg.connect(dsn, autocommit=True)
    try:
        for migration in MIGRATIONS:
            sql = migration.read_text(encoding="utf-8")
            conn.execute(sql)
        conn.autocommit = False
        yield conn, dsn
    finally:
        conn.close()
