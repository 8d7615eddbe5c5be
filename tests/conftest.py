"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of realmstats.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import BigInteger, Engine, create_engine, event  # noqa: E402
from sqlalchemy.ext.compiler import compiles  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from factories import make_admin_token, make_token  # noqa: E402
from realmstats.database.models import Base  # noqa: E402


@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    """BigInteger → INTEGER so autoincrement works on SQLite."""
    return "INTEGER"


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all RealmStats tables.

    StaticPool keeps one shared connection so ``asyncio.to_thread`` workers
    see the same database.  pysqlite's implicit transactions are switched
    off and SQLAlchemy emits BEGIN itself, so SAVEPOINTs behave as they do
    on PostgreSQL.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def admin_token():
    return make_admin_token()


@pytest.fixture
def viewer_token():
    return make_token()


@pytest.fixture
def client(db_engine):
    """TestClient bound to the SQLite engine and default config."""
    from fastapi.testclient import TestClient

    from realmstats.api.deps import get_config, get_engine
    from realmstats.api.main import app
    from realmstats.config import RealmStatsConfig

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: RealmStatsConfig()
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
