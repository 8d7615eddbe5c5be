"""
realmstats.database.engine — Database Connection & Async Helper
================================================================

SQLAlchemy + psycopg2 is synchronous while FastAPI handlers run on an
``asyncio`` event loop.  Route handlers therefore hand every DB-heavy call
to :func:`run_db`, which ships the synchronous function to the default
thread pool via ``asyncio.to_thread()``.  Services stay plain synchronous
code and take an :class:`Engine` explicitly; nothing in this package reaches
for a global client.

Usage::

    from realmstats.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async route:
    result = await run_db(pipeline.ingest, filename, content, user_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.orm import Session

from realmstats.constants import DEFAULT_TX_MAX_WAIT_SECONDS
from realmstats.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(pool_timeout: float = DEFAULT_TX_MAX_WAIT_SECONDS) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    * ``pool_size=5`` / ``max_overflow=10``: one ingestion worker plus
      dashboard readers.
    * ``pool_timeout``: how long a batch may wait for a connection; this is
      the wait bound of an ingestion transaction.
    * ``pool_recycle=3600``: recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=pool_timeout,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`realmstats.database.models`.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helpers
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.

    Usage::

        with get_session(engine) as session:
            session.add(Season(name="S1", start_date=now))
            # commit happens automatically on block exit
    """
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def apply_transaction_bounds(
    session: Session,
    *,
    max_wait_seconds: float,
    timeout_seconds: float,
) -> None:
    """Scope lock-wait and statement timeouts to the current transaction.

    PostgreSQL only (``SET LOCAL`` dies with the transaction).  Other
    backends rely on the pool timeout and the caller's deadline check.
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    session.execute(text(f"SET LOCAL lock_timeout = {int(max_wait_seconds * 1000)}"))
    session.execute(text(f"SET LOCAL statement_timeout = {int(timeout_seconds * 1000)}"))


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Every DB call in an async route handler should go through this wrapper::

        result = await run_db(my_sync_db_function, engine, lord_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
