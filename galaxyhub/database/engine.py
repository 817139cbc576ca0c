"""
galaxyhub.database.engine — Database Connection, Sessions & Async Helper
=========================================================================

The storage handle is built **once** at process start and passed explicitly
to every service function.  There is no module-level engine.

Service functions are synchronous.  Async collaborators (an HTTP layer, a
chat bot) call them through :func:`run_db`, which ships the call to a worker
thread so the event loop is never blocked.

Usage::

    from galaxyhub.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async handler:
    dupes = await run_db(check_duplicate_message_ids, engine, ids)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session

from galaxyhub.constants import SQLITE_BUSY_TIMEOUT
from galaxyhub.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(
    url: str | None = None,
    sqlite_busy_timeout: float = SQLITE_BUSY_TIMEOUT,
) -> Engine:
    """Build a SQLAlchemy :class:`Engine`.

    *url* defaults to the ``DATABASE_URL`` env var.  PostgreSQL gets a
    pooled engine sized for a handful of concurrent submitters:

    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    SQLite URLs get foreign-key enforcement switched on so constraint
    violations surface the same way they do on PostgreSQL.  Writers queue
    on the database lock for up to *sqlite_busy_timeout* seconds instead
    of failing with ``database is locked``.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid database URL."
        )

    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=False,
            connect_args={"timeout": sqlite_busy_timeout, "check_same_thread": False},
        )
        configure_sqlite(engine)
    else:
        engine = create_engine(
            url,
            echo=False,        # Set True for SQL debugging
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_timeout=10,
            pool_recycle=3600,
        )
    logger.info("Database engine created → %s", engine.url.render_as_string(hide_password=True))
    return engine


def configure_sqlite(engine: Engine) -> None:
    """Make SQLite behave like the production database.

    * ``PRAGMA foreign_keys=ON`` on every new connection.
    * pysqlite's own transaction handling is disabled and SQLAlchemy emits
      the ``BEGIN`` itself, otherwise SAVEPOINTs (used by every upsert)
      don't nest inside the outer transaction.
    * That ``BEGIN`` is ``IMMEDIATE``: the write lock is taken up front.
      A deferred transaction that reads first and writes later can't
      upgrade its lock while another writer holds it.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`galaxyhub.database.models`.

    Safe to call on every startup (``CREATE TABLE IF NOT EXISTS``).

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """Yield a :class:`Session` that auto-commits on success and rolls back
    on exception.

    Every public merge runs inside exactly one of these, so a failed merge
    leaves no partial write behind.

    Usage::

        with get_session(engine) as session:
            session.add(Alliance(id=7, name="Night Watch", tag="NW"))
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


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** service function on a background thread.

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor``::

        planets = await run_db(get_alliance_planets, engine, alliance_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
