"""
council.database.engine — Database Connection & Async Helper
=============================================================

The governance jobs are plain synchronous SQLAlchemy code so they can run
unchanged from cron (``python -m council.jobs``) and from the FastAPI
routes.  Routes are ``async`` and must not block the event loop, so they
hand the synchronous service function to a worker thread through
:func:`run_db`.

Usage::

    from council.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async route:
    report = await run_db(rotate_committees, engine)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from council.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Build a SQLAlchemy :class:`Engine` from *url* or ``DATABASE_URL``.

    Each batch item opens and closes its own short transaction, so a cron
    run never holds more than one connection.  The API runs every service
    call on an ``asyncio.to_thread`` worker, one connection per in-flight
    request; ``max_overflow`` absorbs a scheduler burst arriving while the
    dashboard is in use.  ``pool_pre_ping`` matters for the cron process,
    whose connections sit idle between daily runs.

    Raises
    ------
    RuntimeError
        If no URL is given and ``DATABASE_URL`` is not set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create any governance table that does not exist yet.

    Deployed databases are migrated with ``alembic upgrade head``; this is
    what the job runner and the SQLite test engine use.
    """
    Base.metadata.create_all(engine)
    logger.info("Governance tables verified / created.")


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine):
    """One unit of work: commit on exit, roll back on any exception.

    Objects stay loaded after commit (``expire_on_commit=False``) because
    services hand rows such as a freshly cast vote back to their callers
    after the session is closed.
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
    """Await a synchronous service function on a worker thread."""
    return await asyncio.to_thread(func, *args, **kwargs)
