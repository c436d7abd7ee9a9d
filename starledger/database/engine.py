"""
starledger.database.engine — Database Connection & Async Helper
================================================================

The HTTP layer and the scheduler run on an ``asyncio`` event loop, while
SQLAlchemy + psycopg2 is **synchronous**.  Every service function is a
plain sync function that opens its own session; async callers ship it to
a thread pool through :func:`run_db` so the loop is never blocked.

Usage::

    from starledger.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside an async handler or job:
    awards = await run_db(run_reconciliation, engine, notifier)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from starledger.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

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
        pool_pre_ping=True,   # Reconnect stale connections automatically
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables and seed the default reward rules.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from starledger.database.seed import seed_reward_rules

    seed_reward_rules(engine)


# ---------------------------------------------------------------------------
# Session helper
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Yield a :class:`Session` that commits on success and rolls back
    on exception.

    Usage::

        with get_session(engine) as session:
            session.add(ShareEvent(member_id="m-1", platform="x"))
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
    """Run a **synchronous** database function on a background thread.

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor``.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
