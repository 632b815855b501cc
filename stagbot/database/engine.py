"""
stagbot.database.engine — Engine, sessions and the thread bridge
=================================================================

SQLAlchemy with psycopg2 blocks, so every coroutine that touches the store
goes through :func:`run_db`, which runs the synchronous function on the
default thread pool.  The count tracker, the cogs and the expiry sweep all
share one :class:`Engine` built by :func:`create_db_engine`.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

from stagbot.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Sized for a single guild: the message hot path, a /sync and the expiry
# sweep can overlap, but rarely more than a handful at once.
POOL_OPTIONS = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 10,
    "pool_recycle": 3600,
}


def create_db_engine(url: str | None = None) -> Engine:
    """Build the shared :class:`Engine` for *url* or ``DATABASE_URL``.

    SQLite URLs (handy for a local trial run) skip the pool options, which
    only apply to a server database.

    Raises
    ------
    RuntimeError
        If neither *url* nor ``DATABASE_URL`` is set.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set; copy .env.example to .env and point it "
            "at the stagbot database."
        )

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        engine = create_engine(parsed, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(parsed, pool_pre_ping=True, **POOL_OPTIONS)
    logger.info("Database engine created (%s)", parsed.render_as_string(hide_password=True))
    return engine


def init_db(engine: Engine) -> None:
    """Create any missing tables.  Alembic owns the schema in production."""
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")


@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Session that commits when the block exits cleanly and rolls back otherwise."""
    session = Session(engine, expire_on_commit=False)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await the synchronous *func* on a worker thread."""
    return await asyncio.to_thread(func, *args, **kwargs)
