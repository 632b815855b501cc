"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest
from sqlalchemy import BigInteger, Engine, create_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from stagbot.database.models import Base
from stagbot.engine.milestones import Milestone
from stagbot.errors import AnnouncementFailed, RoleGrantFailed


# ---------------------------------------------------------------------------
# SQLite compatibility: BigInteger → INTEGER so autoincrement works.
# ---------------------------------------------------------------------------
@compiles(BigInteger, "sqlite")
def _compile_bigint_as_integer(type_, compiler, **kw):
    return "INTEGER"


def run_async(coro):
    """Run an async coroutine to completion without pytest-asyncio."""
    return asyncio.run(coro)


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all stagbot tables.

    Uses StaticPool so every thread shares the same in-memory database
    (``run_db`` hops to worker threads).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine for tests that write from several threads.

    Each thread gets its own connection; SQLite's file lock serializes the
    writers, which is what the atomic-increment tests need.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'stagbot-test.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Fakes for the tracker's collaborators
# ---------------------------------------------------------------------------
TWO_MILESTONES = (Milestone(10, "Newbie"), Milestone(100, "Regular"))


class FakeRoleProvider:
    """In-memory :class:`RoleProvider` that records every call."""

    def __init__(self, *, failing: set[str] | None = None, delay: float = 0.0) -> None:
        self.held: dict[str, set[str]] = {}
        self.grants: list[tuple[str, str]] = []
        self.created: list[str] = []
        self.failing = set(failing or ())
        self.delay = delay

    async def has_role(self, user_id: str, role_name: str) -> bool:
        return role_name in self.held.get(user_id, set())

    async def ensure_role(self, role_name: str, color: int):
        if role_name not in self.created:
            self.created.append(role_name)
        return SimpleNamespace(name=role_name, color=color)

    async def grant_role(self, user_id: str, role) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if role.name in self.failing:
            raise RoleGrantFailed(user_id, role.name, "Missing Permissions")
        self.grants.append((user_id, role.name))
        self.held.setdefault(user_id, set()).add(role.name)


class FakeSink:
    """Collects announcements; optionally fails every post."""

    def __init__(self, *, fail: bool = False) -> None:
        self.posts: list[tuple[object, str]] = []
        self.fail = fail

    async def post(self, location, text: str) -> None:
        if self.fail:
            raise AnnouncementFailed("channel gone")
        self.posts.append((location, text))


@pytest.fixture
def roles() -> FakeRoleProvider:
    return FakeRoleProvider()


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()
