"""
stagbot.services.count_service — Message-Count Persistence
===========================================================

Synchronous data-access functions for the ``message_counts`` table.  Call
them from async code through :func:`stagbot.database.engine.run_db`.

Every mutation is a single conflict-safe statement or a row-locked
read-modify-write inside one transaction:

- increments use ``UPDATE … SET message_count = message_count + 1
  RETURNING …`` so two writers can never lose an update, with an INSERT
  fallback for first-time users (a concurrent duplicate INSERT is caught
  as :class:`IntegrityError` and turned back into an UPDATE);
- ``awarded_through`` only ever moves up (``WHERE awarded_through < :t``).

Rows leave this module as frozen :class:`UserCountRecord` dataclasses —
callers never see live ORM objects.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from stagbot.database.engine import get_session
from stagbot.database.models import UserCount
from stagbot.errors import PersistenceUnavailable

logger = logging.getLogger(__name__)

_NAME_MAX = 100
_INSERT_RETRIES = 3


# ---------------------------------------------------------------------------
# Boundary types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UserCountRecord:
    """Fixed-shape view of one ``message_counts`` row."""

    user_id: str
    display_name: str
    message_count: int
    awarded_through: int = 0
    last_message_at: datetime | None = None

    @classmethod
    def from_row(cls, row: UserCount) -> UserCountRecord:
        if not row.user_id:
            raise ValueError("message_counts row without a user_id")
        if row.message_count is None or row.message_count < 0:
            raise ValueError(f"Invalid message_count for {row.user_id}: {row.message_count}")
        return cls(
            user_id=row.user_id,
            display_name=row.display_name,
            message_count=row.message_count,
            awarded_through=row.awarded_through or 0,
            last_message_at=row.last_message_at,
        )


@dataclass(frozen=True, slots=True)
class IncrementResult:
    old_count: int
    new_count: int
    awarded_through: int


@dataclass(frozen=True, slots=True)
class AppliedCount:
    """Outcome of :func:`apply_absolute_count` for one user."""

    status: str  # "created" | "updated" | "unchanged" | "rejected"
    prior_count: int
    new_count: int
    awarded_through: int

    @property
    def changed(self) -> bool:
        return self.status in ("created", "updated")


def _check_user_id(user_id: str) -> str:
    if not isinstance(user_id, str) or not user_id:
        raise ValueError(f"user_id must be a non-empty string, got {user_id!r}")
    return user_id


def _clip_name(display_name: str) -> str:
    return (display_name or "Unknown")[:_NAME_MAX]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_record(engine: Engine, user_id: str) -> UserCountRecord | None:
    """Fetch one user's record, or ``None`` if they were never counted."""
    _check_user_id(user_id)
    with get_session(engine) as session:
        row = session.scalar(select(UserCount).where(UserCount.user_id == user_id))
        return UserCountRecord.from_row(row) if row else None


def get_count(engine: Engine, user_id: str) -> int:
    """Message count for *user_id*; 0 for unknown users."""
    _check_user_id(user_id)
    with get_session(engine) as session:
        count = session.scalar(
            select(UserCount.message_count).where(UserCount.user_id == user_id)
        )
        return count or 0


def list_ordered_by_count_desc(engine: Engine, limit: int) -> list[UserCountRecord]:
    """Top *limit* users by count; ties keep insertion order."""
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValueError(f"limit must be a positive integer, got {limit!r}")
    with get_session(engine) as session:
        rows = session.scalars(
            select(UserCount)
            .order_by(UserCount.message_count.desc(), UserCount.id.asc())
            .limit(limit)
        ).all()
        return [UserCountRecord.from_row(r) for r in rows]


def get_rank(engine: Engine, user_id: str) -> int | None:
    """1-based position of *user_id* in the leaderboard ordering.

    Uses the same ordering as :func:`list_ordered_by_count_desc`
    (count desc, then insertion order) so the two always agree.
    """
    _check_user_id(user_id)
    with get_session(engine) as session:
        row = session.scalar(select(UserCount).where(UserCount.user_id == user_id))
        if row is None:
            return None
        ahead: int = session.scalar(
            select(func.count(UserCount.id)).where(
                or_(
                    UserCount.message_count > row.message_count,
                    and_(
                        UserCount.message_count == row.message_count,
                        UserCount.id < row.id,
                    ),
                )
            )
        ) or 0
        return ahead + 1


def iter_all(engine: Engine, chunk_size: int = 500) -> Iterator[UserCountRecord]:
    """Lazily yield every record in insertion order, *chunk_size* rows at a time."""
    last_id = 0
    while True:
        with get_session(engine) as session:
            rows = session.scalars(
                select(UserCount)
                .where(UserCount.id > last_id)
                .order_by(UserCount.id.asc())
                .limit(chunk_size)
            ).all()
            batch = [(r.id, UserCountRecord.from_row(r)) for r in rows]
        if not batch:
            return
        for row_id, record in batch:
            last_id = row_id
            yield record


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def increment_count(
    engine: Engine,
    user_id: str,
    display_name: str,
    *,
    now: datetime | None = None,
) -> IncrementResult:
    """Add exactly one message to *user_id*, creating the row at 1 if absent."""
    _check_user_id(user_id)
    name = _clip_name(display_name)
    stamp = now or datetime.now(UTC)

    for attempt in range(_INSERT_RETRIES):
        with get_session(engine) as session:
            row = session.execute(
                update(UserCount)
                .where(UserCount.user_id == user_id)
                .values(
                    message_count=UserCount.message_count + 1,
                    display_name=name,
                    last_message_at=stamp,
                )
                .returning(UserCount.message_count, UserCount.awarded_through)
                .execution_options(synchronize_session=False)
            ).first()
        if row is not None:
            new_count, awarded = row
            return IncrementResult(new_count - 1, new_count, awarded or 0)

        try:
            with get_session(engine) as session:
                session.add(UserCount(
                    user_id=user_id,
                    display_name=name,
                    message_count=1,
                    awarded_through=0,
                    last_message_at=stamp,
                ))
            return IncrementResult(0, 1, 0)
        except IntegrityError:
            # Another writer created the row first; go round and UPDATE it.
            logger.debug(
                "Concurrent first insert for user %s (attempt %d)", user_id, attempt + 1,
            )

    raise PersistenceUnavailable(f"Could not increment message count for {user_id}")


def apply_absolute_count(
    engine: Engine,
    user_id: str,
    display_name: str | None,
    new_count: int,
    *,
    consume_through: int | None = None,
) -> AppliedCount:
    """Overwrite *user_id*'s count with *new_count* (never lowering it).

    Runs as one transaction with the row locked (``SELECT … FOR UPDATE`` on
    PostgreSQL).  A lower value is rejected and leaves the row untouched.

    If *consume_through* is given, ``awarded_through`` is raised to at least
    that threshold in the same transaction — used when a resync applies
    counts without granting roles.

    A ``None`` *display_name* keeps the stored name (new rows fall back to
    the user id).
    """
    _check_user_id(user_id)
    if isinstance(new_count, bool) or not isinstance(new_count, int) or new_count < 0:
        raise ValueError(f"new_count must be a non-negative integer, got {new_count!r}")

    with get_session(engine) as session:
        row = session.scalar(
            select(UserCount).where(UserCount.user_id == user_id).with_for_update()
        )
        if row is None:
            row = UserCount(
                user_id=user_id,
                display_name=_clip_name(display_name or user_id),
                message_count=new_count,
                awarded_through=consume_through or 0,
            )
            session.add(row)
            return AppliedCount("created", 0, new_count, row.awarded_through)

        prior = row.message_count
        if new_count < prior:
            return AppliedCount("rejected", prior, prior, row.awarded_through)
        if new_count == prior:
            return AppliedCount("unchanged", prior, prior, row.awarded_through)

        row.message_count = new_count
        if display_name:
            row.display_name = _clip_name(display_name)
        if consume_through is not None and consume_through > row.awarded_through:
            row.awarded_through = consume_through
        return AppliedCount("updated", prior, new_count, row.awarded_through)


def mark_awarded_through(engine: Engine, user_id: str, threshold: int) -> bool:
    """Raise ``awarded_through`` to *threshold* if it is currently lower.

    Returns True when the row changed.
    """
    _check_user_id(user_id)
    with get_session(engine) as session:
        result = session.execute(
            update(UserCount)
            .where(UserCount.user_id == user_id, UserCount.awarded_through < threshold)
            .values(awarded_through=threshold)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) > 0
