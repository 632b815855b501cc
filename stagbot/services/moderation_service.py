"""
stagbot.services.moderation_service — Moderation Audit & Expiries
==================================================================

Every moderation command writes one append-only ``moderation_actions``
row.  Temporary bans and timed mutes carry an ``expires_at``; the tasks
cog polls :func:`due_expirations` and lifts them, so a restart never
strands a member in a temporary punishment.

All functions are synchronous — call them through ``run_db``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from stagbot.database.engine import get_session
from stagbot.database.models import ModerationAction, ModerationActionType

logger = logging.getLogger(__name__)

# Actions whose expiry the background loop should undo.
EXPIRING_ACTIONS: frozenset[str] = frozenset({
    ModerationActionType.TEMPBAN.value,
    ModerationActionType.MUTE.value,
})


@dataclass(frozen=True, slots=True)
class PendingExpiry:
    """A temporary punishment whose time is up."""

    action_id: int
    guild_id: int
    action: str
    target_id: int
    target_name: str
    expires_at: datetime


def _as_utc(value: datetime) -> datetime:
    # SQLite stores UTC wall time and hands back naive datetimes.
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _resolve_open(session: Session, guild_id: int, target_id: int, action: str) -> int:
    rows = session.scalars(
        select(ModerationAction).where(
            ModerationAction.guild_id == guild_id,
            ModerationAction.target_id == target_id,
            ModerationAction.action == action,
            ModerationAction.resolved_at.is_(None),
        )
    ).all()
    now = datetime.now(UTC)
    for row in rows:
        row.resolved_at = now
    return len(rows)


def record_action(
    engine: Engine,
    *,
    guild_id: int,
    action: ModerationActionType | str,
    target_id: int,
    target_name: str,
    moderator_id: int,
    moderator_name: str,
    reason: str | None = None,
    expires_at: datetime | None = None,
    supersede_open: bool = False,
) -> int:
    """Insert one audit row and return its id.

    With *supersede_open*, older unresolved rows of the same action against
    the same target are resolved in the same transaction, so a new mute or
    temp-ban replaces the previous expiry instead of being lifted by it.
    """
    with get_session(engine) as session:
        if supersede_open:
            _resolve_open(session, guild_id, target_id, str(action))
        row = ModerationAction(
            guild_id=guild_id,
            action=str(action),
            target_id=target_id,
            target_name=target_name[:100],
            moderator_id=moderator_id,
            moderator_name=moderator_name[:100],
            reason=reason,
            expires_at=expires_at.astimezone(UTC) if expires_at else None,
        )
        session.add(row)
        session.flush()
        return row.id


def due_expirations(engine: Engine, now: datetime | None = None) -> list[PendingExpiry]:
    """Unresolved temp-bans / timed mutes whose ``expires_at`` has passed."""
    now = (now or datetime.now(UTC)).astimezone(UTC)
    with get_session(engine) as session:
        rows = session.scalars(
            select(ModerationAction)
            .where(
                ModerationAction.action.in_(EXPIRING_ACTIONS),
                ModerationAction.expires_at <= now,
                ModerationAction.resolved_at.is_(None),
            )
            .order_by(ModerationAction.expires_at.asc())
        ).all()
        return [
            PendingExpiry(
                action_id=r.id,
                guild_id=r.guild_id,
                action=r.action,
                target_id=r.target_id,
                target_name=r.target_name,
                expires_at=_as_utc(r.expires_at),
            )
            for r in rows
        ]


def resolve_action(
    engine: Engine,
    action_id: int,
    *,
    resolved_at: datetime | None = None,
) -> bool:
    """Mark an expiring action as lifted.  Returns False if already resolved."""
    with get_session(engine) as session:
        row = session.get(ModerationAction, action_id)
        if row is None or row.resolved_at is not None:
            return False
        row.resolved_at = resolved_at or datetime.now(UTC)
        return True


def resolve_open_actions(
    engine: Engine,
    *,
    guild_id: int,
    target_id: int,
    action: ModerationActionType | str,
) -> int:
    """Resolve every open expiring *action* against *target_id*.

    Used when a permanent ban supersedes a pending temp-ban, so the expiry
    loop does not unban the member later.
    """
    with get_session(engine) as session:
        return _resolve_open(session, guild_id, target_id, str(action))
