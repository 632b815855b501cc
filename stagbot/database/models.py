"""
stagbot.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- message_counts      — One row per member that ever sent a counted message
- moderation_actions  — Append-only moderation audit trail, including
                        pending expiries for temp-bans and timed mutes
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all stagbot ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ModerationActionType(enum.StrEnum):
    """Categories of moderation actions recorded in moderation_actions."""
    BAN = "ban"
    KICK = "kick"
    MUTE = "mute"
    TEMPBAN = "tempban"
    UNBAN = "unban"
    UNMUTE = "unmute"
    BROADCAST = "broadcast"


# ---------------------------------------------------------------------------
# UserCount — one row per counted member
# ---------------------------------------------------------------------------
class UserCount(Base):
    __tablename__ = "message_counts"

    # Insertion order; breaks leaderboard ties deterministically.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Highest milestone threshold whose role is known to be held.
    awarded_through: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_message_counts_count_desc", "message_count"),
    )

    def __repr__(self) -> str:
        return f"<UserCount user={self.user_id} count={self.message_count}>"


# ---------------------------------------------------------------------------
# ModerationAction — audit trail + pending expiries
# ---------------------------------------------------------------------------
class ModerationAction(Base):
    __tablename__ = "moderation_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    guild_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    target_name: Mapped[str] = mapped_column(String(100), nullable=False)
    moderator_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    moderator_name: Mapped[str] = mapped_column(String(100), nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        Index("ix_moderation_actions_pending", "expires_at", "resolved_at"),
        Index("ix_moderation_actions_target", "guild_id", "target_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ModerationAction id={self.id} action={self.action} target={self.target_id}>"
