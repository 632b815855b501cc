"""
tests/test_cogs.py — Cog Behaviour with Mocked Discord Objects
===============================================================

Exercises the pieces of the cogs that do not need a gateway: the
on_message gate, the moderation hierarchy check and the expiry sweep.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
from conftest import run_async
from sqlalchemy import select

from stagbot.bot.cogs.leveling import Leveling, _show
from stagbot.bot.cogs.moderation import Moderation, can_act_on
from stagbot.bot.cogs.tasks import PeriodicTasks
from stagbot.database.engine import get_session
from stagbot.database.models import ModerationAction, ModerationActionType
from stagbot.errors import PersistenceUnavailable
from stagbot.services.moderation_service import due_expirations, record_action
from stagbot.services.tracker import MessageOutcome

GUILD_ID = 4242


# ---------------------------------------------------------------------------
# Leveling: on_message gate
# ---------------------------------------------------------------------------
def _bot_with_tracker() -> MagicMock:
    bot = MagicMock()
    bot.cfg = SimpleNamespace(guild_id=GUILD_ID)
    bot.tracker.process_message = AsyncMock(return_value=MessageOutcome(0, 1))
    return bot


def _message(*, bot=False, guild_id: int | None = GUILD_ID) -> MagicMock:
    message = MagicMock()
    message.id = 1
    message.author.id = 77
    message.author.name = "alice"
    message.author.bot = bot
    message.guild = SimpleNamespace(id=guild_id) if guild_id is not None else None
    return message


class TestLevelingGate:
    def test_counts_human_message_in_guild(self):
        bot = _bot_with_tracker()
        message = _message()
        run_async(Leveling(bot).on_message(message))
        bot.tracker.process_message.assert_awaited_once_with(
            "77", "alice", location=message.channel,
        )

    def test_ignores_bots_dms_and_other_guilds(self):
        bot = _bot_with_tracker()
        cog = Leveling(bot)
        run_async(cog.on_message(_message(bot=True)))
        run_async(cog.on_message(_message(guild_id=None)))
        run_async(cog.on_message(_message(guild_id=1)))
        bot.tracker.process_message.assert_not_awaited()

    def test_store_failure_is_swallowed(self):
        bot = _bot_with_tracker()
        bot.tracker.process_message.side_effect = PersistenceUnavailable("down")
        run_async(Leveling(bot).on_message(_message()))

    def test_sync_report_falls_back_to_channel_after_token_expiry(self):
        interaction = MagicMock()
        interaction.edit_original_response = AsyncMock(
            side_effect=discord.NotFound(MagicMock(status=404), "Unknown interaction"),
        )
        interaction.channel.send = AsyncMock()
        embed = discord.Embed(title="done")

        run_async(_show(interaction, embed))
        interaction.channel.send.assert_awaited_once_with(embed=embed)


# ---------------------------------------------------------------------------
# Moderation: hierarchy
# ---------------------------------------------------------------------------
class TestCanActOn:
    def _guild(self, bot_rank=5, owner_id=1):
        return SimpleNamespace(me=SimpleNamespace(top_role=bot_rank), owner_id=owner_id)

    def test_lower_member(self):
        assert can_act_on(self._guild(), SimpleNamespace(id=2, top_role=3)) is True

    def test_equal_or_higher_member(self):
        assert can_act_on(self._guild(), SimpleNamespace(id=2, top_role=5)) is False
        assert can_act_on(self._guild(), SimpleNamespace(id=2, top_role=9)) is False

    def test_owner(self):
        assert can_act_on(self._guild(), SimpleNamespace(id=1, top_role=0)) is False

    def test_bot_not_in_guild(self):
        guild = SimpleNamespace(me=None, owner_id=1)
        assert can_act_on(guild, SimpleNamespace(id=2, top_role=0)) is False


# ---------------------------------------------------------------------------
# Moderation: /mute
# ---------------------------------------------------------------------------
class _MuteScene:
    """A guild, member and interaction that record the order of Discord calls."""

    def __init__(self, engine, *, muted: bool = False) -> None:
        self.events: list[str] = []
        role = SimpleNamespace(name="Muted")

        self.member = MagicMock(spec=discord.Member)
        self.member.id = 500
        self.member.top_role = 1
        self.member.roles = [role] if muted else []
        self.member.add_roles = self._noting("add_roles")
        self.member.send = AsyncMock()

        self.guild = MagicMock()
        self.guild.id = GUILD_ID
        self.guild.name = "Stags"
        self.guild.me = SimpleNamespace(top_role=5)
        self.guild.owner_id = 1
        self.guild.roles = [role] if muted else []
        self.guild.create_role = AsyncMock(return_value=role)
        self.guild.channels = [self._channel(name) for name in ("general", "memes")]

        self.interaction = MagicMock()
        self.interaction.guild = self.guild
        self.interaction.guild_id = GUILD_ID
        self.interaction.user.id = 9
        self.interaction.response.defer = self._noting("defer")
        self.interaction.response.send_message = AsyncMock()
        self.interaction.followup.send = AsyncMock()

        bot = MagicMock()
        bot.engine = engine
        bot.cfg = SimpleNamespace(mute_role_name="Muted")
        self.cog = Moderation(bot)

    def _noting(self, event: str) -> AsyncMock:
        return AsyncMock(side_effect=lambda *args, **kwargs: self.events.append(event))

    def _channel(self, name: str) -> MagicMock:
        channel = MagicMock()
        channel.name = name
        channel.set_permissions = self._noting(f"overwrite:{name}")
        return channel

    def mute(self, duration: str) -> None:
        run_async(self.cog.mute.callback(self.cog, self.interaction, self.member, None, duration))


class TestMuteCommand:
    def test_defers_before_creating_mute_role(self, db_engine):
        scene = _MuteScene(db_engine)
        scene.mute("1h")

        assert scene.events == ["defer", "overwrite:general", "overwrite:memes", "add_roles"]
        scene.interaction.response.send_message.assert_not_awaited()
        scene.interaction.followup.send.assert_awaited_once()
        assert "embed" in scene.interaction.followup.send.await_args.kwargs

        (item,) = due_expirations(db_engine, now=datetime.now(UTC) + timedelta(hours=2))
        assert (item.action, item.target_id) == ("mute", 500)

    def test_already_muted_replies_without_deferring(self, db_engine):
        scene = _MuteScene(db_engine, muted=True)
        scene.mute("1h")

        scene.interaction.response.defer.assert_not_awaited()
        scene.interaction.response.send_message.assert_awaited_once_with(
            "❌ This user is already muted.", ephemeral=True,
        )
        assert _actions(db_engine) == []

    def test_permanent_mute_cancels_earlier_timed_mute(self, db_engine):
        _expired(db_engine, ModerationActionType.MUTE, 500)
        scene = _MuteScene(db_engine)
        scene.mute("permanent")

        assert due_expirations(db_engine) == []
        assert _actions(db_engine) == ["mute", "mute"]


# ---------------------------------------------------------------------------
# Tasks: expiry sweep
# ---------------------------------------------------------------------------
def _tasks_cog(engine, guild) -> PeriodicTasks:
    bot = MagicMock()
    bot.engine = engine
    bot.cfg = SimpleNamespace(mute_role_name="Muted", log_dir="logs", log_retention_days=30)
    bot.user = SimpleNamespace(id=999)
    bot.get_guild.return_value = guild
    return PeriodicTasks(bot)


def _expired(engine, action: ModerationActionType, target_id: int) -> None:
    record_action(
        engine,
        guild_id=GUILD_ID,
        action=action,
        target_id=target_id,
        target_name=f"user{target_id}",
        moderator_id=9,
        moderator_name="mod",
        reason="testing",
        expires_at=datetime.now(UTC) - timedelta(minutes=5),
    )


def _actions(engine) -> list[str]:
    with get_session(engine) as session:
        return [
            r.action for r in session.scalars(
                select(ModerationAction).order_by(ModerationAction.id)
            )
        ]


class TestExpiryLift:
    def test_tempban_is_unbanned_and_resolved(self, db_engine):
        guild = MagicMock()
        guild.unban = AsyncMock()
        cog = _tasks_cog(db_engine, guild)
        _expired(db_engine, ModerationActionType.TEMPBAN, 500)

        (item,) = due_expirations(db_engine)
        run_async(cog.lift(item))

        guild.unban.assert_awaited_once()
        assert guild.unban.await_args.args[0].id == 500
        assert due_expirations(db_engine) == []
        assert _actions(db_engine) == ["tempban", "unban"]

    def test_mute_role_is_removed(self, db_engine):
        role = SimpleNamespace(name="Muted")
        member = MagicMock()
        member.roles = [role]
        member.remove_roles = AsyncMock()
        guild = MagicMock()
        guild.roles = [role]
        guild.get_member.return_value = member
        cog = _tasks_cog(db_engine, guild)
        _expired(db_engine, ModerationActionType.MUTE, 600)

        (item,) = due_expirations(db_engine)
        run_async(cog.lift(item))

        member.remove_roles.assert_awaited_once()
        assert member.remove_roles.await_args.args[0] is role
        assert _actions(db_engine) == ["mute", "unmute"]

    def test_missing_guild_leaves_action_pending(self, db_engine):
        cog = _tasks_cog(db_engine, None)
        _expired(db_engine, ModerationActionType.TEMPBAN, 700)

        (item,) = due_expirations(db_engine)
        run_async(cog.lift(item))
        assert len(due_expirations(db_engine)) == 1
