"""
stagbot.bot.cogs.tasks — Periodic Background Tasks
===================================================

Scheduled jobs that run on ``discord.ext.tasks`` loops:

- **Expiry sweep** — every 60 seconds, lifts temp-bans and timed mutes
  whose ``expires_at`` has passed.  A lift that fails stays unresolved
  and is retried on the next tick.
- **Log cleanup** — daily, deletes log files older than
  ``log_retention_days``.

Both run in the bot process; database work goes through ``run_db()`` to
avoid blocking the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands, tasks

from stagbot.database.engine import run_db
from stagbot.database.models import ModerationActionType
from stagbot.services.log_files import MODERATION_LOGGER, clean_old_logs
from stagbot.services.moderation_service import (
    PendingExpiry,
    due_expirations,
    record_action,
    resolve_action,
)

if TYPE_CHECKING:
    from stagbot.bot.core import StagbotBot

logger = logging.getLogger(__name__)
mod_log = logging.getLogger(MODERATION_LOGGER)


class PeriodicTasks(commands.Cog):
    """Cog for scheduled background maintenance tasks."""

    def __init__(self, bot: StagbotBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        """Start task loops when the cog is loaded."""
        self.expiry_loop.start()
        self.log_cleanup_loop.start()

    async def cog_unload(self) -> None:
        """Cancel task loops on unload."""
        self.expiry_loop.cancel()
        self.log_cleanup_loop.cancel()

    # -------------------------------------------------------------------
    # Expiry sweep — every 60 seconds
    # -------------------------------------------------------------------
    @tasks.loop(seconds=60)
    async def expiry_loop(self):
        """Lift every temp-ban and timed mute that is due."""
        try:
            pending = await run_db(due_expirations, self.bot.engine)
        except Exception:
            logger.exception("Expiry query failed", extra={"task": "expiry"})
            return

        for item in pending:
            try:
                await self.lift(item)
            except Exception:
                logger.exception(
                    "Failed to lift %s #%d for %s — will retry",
                    item.action, item.action_id, item.target_id,
                )

    @expiry_loop.before_loop
    async def _wait_expiry(self):
        await self.bot.wait_until_ready()

    async def lift(self, item: PendingExpiry) -> None:
        """Undo one expired punishment and resolve its audit row."""
        guild = self.bot.get_guild(item.guild_id)
        if guild is None:
            logger.warning("Guild %d unavailable; cannot lift %s #%d", item.guild_id, item.action, item.action_id)
            return

        if item.action == ModerationActionType.TEMPBAN:
            try:
                await guild.unban(
                    discord.Object(id=item.target_id),
                    reason="Automatic unban - temporary ban expired",
                )
            except discord.NotFound:
                logger.info("%s was already unbanned", item.target_id)
            undo = ModerationActionType.UNBAN
        else:
            member = guild.get_member(item.target_id)
            role = discord.utils.get(guild.roles, name=self.bot.cfg.mute_role_name)
            if member is not None and role is not None and role in member.roles:
                await member.remove_roles(role, reason="Automatic unmute - duration expired")
            undo = ModerationActionType.UNMUTE

        await run_db(resolve_action, self.bot.engine, item.action_id)
        await run_db(
            record_action,
            self.bot.engine,
            guild_id=item.guild_id,
            action=undo,
            target_id=item.target_id,
            target_name=item.target_name,
            moderator_id=self.bot.user.id if self.bot.user else 0,
            moderator_name="automatic",
            reason=f"{item.action} expired",
        )
        mod_log.info("%s automatically lifted %s for %s", undo, item.action, item.target_name)

    # -------------------------------------------------------------------
    # Log cleanup — runs every 24 hours
    # -------------------------------------------------------------------
    @tasks.loop(hours=24)
    async def log_cleanup_loop(self):
        """Delete log files older than the configured retention window."""
        try:
            deleted = await asyncio.to_thread(
                clean_old_logs, self.bot.cfg.log_dir, self.bot.cfg.log_retention_days,
            )
            logger.info("Log cleanup complete: %d files deleted", len(deleted))
        except Exception:
            logger.exception("Log cleanup failed", extra={"task": "log_cleanup"})

    @log_cleanup_loop.before_loop
    async def _wait_log_cleanup(self):
        await self.bot.wait_until_ready()


async def setup(bot: StagbotBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
