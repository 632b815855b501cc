"""
stagbot.bot.core — Bot Instance & Cog Loader
=============================================

Defines :class:`StagbotBot`, a ``commands.Bot`` subclass that:

1. Stores the shared config (``bot.cfg``), DB engine (``bot.engine``) and
   the message-count tracker (``bot.tracker``) so every Cog can reach
   them via ``self.bot``.
2. Carries the loaded FAQ/rule lists and the banned-word filter.
3. Loads every Cog listed in :data:`EXTENSIONS`.
4. Syncs the slash-command tree on startup (guild-scoped for dev, global
   for production — controlled by the ``DEV_GUILD_ID`` env var).
5. Starts the announcement throttle drain task.
"""

from __future__ import annotations

import asyncio
import logging
import os

import discord
from discord import app_commands
from discord.ext import commands
from sqlalchemy import Engine

from stagbot.bot.checks import reply_check_failure
from stagbot.config import StagbotConfig
from stagbot.engine.wordfilter import WordFilter
from stagbot.services.announcement_service import (
    DiscordAnnouncementSink,
    start_queue,
    stop_queue,
)
from stagbot.services.content_service import FaqEntry, NumberedEntries, RuleEntry
from stagbot.services.roles import DiscordRoleProvider
from stagbot.services.tracker import MessageCountTracker

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "stagbot.bot.cogs.leveling",
    "stagbot.bot.cogs.moderation",
    "stagbot.bot.cogs.info",
    "stagbot.bot.cogs.broadcast",
    "stagbot.bot.cogs.automod",
    "stagbot.bot.cogs.tasks",
]


class StagbotCommandTree(app_commands.CommandTree):
    """Command tree that answers failed checks and crashes ephemerally."""

    async def on_error(
        self,
        interaction: discord.Interaction,
        error: app_commands.AppCommandError,
    ) -> None:
        await reply_check_failure(interaction, error)


class StagbotBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        The parsed :class:`StagbotConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` connected to PostgreSQL.
    faq, rules:
        Numbered entries served by ``/faq`` and ``/rule``.
    word_filter:
        Banned-word matcher used by the automod cog.
    """

    def __init__(
        self,
        cfg: StagbotConfig,
        engine: Engine,
        *,
        faq: NumberedEntries[FaqEntry],
        rules: NumberedEntries[RuleEntry],
        word_filter: WordFilter,
    ) -> None:
        intents = discord.Intents.default()
        intents.message_content = True    # Privileged: automod
        intents.members = True            # Privileged: member lookups for roles
        intents.presences = False

        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            description=f"{cfg.community_name} moderation & leveling",
            tree_cls=StagbotCommandTree,
        )

        self.cfg = cfg
        self.engine = engine
        self.faq = faq
        self.rules = rules
        self.word_filter = word_filter

        self.tracker = MessageCountTracker(
            engine,
            cfg.milestones,
            DiscordRoleProvider(self, cfg.guild_id),
            DiscordAnnouncementSink(),
            announce=cfg.announce_milestones,
            db_timeout=cfg.db_timeout_seconds,
            settle_seconds=cfg.award_settle_seconds,
        )

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load all Cog extensions before connecting.

        A Cog that fails to load is logged and skipped.
        """
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        # --- Slash-command sync ---------------------------------------------
        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))

        if self.get_guild(self.cfg.guild_id) is None:
            logger.warning(
                "Configured guild %d not found — messages will not be counted",
                self.cfg.guild_id,
            )

        # --- Start announcement throttle drain task -------------------------
        start_queue(asyncio.get_running_loop())
        logger.info("Announcement throttle drain task started.")

    async def close(self) -> None:
        """Graceful shutdown — stop background tasks."""
        logger.info("Bot shutting down…")
        stop_queue()
        await super().close()
