"""
stagbot.bot.cogs.automod — Banned-Word Filter
==============================================

Checks every guild message against ``bot.word_filter`` (whole-word,
case-insensitive).  On a hit the message is deleted when the bot has
Manage Messages, and an alert embed goes to ``log_channel_id`` pinging
the moderator role.

Counting is independent: the leveling cog has already seen the message.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from stagbot.services.embeds import build_automod_alert
from stagbot.services.log_files import MODERATION_LOGGER

if TYPE_CHECKING:
    from stagbot.bot.core import StagbotBot

logger = logging.getLogger(__name__)
mod_log = logging.getLogger(MODERATION_LOGGER)


class AutoMod(commands.Cog, name="AutoMod"):
    """Deletes messages containing banned words and alerts moderators."""

    def __init__(self, bot: StagbotBot) -> None:
        self.bot = bot

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.author.bot or message.guild is None or not self.bot.word_filter:
            return
        word = self.bot.word_filter.find(message.content)
        if word is None:
            return
        try:
            await self._handle_hit(message, word)
        except Exception:
            logger.exception("AutoMod error on message %s", message.id)

    async def _handle_hit(self, message: discord.Message, word: str) -> None:
        guild = message.guild
        assert guild is not None
        mod_log.info(
            "AutoMod: banned word from %s (%s) in #%s",
            message.author, message.author.id, getattr(message.channel, "name", "?"),
        )

        if guild.me is not None and message.channel.permissions_for(guild.me).manage_messages:
            try:
                await message.delete()
            except discord.NotFound:
                logger.debug("Message %s already deleted", message.id)

        channel_id = self.bot.cfg.log_channel_id
        if channel_id is None:
            return
        log_channel = guild.get_channel(channel_id)
        if log_channel is None:
            try:
                log_channel = await guild.fetch_channel(channel_id)
            except discord.HTTPException:
                logger.warning("AutoMod log channel %s not reachable", channel_id)
                return

        role_id = self.bot.cfg.moderator_role_id
        await log_channel.send(
            content=f"<@&{role_id}>" if role_id else None,
            embed=build_automod_alert(
                str(message.author), message.author.id, message.content, message.channel.id,
            ),
        )


async def setup(bot: StagbotBot) -> None:
    await bot.add_cog(AutoMod(bot))
