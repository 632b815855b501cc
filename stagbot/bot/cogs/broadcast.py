"""
stagbot.bot.cogs.broadcast — Anonymous Announcements
=====================================================

``/message`` lets an admin post an embed to any text channel without
author attribution.  Who sent what is still recorded: on the
``stagbot.anonymous`` logger (its own daily log file) and as a
``broadcast`` row in ``moderation_actions``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands
from sqlalchemy.exc import SQLAlchemyError

from stagbot.bot.checks import PermissionLevel, require_level
from stagbot.constants import parse_hex_color
from stagbot.database.engine import run_db
from stagbot.database.models import ModerationActionType
from stagbot.services.embeds import (
    build_broadcast_confirmation,
    build_broadcast_embed,
    preview,
)
from stagbot.services.log_files import ANONYMOUS_LOGGER
from stagbot.services.moderation_service import record_action

if TYPE_CHECKING:
    from stagbot.bot.core import StagbotBot

logger = logging.getLogger(__name__)
audit_log = logging.getLogger(ANONYMOUS_LOGGER)


class Broadcast(commands.Cog, name="Broadcast"):
    """Admin-only anonymous channel posts."""

    def __init__(self, bot: StagbotBot) -> None:
        self.bot = bot

    @app_commands.command(name="message", description="Send an anonymous message to a channel")
    @app_commands.describe(
        channel="The channel to send the message to",
        content="The message content to send",
        title="Optional title for the message",
        color="Embed color (hex code without #)",
    )
    @app_commands.guild_only()
    @require_level(PermissionLevel.ADMIN)
    async def message(
        self,
        interaction: discord.Interaction,
        channel: discord.TextChannel,
        content: str,
        title: str | None = None,
        color: str | None = None,
    ) -> None:
        try:
            embed_color = parse_hex_color(color)
        except ValueError:
            await interaction.response.send_message(
                "❌ Invalid color format. Please use a 6-digit hex code (e.g., ff0000 for red).",
                ephemeral=True,
            )
            return

        try:
            await channel.send(embed=build_broadcast_embed(content, embed_color, title))
        except discord.HTTPException:
            logger.exception("Error sending anonymous message to #%s", channel.name)
            await interaction.response.send_message(
                "❌ An error occurred while trying to send the message. Please check "
                "that I have permission to send messages in that channel.",
                ephemeral=True,
            )
            return

        await interaction.response.send_message(
            embed=build_broadcast_confirmation(channel.mention, content),
            ephemeral=True,
        )

        audit_log.info(
            "%s (%s) sent anonymous message to #%s: %s",
            interaction.user, interaction.user.id, channel.name, preview(content),
        )
        try:
            await run_db(
                record_action,
                self.bot.engine,
                guild_id=interaction.guild_id or 0,
                action=ModerationActionType.BROADCAST,
                target_id=channel.id,
                target_name=f"#{channel.name}",
                moderator_id=interaction.user.id,
                moderator_name=str(interaction.user),
                reason=preview(content),
            )
        except SQLAlchemyError:
            logger.exception("Failed to record broadcast to #%s", channel.name)


async def setup(bot: StagbotBot) -> None:
    await bot.add_cog(Broadcast(bot))
