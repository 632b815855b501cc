"""
stagbot.bot.cogs.leveling — Message Counting & Leveling Commands
=================================================================

Listens for on_message events and feeds qualifying messages to the
tracker.  Also hosts the user-facing leveling commands:

- /level — a member's count, current and next milestone
- /leaderboard — top members by message count, plus the caller's rank
- /sync — rebuild counts from channel history (admin)

Pipeline:
1. on_message fires → gate checks (bot, DM, other guild)
2. tracker.process_message — atomic +1, milestone evaluation, role grants
3. Celebrations are posted in the channel the message came from
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from stagbot.bot.checks import PermissionLevel, require_level
from stagbot.engine.milestones import milestone_progress
from stagbot.errors import PersistenceUnavailable
from stagbot.services.embeds import (
    build_leaderboard_embed,
    build_level_embed,
    build_sync_error_embed,
    build_sync_progress_embed,
    build_sync_result_embed,
)
from stagbot.services.history_service import readable_text_channels, scan_history

if TYPE_CHECKING:
    from stagbot.bot.core import StagbotBot

logger = logging.getLogger(__name__)

LEADERBOARD_MAX = 25


async def _show(interaction: discord.Interaction, embed: discord.Embed) -> None:
    """Replace the deferred /sync reply; post in the channel once the token expired."""
    try:
        await interaction.edit_original_response(embed=embed)
        return
    except discord.HTTPException as exc:
        logger.warning("Could not edit /sync reply: %s", exc)
    if interaction.channel is None:
        return
    try:
        await interaction.channel.send(embed=embed)
    except discord.HTTPException:
        logger.exception("Could not post /sync report")


class Leveling(commands.Cog, name="Leveling"):
    """Counts messages and awards milestone roles."""

    def __init__(self, bot: StagbotBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------
    def _qualifies(self, message: discord.Message) -> bool:
        if message.author.bot:
            return False
        if message.guild is None:
            return False
        return message.guild.id == self.bot.cfg.guild_id

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        """Count every human message in the configured guild."""
        if not self._qualifies(message):
            return
        try:
            outcome = await self.bot.tracker.process_message(
                str(message.author.id),
                message.author.name,
                location=message.channel,
            )
        except PersistenceUnavailable as exc:
            logger.error("Message %s from %s not counted: %s", message.id, message.author.id, exc)
            return
        except Exception:
            logger.exception(
                "Error processing message %s from user %s",
                message.id, message.author.id,
            )
            return
        for milestone in outcome.granted:
            logger.info(
                "%s reached %d messages → %s",
                message.author, milestone.threshold, milestone.reward_name,
            )

    # -------------------------------------------------------------------
    # /level
    # -------------------------------------------------------------------
    @app_commands.command(name="level", description="Check your or another user's message count and level")
    @app_commands.describe(user="The user to check (optional)")
    async def level(
        self,
        interaction: discord.Interaction,
        user: discord.User | None = None,
    ) -> None:
        target = user or interaction.user
        try:
            record = await self.bot.tracker.get_record(str(target.id))
        except PersistenceUnavailable:
            logger.exception("Error checking level for %s", target.id)
            await interaction.response.send_message(
                "❌ An error occurred while checking the level.", ephemeral=True,
            )
            return

        count = record.message_count if record else 0
        progress = milestone_progress(self.bot.tracker.milestones, count)
        embed = build_level_embed(
            target.name,
            target.display_avatar.url,
            progress,
            last_message_at=record.last_message_at if record else None,
        )
        await interaction.response.send_message(embed=embed)

    # -------------------------------------------------------------------
    # /leaderboard
    # -------------------------------------------------------------------
    @app_commands.command(name="leaderboard", description="Shows the top users by message count")
    @app_commands.describe(limit="Number of users to show (default: 10)")
    async def leaderboard(
        self,
        interaction: discord.Interaction,
        limit: app_commands.Range[int, 1, LEADERBOARD_MAX] | None = None,
    ) -> None:
        size = limit or self.bot.cfg.leaderboard_default_size
        caller_id = str(interaction.user.id)
        try:
            rows = await self.bot.tracker.get_ranked(size)
            rank = await self.bot.tracker.get_rank(caller_id)
            count = await self.bot.tracker.get_count(caller_id) if rank else 0
        except PersistenceUnavailable:
            logger.exception("Error fetching leaderboard")
            await interaction.response.send_message(
                "❌ An error occurred while fetching the leaderboard.", ephemeral=True,
            )
            return

        embed = build_leaderboard_embed(rows, caller_rank=rank, caller_count=count)
        await interaction.response.send_message(embed=embed)

    # -------------------------------------------------------------------
    # /sync
    # -------------------------------------------------------------------
    @app_commands.command(
        name="sync",
        description="Sync message counts for all users based on their total message history",
    )
    @app_commands.describe(
        channel="Specific channel to scan (optional - scans all channels if not specified)",
        award_roles="Whether to award milestone roles immediately (default: true)",
    )
    @require_level(PermissionLevel.ADMIN)
    async def sync(
        self,
        interaction: discord.Interaction,
        channel: discord.TextChannel | None = None,
        award_roles: bool = True,
    ) -> None:
        guild = interaction.guild
        if guild is None:
            await interaction.response.send_message(
                "❌ This command can only be used in a server.", ephemeral=True,
            )
            return

        await interaction.response.defer()
        await _show(interaction, build_sync_progress_embed())

        async def _progress(total: int, channel_name: str) -> None:
            await interaction.edit_original_response(
                embed=build_sync_progress_embed(total, channel_name),
            )

        try:
            channels = [channel] if channel else readable_text_channels(guild)
            scan = await scan_history(channels, on_progress=_progress)

            # Only members still in the guild are resynced.
            members = {
                uid: n for uid, n in scan.counts.items()
                if guild.get_member(int(uid)) is not None
            }
            summary = await self.bot.tracker.bulk_resync(
                members, award_roles, display_names=scan.names,
            )
            if award_roles:
                # Members not seen in this scan may still be owed a role.
                await self.bot.tracker.award_owed(summary, exclude=members)
        except Exception:
            logger.exception("Sync error")
            await _show(interaction, build_sync_error_embed())
            return

        await _show(interaction, build_sync_result_embed(scan, summary))
        logger.info(
            "Sync completed: %d messages, %d users, %d roles",
            scan.total_messages, summary.users_updated, summary.rewards_granted,
        )


async def setup(bot: StagbotBot) -> None:
    await bot.add_cog(Leveling(bot))
