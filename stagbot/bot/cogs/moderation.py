"""
stagbot.bot.cogs.moderation — Moderation Slash Commands
========================================================

- /ban — permanently ban a user, optionally deleting recent messages
- /kick — remove a member from the server
- /mute — give a member the mute role, permanently or for a set time
- /tempban — ban a user for a set time

All commands require MODERATOR.  Each one DMs the target first (best
effort), performs the action, answers with a public embed, writes a
``moderation_actions`` row and logs to the ``stagbot.moderation`` logger
(which the file handler routes to ``moderation-YYYY-MM-DD.log``).

Timed mutes and temp-bans are lifted by the tasks cog.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands
from sqlalchemy.exc import SQLAlchemyError

from stagbot.bot.checks import PermissionLevel, require_level
from stagbot.constants import (
    COLOR_BAN,
    COLOR_MUTE,
    COLOR_MUTE_ROLE,
    COLOR_SUCCESS,
    COLOR_TEMPBAN,
    DURATION_LABELS,
    PERMANENT,
    parse_duration,
)
from stagbot.database.engine import run_db
from stagbot.database.models import ModerationActionType
from stagbot.services.embeds import build_moderation_embed, discord_timestamp
from stagbot.services.log_files import MODERATION_LOGGER
from stagbot.services.moderation_service import record_action, resolve_open_actions

if TYPE_CHECKING:
    from stagbot.bot.core import StagbotBot

logger = logging.getLogger(__name__)
mod_log = logging.getLogger(MODERATION_LOGGER)

NO_REASON = "No reason provided"

_TIMED_CHOICES = [
    app_commands.Choice(name=label, value=key) for key, label in DURATION_LABELS.items()
]
_MUTE_CHOICES = _TIMED_CHOICES + [app_commands.Choice(name="Permanent", value=PERMANENT)]


def can_act_on(guild: discord.Guild, target: discord.Member) -> bool:
    """True if the bot's top role sits above *target* and *target* is not the owner."""
    me = guild.me
    if me is None or target.id == guild.owner_id:
        return False
    return me.top_role > target.top_role


async def ensure_mute_role(guild: discord.Guild, name: str) -> discord.Role:
    """Find the mute role, creating it (and its channel overwrites) if absent."""
    role = discord.utils.get(guild.roles, name=name)
    if role is not None:
        return role

    role = await guild.create_role(
        name=name,
        colour=discord.Colour(COLOR_MUTE_ROLE),
        permissions=discord.Permissions.none(),
        reason="Mute role for moderation",
    )
    for channel in guild.channels:
        try:
            await channel.set_permissions(
                role,
                send_messages=False,
                speak=False,
                add_reactions=False,
                reason="Mute role setup",
            )
        except discord.HTTPException as exc:
            logger.warning("Could not set mute overwrite on #%s: %s", channel.name, exc)
    logger.info("Created mute role %r in guild %s", name, guild.id)
    return role


async def _dm(user: discord.abc.User, embed: discord.Embed) -> None:
    try:
        await user.send(embed=embed)
    except discord.HTTPException:
        logger.debug("Could not DM %s (DMs disabled or bot blocked)", user.id)


class Moderation(commands.Cog, name="Moderation"):
    """Ban, kick, mute and temp-ban with an audit trail."""

    def __init__(self, bot: StagbotBot) -> None:
        self.bot = bot

    async def _record(
        self,
        interaction: discord.Interaction,
        action: ModerationActionType,
        target: discord.abc.User,
        reason: str,
        expires_at: datetime | None = None,
        *,
        supersede_open: bool = False,
    ) -> bool:
        """Write the audit row.  Returns False if the store was unavailable."""
        try:
            await run_db(
                record_action,
                self.bot.engine,
                guild_id=interaction.guild_id or 0,
                action=action,
                target_id=target.id,
                target_name=str(target),
                moderator_id=interaction.user.id,
                moderator_name=str(interaction.user),
                reason=reason,
                expires_at=expires_at,
                supersede_open=supersede_open,
            )
        except SQLAlchemyError:
            logger.exception("Failed to record %s of %s", action, target.id)
            return False
        return True

    async def _preflight(
        self,
        interaction: discord.Interaction,
        target: discord.abc.User,
        verb: str,
        *,
        require_member: bool,
    ) -> discord.Member | None | bool:
        """Shared validation.  Returns False after replying with an error."""
        guild = interaction.guild
        assert guild is not None
        member = target if isinstance(target, discord.Member) else guild.get_member(target.id)
        if member is None and require_member:
            await interaction.response.send_message(
                "❌ User not found in this server.", ephemeral=True,
            )
            return False
        if target.id == interaction.user.id:
            await interaction.response.send_message(
                f"❌ You cannot {verb} yourself.", ephemeral=True,
            )
            return False
        if member is not None and not can_act_on(guild, member):
            await interaction.response.send_message(
                f"❌ I cannot {verb} this user. They may have higher permissions "
                "or be the server owner.",
                ephemeral=True,
            )
            return False
        return member

    # -------------------------------------------------------------------
    # /ban
    # -------------------------------------------------------------------
    @app_commands.command(name="ban", description="Ban a member from the server")
    @app_commands.describe(
        target="The member to ban",
        reason="Reason for the ban",
        delete_days="Number of days of messages to delete (0-7)",
    )
    @app_commands.guild_only()
    @require_level(PermissionLevel.MODERATOR)
    async def ban(
        self,
        interaction: discord.Interaction,
        target: discord.User,
        reason: str | None = None,
        delete_days: app_commands.Range[int, 0, 7] = 0,
    ) -> None:
        reason = reason or NO_REASON
        member = await self._preflight(interaction, target, "ban", require_member=False)
        if member is False:
            return
        guild = interaction.guild
        assert guild is not None

        if member is not None:
            await _dm(member, build_moderation_embed(
                "\U0001f528 You have been banned",
                f"You have been banned from **{guild.name}**",
                COLOR_BAN,
                [("Reason", reason), ("Moderator", str(interaction.user))],
            ))

        try:
            await guild.ban(target, reason=reason, delete_message_seconds=delete_days * 86400)
        except discord.HTTPException:
            logger.exception("Error banning %s", target.id)
            await interaction.response.send_message(
                "❌ An error occurred while trying to ban the user.", ephemeral=True,
            )
            return

        await interaction.response.send_message(embed=build_moderation_embed(
            "\U0001f528 User Banned",
            f"**{target}** has been banned from the server.",
            COLOR_BAN,
            [
                ("Reason", reason),
                ("Moderator", str(interaction.user)),
                ("Messages Deleted", f"{delete_days} days"),
            ],
        ))

        await self._record(interaction, ModerationActionType.BAN, target, reason)
        # A permanent ban overrides any pending temp-ban.
        try:
            await run_db(
                resolve_open_actions,
                self.bot.engine,
                guild_id=guild.id,
                target_id=target.id,
                action=ModerationActionType.TEMPBAN,
            )
        except SQLAlchemyError:
            logger.exception("Failed to supersede temp-bans for %s", target.id)
        mod_log.info("%s banned %s (%s) | Reason: %s", interaction.user, target, target.id, reason)

    # -------------------------------------------------------------------
    # /kick
    # -------------------------------------------------------------------
    @app_commands.command(name="kick", description="Kick a member from the server")
    @app_commands.describe(target="The member to kick", reason="Reason for the kick")
    @app_commands.guild_only()
    @require_level(PermissionLevel.MODERATOR)
    async def kick(
        self,
        interaction: discord.Interaction,
        target: discord.Member,
        reason: str | None = None,
    ) -> None:
        reason = reason or NO_REASON
        member = await self._preflight(interaction, target, "kick", require_member=True)
        if not isinstance(member, discord.Member):
            return
        guild = interaction.guild
        assert guild is not None

        await _dm(member, build_moderation_embed(
            "\U0001f9b6 You have been kicked",
            f"You have been kicked from **{guild.name}**",
            COLOR_BAN,
            [("Reason", reason), ("Moderator", str(interaction.user))],
        ))

        try:
            await member.kick(reason=reason)
        except discord.HTTPException:
            logger.exception("Error kicking %s", member.id)
            await interaction.response.send_message(
                "❌ An error occurred while trying to kick the user.", ephemeral=True,
            )
            return

        await interaction.response.send_message(embed=build_moderation_embed(
            "✅ User Kicked",
            f"**{member}** has been kicked from the server.",
            COLOR_SUCCESS,
            [("Reason", reason), ("Moderator", str(interaction.user))],
        ))
        await self._record(interaction, ModerationActionType.KICK, member, reason)
        mod_log.info("%s kicked %s (%s) | Reason: %s", interaction.user, member, member.id, reason)

    # -------------------------------------------------------------------
    # /mute
    # -------------------------------------------------------------------
    @app_commands.command(name="mute", description="Mute a member in the server")
    @app_commands.describe(
        target="The member to mute",
        reason="Reason for the mute",
        duration="Duration of the mute (e.g., 1h, 6h, 1d)",
    )
    @app_commands.choices(duration=_MUTE_CHOICES)
    @app_commands.guild_only()
    @require_level(PermissionLevel.MODERATOR)
    async def mute(
        self,
        interaction: discord.Interaction,
        target: discord.Member,
        reason: str | None = None,
        duration: str = PERMANENT,
    ) -> None:
        reason = reason or NO_REASON
        member = await self._preflight(interaction, target, "mute", require_member=True)
        if not isinstance(member, discord.Member):
            return
        guild = interaction.guild
        assert guild is not None

        role = discord.utils.get(guild.roles, name=self.bot.cfg.mute_role_name)
        if role is not None and role in member.roles:
            await interaction.response.send_message(
                "❌ This user is already muted.", ephemeral=True,
            )
            return
        try:
            delta = parse_duration(duration)
        except ValueError:
            await interaction.response.send_message(
                "❌ Invalid duration specified.", ephemeral=True,
            )
            return

        # Creating the role touches every channel; answer Discord first.
        await interaction.response.defer()
        try:
            if role is None:
                role = await ensure_mute_role(guild, self.bot.cfg.mute_role_name)
            await member.add_roles(role, reason=reason)
        except discord.HTTPException:
            logger.exception("Error muting %s", member.id)
            await interaction.followup.send(
                "❌ An error occurred while trying to mute the user.", ephemeral=True,
            )
            return

        expires_at = datetime.now(UTC) + delta if delta else None
        label = DURATION_LABELS.get(duration, "Permanent")
        fields = [("Reason", reason), ("Duration", label), ("Moderator", str(interaction.user))]
        if expires_at:
            fields.append(("Unmute Time", discord_timestamp(expires_at)))

        recorded = await self._record(
            interaction, ModerationActionType.MUTE, member, reason, expires_at,
            supersede_open=True,
        )

        await _dm(member, build_moderation_embed(
            "\U0001f507 You have been muted",
            f"You have been muted in **{guild.name}**",
            COLOR_MUTE,
            fields,
        ))
        await interaction.followup.send(embed=build_moderation_embed(
            "\U0001f507 User Muted",
            f"**{member}** has been muted.",
            COLOR_MUTE,
            fields,
        ))

        if expires_at and not recorded:
            await interaction.followup.send(
                "⚠️ The automatic unmute could not be scheduled; remove the role manually.",
                ephemeral=True,
            )
        mod_log.info(
            "%s muted %s (%s) for %s | Reason: %s",
            interaction.user, member, member.id, label, reason,
        )

    # -------------------------------------------------------------------
    # /tempban
    # -------------------------------------------------------------------
    @app_commands.command(name="tempban", description="Temporarily ban a member from the server")
    @app_commands.describe(
        target="The member to temporarily ban",
        duration="Duration of the ban",
        reason="Reason for the temporary ban",
    )
    @app_commands.choices(duration=_TIMED_CHOICES)
    @app_commands.guild_only()
    @require_level(PermissionLevel.MODERATOR)
    async def tempban(
        self,
        interaction: discord.Interaction,
        target: discord.User,
        duration: str,
        reason: str | None = None,
    ) -> None:
        reason = reason or NO_REASON
        try:
            delta = parse_duration(duration)
        except ValueError:
            delta = None
        if delta is None:
            await interaction.response.send_message(
                "❌ Invalid duration specified.", ephemeral=True,
            )
            return

        member = await self._preflight(interaction, target, "ban", require_member=False)
        if member is False:
            return
        guild = interaction.guild
        assert guild is not None

        expires_at = datetime.now(UTC) + delta
        fields = [
            ("Reason", reason),
            ("Duration", DURATION_LABELS[duration]),
            ("Unban Time", discord_timestamp(expires_at)),
            ("Moderator", str(interaction.user)),
        ]
        if member is not None:
            await _dm(member, build_moderation_embed(
                "⏰ You have been temporarily banned",
                f"You have been temporarily banned from **{guild.name}**",
                COLOR_TEMPBAN,
                fields,
            ))

        try:
            await guild.ban(target, reason=f"Temporary ban ({duration}): {reason}")
        except discord.HTTPException:
            logger.exception("Error temp-banning %s", target.id)
            await interaction.response.send_message(
                "❌ An error occurred while trying to temporarily ban the user.",
                ephemeral=True,
            )
            return

        recorded = await self._record(
            interaction, ModerationActionType.TEMPBAN, target, reason, expires_at,
            supersede_open=True,
        )

        await interaction.response.send_message(embed=build_moderation_embed(
            "⏰ User Temporarily Banned",
            f"**{target}** has been temporarily banned.",
            COLOR_TEMPBAN,
            fields,
        ))

        if not recorded:
            await interaction.followup.send(
                "⚠️ The automatic unban could not be scheduled; unban manually.",
                ephemeral=True,
            )
        mod_log.info(
            "%s temp-banned %s (%s) for %s | Reason: %s",
            interaction.user, target, target.id, duration, reason,
        )


async def setup(bot: StagbotBot) -> None:
    await bot.add_cog(Moderation(bot))
