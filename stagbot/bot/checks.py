"""
stagbot.bot.checks — Permission Levels & Command Checks
========================================================

Four ordered levels gate the slash commands:

- ``OWNER`` — the configured ``authorized_user`` (matched by username or tag)
- ``ADMIN`` — members holding ``admin_role_id``
- ``MODERATOR`` — members holding ``moderator_role_id``
- ``USER`` — everyone else

A higher level always satisfies a lower requirement.  Decorate a command
with ``@require_level(PermissionLevel.MODERATOR)``; a failed check is
answered ephemerally by :func:`reply_check_failure`.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands

from stagbot.config import StagbotConfig

if TYPE_CHECKING:
    from stagbot.bot.core import StagbotBot

logger = logging.getLogger(__name__)

NO_PERMISSION = "❌ You do not have permission to use this command."


class PermissionLevel(enum.IntEnum):
    USER = 0
    MODERATOR = 1
    ADMIN = 2
    OWNER = 3


def permission_level(user: discord.abc.User, cfg: StagbotConfig) -> PermissionLevel:
    """Resolve *user*'s level from the config and their guild roles."""
    if cfg.authorized_user and cfg.authorized_user in (user.name, str(user)):
        return PermissionLevel.OWNER

    role_ids = {role.id for role in getattr(user, "roles", [])}
    if cfg.admin_role_id is not None and cfg.admin_role_id in role_ids:
        return PermissionLevel.ADMIN
    if cfg.moderator_role_id is not None and cfg.moderator_role_id in role_ids:
        return PermissionLevel.MODERATOR
    return PermissionLevel.USER


def has_level(user: discord.abc.User, cfg: StagbotConfig, required: PermissionLevel) -> bool:
    return permission_level(user, cfg) >= required


def require_level(required: PermissionLevel):
    """``app_commands`` check: caller must be at *required* level or above."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: StagbotBot = interaction.client  # type: ignore[assignment]
        return has_level(interaction.user, bot.cfg, required)
    return app_commands.check(predicate)


async def reply_check_failure(
    interaction: discord.Interaction,
    error: app_commands.AppCommandError,
) -> None:
    """Tree-wide error handler for slash commands."""
    if isinstance(error, app_commands.CheckFailure):
        message = NO_PERMISSION
    else:
        command = interaction.command.name if interaction.command else "?"
        logger.error("Error executing command /%s", command, exc_info=error)
        message = "There was an error while executing this command!"

    if interaction.response.is_done():
        await interaction.followup.send(message, ephemeral=True)
    else:
        await interaction.response.send_message(message, ephemeral=True)
