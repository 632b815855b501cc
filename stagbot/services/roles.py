"""
stagbot.services.roles — Role Provider
=======================================

The tracker only needs three things from Discord: "does this member hold
role X?", "make sure role X exists", and "give role X to this member".
:class:`RoleProvider` names that contract; :class:`DiscordRoleProvider`
implements it with discord.py against the configured guild.

Any refusal from Discord (missing permissions, role above the bot, the
member having left) surfaces as :class:`~stagbot.errors.RoleGrantFailed`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

import discord

from stagbot.errors import RoleGrantFailed

if TYPE_CHECKING:
    from discord.ext import commands

logger = logging.getLogger(__name__)


class RoleProvider(Protocol):
    async def has_role(self, user_id: str, role_name: str) -> bool: ...

    async def ensure_role(self, role_name: str, color: int) -> Any: ...

    async def grant_role(self, user_id: str, role: Any) -> None: ...


class DiscordRoleProvider:
    """:class:`RoleProvider` backed by one guild of a running bot.

    The guild is resolved on every call so the provider can be built before
    the gateway cache is ready.
    """

    def __init__(self, bot: commands.Bot, guild_id: int) -> None:
        self.bot = bot
        self.guild_id = guild_id

    def _guild(self) -> discord.Guild:
        guild = self.bot.get_guild(self.guild_id)
        if guild is None:
            raise RoleGrantFailed("?", "?", f"guild {self.guild_id} is not available")
        return guild

    async def _member(self, guild: discord.Guild, user_id: str) -> discord.Member | None:
        member = guild.get_member(int(user_id))
        if member is not None:
            return member
        try:
            return await guild.fetch_member(int(user_id))
        except discord.NotFound:
            return None
        except discord.HTTPException as exc:
            raise RoleGrantFailed(user_id, "?", f"member lookup failed: {exc}") from exc

    async def has_role(self, user_id: str, role_name: str) -> bool:
        guild = self._guild()
        member = await self._member(guild, user_id)
        if member is None:
            return False
        return any(r.name == role_name for r in member.roles)

    async def ensure_role(self, role_name: str, color: int) -> discord.Role:
        guild = self._guild()
        role = discord.utils.get(guild.roles, name=role_name)
        if role is not None:
            return role
        try:
            role = await guild.create_role(
                name=role_name,
                colour=discord.Colour(color),
                reason=f"Leveling system role: {role_name}",
            )
        except discord.HTTPException as exc:
            raise RoleGrantFailed("?", role_name, f"could not create role: {exc}") from exc
        logger.info("Created milestone role %r in guild %s", role_name, guild.id)
        return role

    async def grant_role(self, user_id: str, role: discord.Role) -> None:
        guild = self._guild()
        member = await self._member(guild, user_id)
        if member is None:
            raise RoleGrantFailed(user_id, role.name, "member is no longer in the guild")
        if any(r.id == role.id for r in member.roles):
            return
        try:
            await member.add_roles(role, reason="Message milestone reached")
        except discord.HTTPException as exc:
            raise RoleGrantFailed(user_id, role.name, str(exc)) from exc
