"""
tests/test_checks.py — Permission Level Tests
==============================================
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from conftest import run_async
from discord import app_commands

from stagbot.bot.checks import (
    NO_PERMISSION,
    PermissionLevel,
    has_level,
    permission_level,
    reply_check_failure,
)
from stagbot.config import StagbotConfig

CFG = StagbotConfig(
    community_name="Deer Haven",
    guild_id=1,
    authorized_user="elijah.cc",
    admin_role_id=900,
    moderator_role_id=800,
)


class _User(SimpleNamespace):
    def __str__(self) -> str:
        return self.tag


def _user(name="someone", tag=None, role_ids=()):
    return _User(
        name=name,
        tag=tag or name,
        roles=[SimpleNamespace(id=r) for r in role_ids],
    )


class TestPermissionLevel:
    def test_authorized_user_by_name_is_owner(self):
        assert permission_level(_user("elijah.cc"), CFG) is PermissionLevel.OWNER

    def test_authorized_user_by_tag_is_owner(self):
        user = _user("elijah", tag="elijah.cc")
        assert permission_level(user, CFG) is PermissionLevel.OWNER

    def test_admin_role(self):
        assert permission_level(_user(role_ids=[900]), CFG) is PermissionLevel.ADMIN

    def test_moderator_role(self):
        assert permission_level(_user(role_ids=[800]), CFG) is PermissionLevel.MODERATOR

    def test_admin_beats_moderator(self):
        assert permission_level(_user(role_ids=[800, 900]), CFG) is PermissionLevel.ADMIN

    def test_plain_member(self):
        assert permission_level(_user(role_ids=[1, 2]), CFG) is PermissionLevel.USER

    def test_user_without_roles_attribute(self):
        user = _User(name="dm-user", tag="dm-user")
        assert permission_level(user, CFG) is PermissionLevel.USER

    def test_levels_are_ordered(self):
        owner = _user("elijah.cc")
        assert has_level(owner, CFG, PermissionLevel.ADMIN)
        assert has_level(_user(role_ids=[900]), CFG, PermissionLevel.MODERATOR)
        assert not has_level(_user(role_ids=[800]), CFG, PermissionLevel.ADMIN)


class TestCheckFailureReply:
    def _interaction(self, done: bool = False):
        interaction = MagicMock()
        interaction.response.is_done.return_value = done
        interaction.response.send_message = AsyncMock()
        interaction.followup.send = AsyncMock()
        return interaction

    def test_check_failure_is_answered_ephemerally(self):
        interaction = self._interaction()
        run_async(reply_check_failure(interaction, app_commands.CheckFailure()))
        interaction.response.send_message.assert_awaited_once_with(NO_PERMISSION, ephemeral=True)

    def test_followup_used_after_response(self):
        interaction = self._interaction(done=True)
        run_async(reply_check_failure(interaction, app_commands.CheckFailure()))
        interaction.followup.send.assert_awaited_once_with(NO_PERMISSION, ephemeral=True)
