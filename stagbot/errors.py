"""
stagbot.errors — Error Taxonomy
================================

Every failure the message-count tracker can surface maps onto one of these
classes.  Cogs catch them at the command boundary and turn them into a
generic ephemeral reply; the ingestion path logs them and moves on.
"""

from __future__ import annotations


class StagbotError(Exception):
    """Base class for all stagbot errors."""


class PersistenceUnavailable(StagbotError):
    """The count store could not be read or written (or timed out)."""


class RoleGrantFailed(StagbotError):
    """The role provider rejected a grant.

    The milestone is *not* recorded as awarded, so it is retried on the
    user's next qualifying message or the next resync.
    """

    def __init__(self, user_id: str, role_name: str, reason: str = "") -> None:
        self.user_id = user_id
        self.role_name = role_name
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Could not grant {role_name!r} to {user_id}{detail}")


class AnnouncementFailed(StagbotError):
    """A best-effort announcement could not be posted."""


class InvalidConfiguration(StagbotError):
    """Configuration or data files are unusable.  Fatal at start-up."""
