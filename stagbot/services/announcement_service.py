"""
stagbot.services.announcement_service — Milestone Announcements
================================================================

Best-effort public celebrations.  The tracker hands over a location (a
Discord channel) and one line of text; this module owns throttling and
failure isolation.  A post that cannot be delivered is logged and
dropped — it never affects the role grant that triggered it.

Throttle logic lives in :mod:`stagbot.services.throttle`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from discord.abc import Messageable

from stagbot.errors import AnnouncementFailed
from stagbot.services.throttle import AnnouncementThrottle

logger = logging.getLogger(__name__)

# Module-level throttle instance
_throttle = AnnouncementThrottle()


def start_queue(loop: asyncio.AbstractEventLoop) -> None:
    """Start the announcement throttle drain task. Call from on_ready."""
    _throttle.start(loop)


def stop_queue() -> None:
    """Stop the drain task. Call from bot close."""
    _throttle.stop()


class AnnouncementSink(Protocol):
    async def post(self, location: Any, text: str) -> None: ...


def format_milestone_announcement(user_id: str, threshold: int, reward_name: str) -> str:
    return (
        f"\U0001f389 Congratulations <@{user_id}>! You've reached "
        f"**{threshold} messages** and earned the **{reward_name}** role!"
    )


async def post_text(
    channel: Messageable | None,
    text: str,
    *,
    throttle: AnnouncementThrottle | None = None,
) -> None:
    """Send *text* to *channel*, or queue it if the channel is throttled.

    Raises
    ------
    AnnouncementFailed
        If the channel is not messageable or Discord rejects the send.
    """
    if channel is None or not isinstance(channel, Messageable):
        raise AnnouncementFailed(f"Not a messageable location: {channel!r}")
    throttle = throttle or _throttle
    channel_id = getattr(channel, "id", 0)
    if not throttle.is_allowed(channel_id):
        throttle.enqueue(channel_id, text, channel)
        return
    try:
        await channel.send(text)
    except Exception as exc:
        raise AnnouncementFailed(f"Send to channel {channel_id} failed: {exc}") from exc


class DiscordAnnouncementSink:
    """:class:`AnnouncementSink` that posts into Discord channels."""

    def __init__(self, throttle: AnnouncementThrottle | None = None) -> None:
        self.throttle = throttle

    async def post(self, location: Any, text: str) -> None:
        await post_text(location, text, throttle=self.throttle)
