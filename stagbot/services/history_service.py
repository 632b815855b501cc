"""
stagbot.services.history_service — Channel History Scanner
===========================================================

Walks text-channel history for ``/sync`` and tallies non-bot messages per
author.  The result feeds :meth:`MessageCountTracker.bulk_resync`.

A channel that errors mid-scan is logged and skipped; the messages
already counted from it are kept.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field

import discord

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 1000

ProgressCallback = Callable[[int, str], Awaitable[None]]


@dataclass
class HistoryScan:
    """Per-author tallies gathered by :func:`scan_history`."""

    counts: Counter[str] = field(default_factory=Counter)
    names: dict[str, str] = field(default_factory=dict)
    total_messages: int = 0
    channels_scanned: int = 0
    failed_channels: list[str] = field(default_factory=list)


def readable_text_channels(guild: discord.Guild) -> list[discord.TextChannel]:
    """Text channels where the bot can view and read history."""
    me = guild.me
    if me is None:
        return []
    return [
        ch for ch in guild.text_channels
        if ch.permissions_for(me).view_channel
        and ch.permissions_for(me).read_message_history
    ]


async def _report(on_progress: ProgressCallback, total: int, channel_name: str) -> None:
    # An expired interaction token must not abort the scan.
    try:
        await on_progress(total, channel_name)
    except discord.HTTPException as exc:
        logger.warning("Sync progress update failed at %d messages: %s", total, exc)


async def scan_history(
    channels: Iterable[discord.abc.Messageable],
    *,
    on_progress: ProgressCallback | None = None,
) -> HistoryScan:
    """Count every non-bot message in *channels*.

    *on_progress* is awaited with ``(total_messages, channel_name)`` each
    time another :data:`PROGRESS_EVERY` messages have been counted.  A
    Discord error raised by the callback is logged and the scan carries on.
    """
    scan = HistoryScan()
    for channel in channels:
        name = getattr(channel, "name", str(getattr(channel, "id", "?")))
        channel_count = 0
        try:
            async for message in channel.history(limit=None):
                if message.author.bot:
                    continue
                author_id = str(message.author.id)
                scan.counts[author_id] += 1
                scan.names.setdefault(author_id, message.author.name)
                scan.total_messages += 1
                channel_count += 1
                if on_progress is not None and scan.total_messages % PROGRESS_EVERY == 0:
                    await _report(on_progress, scan.total_messages, name)
        except discord.HTTPException as exc:
            logger.error("Error scanning channel #%s: %s", name, exc)
            scan.failed_channels.append(name)
            continue
        scan.channels_scanned += 1
        logger.info("Scanned %d messages from #%s", channel_count, name)
    return scan
