"""
stagbot.services.throttle — Per-channel announcement throttle
==============================================================

A burst of milestone crossings (a busy channel, or several members passing
100 messages in the same minute) must not flood a channel.  Each channel
gets ``max_per_window`` posts per ``window`` seconds; the rest wait in a
FIFO backlog that a background task retries every ``DRAIN_INTERVAL``
seconds.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import defaultdict, deque
from collections.abc import Callable

from discord.abc import Messageable

logger = logging.getLogger(__name__)

DRAIN_INTERVAL = 10.0


class AnnouncementThrottle:
    """Sliding-window limit per channel with a backlog for overflow text."""

    def __init__(
        self,
        max_per_window: int = 3,
        window: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_per_window = max_per_window
        self.window = window
        self._clock = clock
        self._sent: dict[int, deque[float]] = defaultdict(deque)
        self._backlog: dict[int, deque[tuple[str, Messageable]]] = defaultdict(deque)
        self._drain_task: asyncio.Task | None = None

    def is_allowed(self, channel_id: int) -> bool:
        """Claim a slot in *channel_id*'s window; False means enqueue instead."""
        now = self._clock()
        sent = self._sent[channel_id]
        while sent and sent[0] <= now - self.window:
            sent.popleft()
        if len(sent) >= self.max_per_window:
            return False
        sent.append(now)
        return True

    def enqueue(self, channel_id: int, text: str, channel: Messageable) -> None:
        self._backlog[channel_id].append((text, channel))

    async def drain_once(self) -> None:
        """Send backlog entries for every channel whose window has room."""
        for channel_id, backlog in list(self._backlog.items()):
            while backlog and self.is_allowed(channel_id):
                text, channel = backlog.popleft()
                try:
                    await channel.send(text)
                except Exception:
                    logger.exception("Queued announcement to channel %d failed", channel_id)
            if not backlog:
                del self._backlog[channel_id]

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the background drain task (idempotent)."""
        if self._drain_task is not None:
            return

        async def _drain_forever() -> None:
            while True:
                await asyncio.sleep(DRAIN_INTERVAL)
                try:
                    await self.drain_once()
                except Exception:
                    logger.exception("Announcement backlog drain failed")

        self._drain_task = loop.create_task(_drain_forever(), name="announce-drain")

    def stop(self) -> None:
        if self._drain_task is not None:
            self._drain_task.cancel()
            self._drain_task = None
