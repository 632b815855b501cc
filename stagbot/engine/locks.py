"""
stagbot.engine.locks — Per-Key asyncio Locks
=============================================

Serializes work per key (a user id, or a ``(user_id, role_name)`` pair)
without making unrelated keys wait on each other.  Entries are
reference-counted and dropped as soon as nobody holds or waits on them,
so the registry never grows with the member count.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class KeyedLock:
    """A registry of :class:`asyncio.Lock` objects keyed by any hashable."""

    def __init__(self) -> None:
        self._entries: dict[Hashable, _Entry] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        """Acquire the lock for *key* for the duration of the block."""
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                self._entries.pop(key, None)
