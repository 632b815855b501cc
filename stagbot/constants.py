"""
stagbot.constants — Shared Constants & Helpers
===============================================

Single source of truth for presentation constants, moderation durations,
and the milestone colour ladder.  Import from here instead of duplicating
in cogs and services.
"""

from __future__ import annotations

import re
from datetime import timedelta

RANK_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉

# ---------------------------------------------------------------------------
# Embed colours (hex) shared by the embed builders
# ---------------------------------------------------------------------------
COLOR_BAN = 0xE74C3C
COLOR_TEMPBAN = 0xE67E22
COLOR_MUTE = 0xF39C12
COLOR_SUCCESS = 0x27AE60
COLOR_INFO = 0x3498DB
COLOR_FAQ = 0x9B59B6
COLOR_LEADERBOARD = 0xF1C40F
COLOR_MUTE_ROLE = 0x95A5A6


# ---------------------------------------------------------------------------
# Moderation durations (shared by /mute and /tempban)
# ---------------------------------------------------------------------------
MODERATION_DURATIONS: dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "12h": timedelta(hours=12),
    "1d": timedelta(days=1),
    "3d": timedelta(days=3),
    "7d": timedelta(days=7),
}

DURATION_LABELS: dict[str, str] = {
    "1h": "1 hour",
    "6h": "6 hours",
    "12h": "12 hours",
    "1d": "1 day",
    "3d": "3 days",
    "7d": "7 days",
}

PERMANENT = "permanent"


def parse_duration(key: str) -> timedelta | None:
    """Map a duration choice to a :class:`timedelta`.

    Returns ``None`` for ``"permanent"``.

    Raises
    ------
    ValueError
        If *key* is not a known duration.
    """
    if key == PERMANENT:
        return None
    try:
        return MODERATION_DURATIONS[key]
    except KeyError:
        raise ValueError(f"Unknown duration: {key!r}") from None


# ---------------------------------------------------------------------------
# Milestone role colours — higher tiers get warmer colours
# ---------------------------------------------------------------------------
_MILESTONE_COLORS: list[tuple[int, int]] = [
    (50000, 0xE74C3C),  # red
    (25000, 0x9B59B6),  # purple
    (10000, 0x3498DB),  # blue
    (5000, 0x1ABC9C),   # teal
    (2500, 0x2ECC71),   # green
    (1000, 0xF39C12),   # orange
    (500, 0xE67E22),    # dark orange
]
_DEFAULT_MILESTONE_COLOR = 0x95A5A6  # grey


def milestone_color(threshold: int) -> int:
    """Role colour for a milestone at *threshold* messages."""
    for floor, color in _MILESTONE_COLORS:
        if threshold >= floor:
            return color
    return _DEFAULT_MILESTONE_COLOR


# ---------------------------------------------------------------------------
# Broadcast embed colours
# ---------------------------------------------------------------------------
_HEX_COLOR_RE = re.compile(r"^[0-9a-fA-F]{6}$")


def parse_hex_color(value: str | None, default: int = COLOR_INFO) -> int:
    """Parse a 6-digit hex colour without ``#``; *default* when empty.

    Raises
    ------
    ValueError
        If *value* is not exactly six hex digits.
    """
    if not value:
        return default
    if not _HEX_COLOR_RE.match(value):
        raise ValueError(f"Invalid hex colour: {value!r}")
    return int(value, 16)
