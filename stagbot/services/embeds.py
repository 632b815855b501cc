"""
stagbot.services.embeds — Discord embed builders
=================================================

All embed construction lives here so the cogs only need to supply data —
no layout concerns.
"""

from __future__ import annotations

from datetime import UTC, datetime

import discord

from stagbot.constants import (
    COLOR_BAN,
    COLOR_FAQ,
    COLOR_INFO,
    COLOR_LEADERBOARD,
    COLOR_SUCCESS,
    RANK_BADGES,
)
from stagbot.engine.milestones import MilestoneProgress
from stagbot.services.content_service import FaqEntry, RuleEntry
from stagbot.services.count_service import UserCountRecord
from stagbot.services.history_service import HistoryScan
from stagbot.services.tracker import ResyncSummary

PREVIEW_LENGTH = 100


def discord_timestamp(when: datetime, style: str = "F") -> str:
    """``<t:unix:F>`` markup rendered in each viewer's local time."""
    return f"<t:{int(when.timestamp())}:{style}>"


def preview(content: str, length: int = PREVIEW_LENGTH) -> str:
    return content if len(content) <= length else content[:length] + "..."


# ---------------------------------------------------------------------------
# Leveling
# ---------------------------------------------------------------------------
def build_level_embed(
    display_name: str,
    avatar_url: str | None,
    progress: MilestoneProgress,
    *,
    last_message_at: datetime | None = None,
) -> discord.Embed:
    embed = discord.Embed(
        title=f"\U0001f4ca {display_name}'s Level Statistics",
        color=COLOR_INFO,
        timestamp=datetime.now(UTC),
    )
    if avatar_url:
        embed.set_thumbnail(url=avatar_url)
    embed.add_field(name="\U0001f4dd Total Messages", value=str(progress.count), inline=True)
    if progress.current is not None:
        embed.add_field(
            name="\U0001f3c6 Current Milestone",
            value=progress.current.reward_name,
            inline=True,
        )
    if progress.next is not None:
        embed.add_field(
            name="\U0001f3af Next Milestone",
            value=f"{progress.next.reward_name}\n({progress.remaining} messages to go)",
            inline=True,
        )
    elif progress.maxed:
        embed.add_field(name="\U0001f451 Status", value="Maximum level reached!", inline=True)
    if last_message_at is not None:
        embed.add_field(
            name="\U0001f552 Last Message",
            value=discord_timestamp(last_message_at, "R"),
            inline=False,
        )
    return embed


def build_leaderboard_embed(
    rows: list[UserCountRecord],
    *,
    caller_rank: int | None,
    caller_count: int,
) -> discord.Embed:
    """Top-N list with medal badges plus the caller's own standing."""
    embed = discord.Embed(
        title="\U0001f3c6 Message Leaderboard",
        color=COLOR_LEADERBOARD,
        timestamp=datetime.now(UTC),
    )
    if not rows:
        embed.description = "No messages tracked yet."
        return embed

    lines = []
    for i, row in enumerate(rows, 1):
        badge = RANK_BADGES[i - 1] if i <= len(RANK_BADGES) else f"**#{i}**"
        lines.append(f"{badge} {row.display_name} — {row.message_count:,} messages")
    lines.append("")
    if caller_rank is not None:
        lines.append(f"\U0001f464 **Your Rank:** #{caller_rank} — {caller_count:,} messages")
    else:
        lines.append("\U0001f464 You have no messages counted yet.")
    embed.description = "\n".join(lines)
    return embed


def build_sync_progress_embed(total_messages: int = 0, channel_name: str | None = None) -> discord.Embed:
    if total_messages:
        description = (
            f"Scanned {total_messages:,} messages so far...\n"
            f"Current channel: {channel_name}"
        )
    else:
        description = "This may take a while for large servers."
    return discord.Embed(
        title="\U0001f504 Scanning Message History...",
        description=description,
        color=COLOR_INFO,
        timestamp=datetime.now(UTC),
    )


def build_sync_result_embed(scan: HistoryScan, summary: ResyncSummary) -> discord.Embed:
    embed = discord.Embed(
        title="✅ Message History Sync Complete",
        color=COLOR_SUCCESS,
        timestamp=datetime.now(UTC),
    )
    stats = (
        f"**{scan.total_messages:,}** total messages scanned\n"
        f"**{scan.channels_scanned}** channels processed\n"
        f"**{summary.users_updated}** users updated\n"
        f"**{summary.rewards_granted}** milestone roles awarded"
    )
    embed.add_field(name="\U0001f4ca Statistics", value=stats, inline=False)
    problems = []
    if summary.users_rejected:
        problems.append(f"{summary.users_rejected} lower counts skipped")
    if summary.failures:
        problems.append(f"{len(summary.failures)} users failed")
    if scan.failed_channels:
        problems.append(f"{len(scan.failed_channels)} channels unreadable")
    if problems:
        embed.add_field(name="⚠️ Skipped", value="\n".join(problems), inline=False)
    return embed


def build_sync_error_embed() -> discord.Embed:
    return discord.Embed(
        title="❌ Sync Error",
        description=(
            "An error occurred during the message history sync. "
            "Check the logs for details."
        ),
        color=COLOR_BAN,
        timestamp=datetime.now(UTC),
    )


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------
def build_moderation_embed(
    title: str,
    description: str,
    color: int,
    fields: list[tuple[str, str]],
) -> discord.Embed:
    """Shared shape of the DM notice and the public confirmation."""
    embed = discord.Embed(
        title=title,
        description=description,
        color=color,
        timestamp=datetime.now(UTC),
    )
    for name, value in fields:
        embed.add_field(name=name, value=value, inline=False)
    return embed


def build_automod_alert(
    author_tag: str,
    author_id: int,
    content: str,
    channel_id: int,
) -> discord.Embed:
    embed = discord.Embed(
        title="\U0001f6a8 AutoMod Alert",
        color=discord.Color.red(),
        timestamp=datetime.now(UTC),
    )
    embed.add_field(name="User", value=f"{author_tag} ({author_id})", inline=False)
    embed.add_field(name="Message", value=preview(content, 1024) if content else "*No content*", inline=False)
    embed.add_field(name="Channel", value=f"<#{channel_id}>", inline=False)
    return embed


# ---------------------------------------------------------------------------
# Information
# ---------------------------------------------------------------------------
def build_faq_embed(number: int, entry: FaqEntry) -> discord.Embed:
    embed = discord.Embed(
        title=f"❓ FAQ #{number}: {entry.question}",
        description=entry.answer,
        color=COLOR_FAQ,
        timestamp=datetime.now(UTC),
    )
    if entry.category:
        embed.set_footer(text=f"Category: {entry.category}")
    return embed


def build_rule_embed(number: int, entry: RuleEntry) -> discord.Embed:
    embed = discord.Embed(
        title=f"\U0001f4cb Rule #{number}",
        description=entry.description,
        color=COLOR_INFO,
        timestamp=datetime.now(UTC),
    )
    embed.set_footer(text=f"Severity: {entry.severity} | Punishment: {entry.punishment}")
    return embed


# ---------------------------------------------------------------------------
# Broadcast
# ---------------------------------------------------------------------------
def build_broadcast_embed(content: str, color: int, title: str | None = None) -> discord.Embed:
    embed = discord.Embed(description=content, color=color, timestamp=datetime.now(UTC))
    if title:
        embed.title = title
    return embed


def build_broadcast_confirmation(channel_mention: str, content: str) -> discord.Embed:
    embed = discord.Embed(
        title="✅ Anonymous Message Sent",
        description=f"Your message has been sent to {channel_mention}",
        color=COLOR_SUCCESS,
        timestamp=datetime.now(UTC),
    )
    embed.add_field(name="Content Preview", value=preview(content), inline=False)
    return embed
