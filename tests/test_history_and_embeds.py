"""
tests/test_history_and_embeds.py — History Scan & Embed Builder Tests
======================================================================
"""

from __future__ import annotations

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord
from conftest import run_async

from stagbot.engine.milestones import Milestone, milestone_progress
from stagbot.services import history_service
from stagbot.services.count_service import UserCountRecord
from stagbot.services.embeds import (
    build_faq_embed,
    build_leaderboard_embed,
    build_level_embed,
    build_moderation_embed,
    build_rule_embed,
    build_sync_result_embed,
    preview,
)
from stagbot.services.content_service import FaqEntry, RuleEntry
from stagbot.services.history_service import HistoryScan, scan_history
from stagbot.services.tracker import ResyncSummary

LADDER = (Milestone(10, "Newbie"), Milestone(100, "Regular"))


# ---------------------------------------------------------------------------
# History scanning
# ---------------------------------------------------------------------------
def _msg(author_id: int, bot: bool = False):
    return SimpleNamespace(author=SimpleNamespace(id=author_id, name=f"user{author_id}", bot=bot))


class _Channel:
    def __init__(self, name, messages, fail_after=None):
        self.name = name
        self.id = hash(name)
        self._messages = messages
        self._fail_after = fail_after

    def history(self, limit=None):
        async def _gen():
            for i, m in enumerate(self._messages):
                if self._fail_after is not None and i == self._fail_after:
                    raise discord.Forbidden(MagicMock(status=403), "Missing Access")
                yield m
        return _gen()


class TestScanHistory:
    def test_counts_non_bot_authors(self):
        general = _Channel("general", [_msg(1), _msg(2), _msg(1), _msg(3, bot=True)])
        memes = _Channel("memes", [_msg(2), _msg(2)])
        scan = run_async(scan_history([general, memes]))
        assert scan.counts == {"1": 2, "2": 3}
        assert scan.names["1"] == "user1"
        assert scan.total_messages == 5
        assert scan.channels_scanned == 2
        assert scan.failed_channels == []

    def test_failing_channel_is_skipped_but_counts_kept(self):
        broken = _Channel("secret", [_msg(1), _msg(1), _msg(1)], fail_after=2)
        ok = _Channel("general", [_msg(2)])
        scan = run_async(scan_history([broken, ok]))
        assert scan.counts == {"1": 2, "2": 1}
        assert scan.channels_scanned == 1
        assert scan.failed_channels == ["secret"]

    def test_progress_callback(self, monkeypatch):
        monkeypatch.setattr(history_service, "PROGRESS_EVERY", 2)
        progress = AsyncMock()
        channel = _Channel("general", [_msg(1)] * 5)
        run_async(scan_history([channel], on_progress=progress))
        assert [c.args for c in progress.await_args_list] == [(2, "general"), (4, "general")]

    def test_progress_failure_does_not_abort_channel(self, monkeypatch):
        monkeypatch.setattr(history_service, "PROGRESS_EVERY", 2)
        progress = AsyncMock(
            side_effect=discord.NotFound(MagicMock(status=404), "Unknown interaction"),
        )
        channel = _Channel("general", [_msg(1)] * 5)
        scan = run_async(scan_history([channel], on_progress=progress))
        assert progress.await_count == 2
        assert scan.counts["1"] == 5
        assert scan.channels_scanned == 1
        assert scan.failed_channels == []


# ---------------------------------------------------------------------------
# Embeds
# ---------------------------------------------------------------------------
def _fields(embed: discord.Embed) -> dict[str, str]:
    return {f.name: f.value for f in embed.fields}


class TestLevelEmbed:
    def test_shows_current_and_next(self):
        embed = build_level_embed("alice", None, milestone_progress(LADDER, 42))
        fields = _fields(embed)
        assert embed.title == "\U0001f4ca alice's Level Statistics"
        assert fields["\U0001f4dd Total Messages"] == "42"
        assert fields["\U0001f3c6 Current Milestone"] == "Newbie"
        assert fields["\U0001f3af Next Milestone"] == "Regular\n(58 messages to go)"

    def test_maxed(self):
        fields = _fields(build_level_embed("alice", None, milestone_progress(LADDER, 100)))
        assert fields["\U0001f451 Status"] == "Maximum level reached!"
        assert "\U0001f3af Next Milestone" not in fields

    def test_new_member_has_no_current(self):
        fields = _fields(build_level_embed("bob", None, milestone_progress(LADDER, 0)))
        assert "\U0001f3c6 Current Milestone" not in fields

    def test_last_message_shown_when_known(self):
        seen = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
        embed = build_level_embed(
            "alice", None, milestone_progress(LADDER, 42), last_message_at=seen,
        )
        assert _fields(embed)["\U0001f552 Last Message"] == f"<t:{int(seen.timestamp())}:R>"

    def test_last_message_omitted_without_activity(self):
        fields = _fields(build_level_embed("bob", None, milestone_progress(LADDER, 0)))
        assert "\U0001f552 Last Message" not in fields


class TestLeaderboardEmbed:
    def test_empty(self):
        embed = build_leaderboard_embed([], caller_rank=None, caller_count=0)
        assert embed.description == "No messages tracked yet."

    def test_badges_and_caller_rank(self):
        rows = [UserCountRecord(str(i), f"user{i}", 100 - i) for i in range(1, 5)]
        embed = build_leaderboard_embed(rows, caller_rank=7, caller_count=12)
        lines = embed.description.splitlines()
        assert lines[0].startswith("\U0001f947 user1")
        assert lines[3].startswith("**#4** user4")
        assert lines[-1] == "\U0001f464 **Your Rank:** #7 — 12 messages"

    def test_caller_without_messages(self):
        rows = [UserCountRecord("1", "user1", 5)]
        embed = build_leaderboard_embed(rows, caller_rank=None, caller_count=0)
        assert embed.description.endswith("You have no messages counted yet.")


def test_sync_result_embed():
    scan = HistoryScan(total_messages=1234, channels_scanned=3)
    summary = ResyncSummary(users_updated=5, rewards_granted=2, users_rejected=1)
    fields = _fields(build_sync_result_embed(scan, summary))
    stats = fields["\U0001f4ca Statistics"]
    assert "**1,234** total messages scanned" in stats
    assert "**5** users updated" in stats
    assert "**2** milestone roles awarded" in stats
    assert "1 lower counts skipped" in fields["⚠️ Skipped"]


def test_faq_and_rule_embeds():
    faq = build_faq_embed(2, FaqEntry("How?", "Like this.", "General"))
    assert faq.title == "❓ FAQ #2: How?"
    assert faq.footer.text == "Category: General"
    rule = build_rule_embed(1, RuleEntry("Be nice", "High", "Ban"))
    assert rule.title == "\U0001f4cb Rule #1"
    assert rule.footer.text == "Severity: High | Punishment: Ban"


def test_moderation_embed_fields_in_order():
    embed = build_moderation_embed("T", "D", 0xE74C3C, [("Reason", "spam"), ("Moderator", "mod")])
    assert [f.name for f in embed.fields] == ["Reason", "Moderator"]


def test_preview_truncates():
    assert preview("x" * 100) == "x" * 100
    assert preview("x" * 101) == "x" * 100 + "..."
