"""
stagbot.services.tracker — Message-Count Tracker
=================================================

Owns the mapping *member → message count* and drives the side effects of
crossing a milestone: grant the role, then (optionally) announce it.

Pipeline for one qualifying message::

    process_message(user, name, location)
      ├─ record_message   → atomic +1 under a per-user lock
      ├─ evaluate_milestones(min(old, awarded_through), new)
      └─ award_milestone  → has_role? ensure_role → grant_role
                            → persist awarded_through → announce

Concurrency rules:

- increments for the same user are serialized by a per-user
  :class:`~stagbot.engine.locks.KeyedLock`; the SQL increment itself is
  atomic as well, so several bot processes cannot lose updates either;
- grants are serialized per ``(user, role)`` and a pair that was granted
  within the last ``settle_seconds`` is not granted again (the member
  cache can lag behind ``add_roles``);
- different users never wait on each other;
- every store call is bounded by ``db_timeout`` seconds.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from stagbot.constants import milestone_color
from stagbot.database.engine import run_db
from stagbot.engine.locks import KeyedLock
from stagbot.engine.milestones import (
    Milestone,
    evaluate_milestones,
    highest_reached,
    validate_milestones,
)
from stagbot.errors import PersistenceUnavailable, RoleGrantFailed
from stagbot.services import count_service
from stagbot.services.announcement_service import format_milestone_announcement
from stagbot.services.count_service import IncrementResult, UserCountRecord

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from stagbot.services.announcement_service import AnnouncementSink
    from stagbot.services.roles import RoleProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AwardOutcome:
    milestone: Milestone
    granted: bool
    error: str | None = None


@dataclass(slots=True)
class MessageOutcome:
    """What happened for one qualifying message."""

    old_count: int
    new_count: int
    awards: list[AwardOutcome] = field(default_factory=list)

    @property
    def granted(self) -> list[Milestone]:
        return [a.milestone for a in self.awards if a.granted]


@dataclass(slots=True)
class ResyncSummary:
    """Totals reported by :meth:`MessageCountTracker.bulk_resync`."""

    users_updated: int = 0
    users_unchanged: int = 0
    users_rejected: int = 0
    rewards_granted: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------
class MessageCountTracker:
    """Counts qualifying messages per user and awards milestone roles.

    Parameters
    ----------
    engine:
        SQLAlchemy engine holding the ``message_counts`` table.
    milestones:
        The milestone ladder.  Validated here as well as in the config
        loader; an invalid ladder raises ``InvalidConfiguration``.
    roles:
        A :class:`~stagbot.services.roles.RoleProvider`.
    sink:
        Optional :class:`~stagbot.services.announcement_service.AnnouncementSink`.
    announce:
        Master switch for milestone announcements.
    db_timeout:
        Upper bound (seconds) for every store call.
    settle_seconds:
        How long a granted ``(user, role)`` pair is remembered.
    """

    def __init__(
        self,
        engine: Engine,
        milestones: Iterable[Milestone],
        roles: RoleProvider,
        sink: AnnouncementSink | None = None,
        *,
        announce: bool = True,
        db_timeout: float = 10.0,
        settle_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.engine = engine
        self.milestones: tuple[Milestone, ...] = validate_milestones(milestones)
        self.roles = roles
        self.sink = sink
        self.announce = announce
        self.db_timeout = db_timeout
        self.settle_seconds = settle_seconds
        self._clock = clock
        self._user_locks = KeyedLock()
        self._award_locks = KeyedLock()
        self._recent_awards: dict[tuple[str, str], float] = {}

    # -------------------------------------------------------------------
    # Store access
    # -------------------------------------------------------------------
    async def _db(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a count_service function off-loop with a timeout."""
        try:
            return await asyncio.wait_for(
                run_db(func, self.engine, *args, **kwargs), timeout=self.db_timeout,
            )
        except TimeoutError as exc:
            raise PersistenceUnavailable(
                f"{func.__name__} timed out after {self.db_timeout:g}s"
            ) from exc
        except SQLAlchemyError as exc:
            raise PersistenceUnavailable(f"{func.__name__} failed: {exc}") from exc

    # -------------------------------------------------------------------
    # Write path
    # -------------------------------------------------------------------
    async def _increment(self, user_id: str, display_name: str) -> IncrementResult:
        async with self._user_locks.hold(user_id):
            return await self._db(count_service.increment_count, user_id, display_name)

    async def record_message(self, user_id: str, display_name: str) -> tuple[int, int]:
        """Add one message for *user_id*; returns ``(old_count, new_count)``."""
        result = await self._increment(user_id, display_name)
        return result.old_count, result.new_count

    def evaluate_milestones(self, old_count: int, new_count: int) -> list[Milestone]:
        """Milestones with ``old_count < threshold <= new_count``, ascending."""
        return evaluate_milestones(self.milestones, old_count, new_count)

    def _prune_recent(self) -> None:
        cutoff = self._clock() - self.settle_seconds
        stale = [k for k, t in self._recent_awards.items() if t <= cutoff]
        for key in stale:
            del self._recent_awards[key]

    async def _mark_awarded(self, user_id: str, milestone: Milestone) -> None:
        try:
            await self._db(count_service.mark_awarded_through, user_id, milestone.threshold)
        except PersistenceUnavailable:
            # The role is held; the next message re-checks it and marks again.
            logger.warning(
                "Could not record %r as awarded for %s", milestone.reward_name, user_id,
                exc_info=True,
            )

    async def award_milestone(
        self,
        user_id: str,
        milestone: Milestone,
        *,
        location: Any = None,
    ) -> bool:
        """Grant *milestone*'s role to *user_id* unless they already hold it.

        Returns True only when this call performed the grant.  If
        *location* is given and announcements are enabled, a one-line
        congratulation is posted after the grant; a failed post is logged
        and ignored.

        Raises
        ------
        RoleGrantFailed
            If the role provider refused; nothing is recorded.
        """
        key = (user_id, milestone.reward_name)
        async with self._award_locks.hold(key):
            self._prune_recent()
            if key in self._recent_awards:
                logger.debug("Skipping duplicate grant of %r to %s", milestone.reward_name, user_id)
                return False

            if await self.roles.has_role(user_id, milestone.reward_name):
                await self._mark_awarded(user_id, milestone)
                return False

            role = await self.roles.ensure_role(
                milestone.reward_name, milestone_color(milestone.threshold),
            )
            await self.roles.grant_role(user_id, role)
            self._recent_awards[key] = self._clock()
            await self._mark_awarded(user_id, milestone)

        logger.info(
            "User %s earned %r (%d messages)", user_id, milestone.reward_name, milestone.threshold,
        )
        if location is not None and self.announce:
            await self._announce(location, user_id, milestone)
        return True

    async def _announce(self, location: Any, user_id: str, milestone: Milestone) -> None:
        if self.sink is None:
            return
        text = format_milestone_announcement(user_id, milestone.threshold, milestone.reward_name)
        try:
            await self.sink.post(location, text)
        except Exception:
            logger.warning(
                "Milestone announcement for %s (%r) failed", user_id, milestone.reward_name,
                exc_info=True,
            )

    async def _award_ladder(
        self,
        user_id: str,
        crossed: Sequence[Milestone],
        *,
        location: Any = None,
    ) -> list[AwardOutcome]:
        """Award *crossed* in order, stopping at the first refusal.

        Stopping keeps ``awarded_through`` honest: a higher milestone is
        never recorded while a lower one is still owed.
        """
        outcomes: list[AwardOutcome] = []
        for milestone in crossed:
            try:
                granted = await self.award_milestone(user_id, milestone, location=location)
            except RoleGrantFailed as exc:
                logger.warning("Milestone grant failed: %s", exc)
                outcomes.append(AwardOutcome(milestone, False, str(exc)))
                break
            outcomes.append(AwardOutcome(milestone, granted))
        return outcomes

    async def process_message(
        self,
        user_id: str,
        display_name: str,
        *,
        location: Any = None,
    ) -> MessageOutcome:
        """Count one qualifying message and award anything it unlocked.

        Milestones are evaluated from ``min(old_count, awarded_through)``
        so a grant that failed earlier is retried now.
        """
        inc = await self._increment(user_id, display_name)
        outcome = MessageOutcome(inc.old_count, inc.new_count)
        start = min(inc.old_count, inc.awarded_through)
        crossed = self.evaluate_milestones(start, inc.new_count)
        if crossed:
            outcome.awards = await self._award_ladder(user_id, crossed, location=location)
        return outcome

    # -------------------------------------------------------------------
    # Read path
    # -------------------------------------------------------------------
    async def get_count(self, user_id: str) -> int:
        """Message count for *user_id*; 0 if never seen."""
        return await self._db(count_service.get_count, user_id)

    async def get_record(self, user_id: str) -> UserCountRecord | None:
        """Full record (count and last activity), or ``None`` if never seen."""
        return await self._db(count_service.get_record, user_id)

    async def get_ranked(self, limit: int) -> list[UserCountRecord]:
        """Top *limit* users by count (ties in insertion order)."""
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValueError(f"limit must be a positive integer, got {limit!r}")
        return await self._db(count_service.list_ordered_by_count_desc, limit)

    async def get_rank(self, user_id: str) -> int | None:
        """1-based leaderboard position, or ``None`` if never seen."""
        return await self._db(count_service.get_rank, user_id)

    # -------------------------------------------------------------------
    # Administrative resync
    # -------------------------------------------------------------------
    async def bulk_resync(
        self,
        counts: Mapping[str, int] | Iterable[tuple[str, int]],
        award_on_apply: bool = True,
        *,
        display_names: Mapping[str, str] | None = None,
    ) -> ResyncSummary:
        """Overwrite counts with absolute values, one user at a time.

        - Lower values are rejected and logged; the stored count stays.
        - With *award_on_apply*, milestones between the stored state and the
          new count are granted (no announcements).  Without it, those
          crossings are consumed silently.
        - Each user is one atomic step, so cancelling between users leaves
          every applied row consistent.  Per-user failures are collected in
          :attr:`ResyncSummary.failures`.
        """
        summary = ResyncSummary()
        names = display_names or {}
        items = counts.items() if isinstance(counts, Mapping) else counts

        for raw_user_id, absolute in items:
            # Cancellation point: nothing of this user has been applied yet.
            await asyncio.sleep(0)
            user_id = str(raw_user_id)
            if isinstance(absolute, bool) or not isinstance(absolute, int) or absolute < 0:
                summary.failures.append((user_id, f"invalid count {absolute!r}"))
                continue
            consume = None if award_on_apply else highest_reached(self.milestones, absolute)
            try:
                async with self._user_locks.hold(user_id):
                    applied = await self._db(
                        count_service.apply_absolute_count,
                        user_id,
                        names.get(user_id),
                        absolute,
                        consume_through=consume,
                    )
            except (PersistenceUnavailable, ValueError) as exc:
                logger.warning("Resync failed for %s: %s", user_id, exc)
                summary.failures.append((user_id, str(exc)))
                continue

            if applied.status == "rejected":
                logger.info(
                    "Resync rejected decrease for %s (%d → %d)",
                    user_id, applied.prior_count, absolute,
                )
                summary.users_rejected += 1
                continue
            if applied.changed:
                summary.users_updated += 1
            else:
                summary.users_unchanged += 1

            if award_on_apply:
                start = min(applied.prior_count, applied.awarded_through)
                crossed = self.evaluate_milestones(start, applied.new_count)
                for award in await self._award_ladder(user_id, crossed):
                    if award.granted:
                        summary.rewards_granted += 1
                    elif award.error:
                        summary.failures.append((user_id, award.error))

        logger.info(
            "Resync complete: %d updated, %d unchanged, %d rejected, %d rewards, %d failures",
            summary.users_updated, summary.users_unchanged, summary.users_rejected,
            summary.rewards_granted, len(summary.failures),
        )
        return summary

    async def award_owed(
        self,
        summary: ResyncSummary | None = None,
        *,
        exclude: Iterable[str] = (),
    ) -> ResyncSummary:
        """Grant milestones that stored counts reached but were never recorded.

        Scans every record and retries grants that failed earlier for
        members who have not posted since.  Users in *exclude* (typically
        the ones a resync just handled) are skipped.  No announcements.
        """
        summary = summary if summary is not None else ResyncSummary()
        skip = set(exclude)
        owed = await self._db(_owed_records, self.milestones)
        for record in owed:
            if record.user_id in skip:
                continue
            crossed = self.evaluate_milestones(record.awarded_through, record.message_count)
            for award in await self._award_ladder(record.user_id, crossed):
                if award.granted:
                    summary.rewards_granted += 1
                elif award.error:
                    summary.failures.append((record.user_id, award.error))
        if owed:
            logger.info("Owed-milestone sweep checked %d users", len(owed))
        return summary


def _owed_records(engine: Engine, milestones: Sequence[Milestone]) -> list[UserCountRecord]:
    """Records whose count passed a milestone above their ``awarded_through``."""
    return [
        record for record in count_service.iter_all(engine)
        if highest_reached(milestones, record.message_count) > record.awarded_through
    ]
