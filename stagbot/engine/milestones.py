"""
stagbot.engine.milestones — Milestone List & Crossing Maths
=============================================================

A milestone pairs a message-count threshold with the name of the role it
awards.  The list is fixed at start-up (``config.yaml``) and must be
strictly ascending by threshold.

This module is pure calculation — no database I/O, no Discord I/O.
"""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from stagbot.errors import InvalidConfiguration

__all__ = [
    "DEFAULT_MILESTONES",
    "Milestone",
    "MilestoneProgress",
    "evaluate_milestones",
    "highest_reached",
    "milestone_progress",
    "validate_milestones",
]


@dataclass(frozen=True, slots=True)
class Milestone:
    """A message-count threshold and the role awarded for reaching it."""

    threshold: int
    reward_name: str


DEFAULT_MILESTONES: tuple[Milestone, ...] = (
    Milestone(10, "Newbie Deer 10+ Messages"),
    Milestone(100, "Newborn Deer 100+ Messages"),
    Milestone(500, "New Deer 500+ Messages"),
    Milestone(1000, "Deer Enthuaist 1000+ Messages"),
    Milestone(2500, "Active Deer 2500+ Messages"),
    Milestone(5000, "Deerzilla 5000+ Messages"),
    Milestone(10000, "Dapatron 10K+ Messages"),
    Milestone(25000, "Holy Deer 25K+ Messages"),
    Milestone(50000, "Deer God 50K+ Messages"),
)


def validate_milestones(milestones: Iterable[Milestone]) -> tuple[Milestone, ...]:
    """Return *milestones* as a tuple, or raise :class:`InvalidConfiguration`.

    Rules: thresholds are positive integers, strictly ascending (so no
    duplicates), and every reward name is a non-empty string.
    """
    result = tuple(milestones)
    if not result:
        raise InvalidConfiguration("At least one milestone must be configured.")

    previous: int | None = None
    for m in result:
        if isinstance(m.threshold, bool) or not isinstance(m.threshold, int):
            raise InvalidConfiguration(f"Milestone threshold must be an integer: {m!r}")
        if m.threshold <= 0:
            raise InvalidConfiguration(f"Milestone threshold must be positive: {m!r}")
        if not isinstance(m.reward_name, str) or not m.reward_name.strip():
            raise InvalidConfiguration(f"Milestone reward name is empty: {m!r}")
        if previous is not None:
            if m.threshold == previous:
                raise InvalidConfiguration(f"Duplicate milestone threshold {m.threshold}")
            if m.threshold < previous:
                raise InvalidConfiguration(
                    f"Milestones must be sorted ascending; {m.threshold} follows {previous}"
                )
        previous = m.threshold
    return result


def evaluate_milestones(
    milestones: Sequence[Milestone], old_count: int, new_count: int,
) -> list[Milestone]:
    """Every milestone with ``old_count < threshold <= new_count``, ascending.

    Empty when ``new_count <= old_count``.  Handles multi-crossing jumps
    (e.g. a resync from 0 to 12000).
    """
    if new_count <= old_count:
        return []
    return [m for m in milestones if old_count < m.threshold <= new_count]


def highest_reached(milestones: Sequence[Milestone], count: int) -> int:
    """Threshold of the highest milestone at or below *count* (0 if none)."""
    idx = bisect_right([m.threshold for m in milestones], count)
    return milestones[idx - 1].threshold if idx else 0


@dataclass(frozen=True, slots=True)
class MilestoneProgress:
    """Where a message count sits on the milestone ladder."""

    count: int
    current: Milestone | None
    next: Milestone | None

    @property
    def remaining(self) -> int | None:
        """Messages still needed for the next milestone."""
        if self.next is None:
            return None
        return self.next.threshold - self.count

    @property
    def maxed(self) -> bool:
        return self.next is None and self.current is not None


def milestone_progress(milestones: Sequence[Milestone], count: int) -> MilestoneProgress:
    """Locate *count* between the current and next milestone."""
    idx = bisect_right([m.threshold for m in milestones], count)
    return MilestoneProgress(
        count=count,
        current=milestones[idx - 1] if idx else None,
        next=milestones[idx] if idx < len(milestones) else None,
    )
