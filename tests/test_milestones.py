"""
tests/test_milestones.py — Unit Tests for the Milestone Ladder
===============================================================

Pure functions only (no I/O, no database).
"""

from __future__ import annotations

import pytest

from stagbot.engine.milestones import (
    DEFAULT_MILESTONES,
    Milestone,
    evaluate_milestones,
    highest_reached,
    milestone_progress,
    validate_milestones,
)
from stagbot.errors import InvalidConfiguration

LADDER = (Milestone(10, "A"), Milestone(100, "B"), Milestone(500, "C"))


class TestEvaluateMilestones:
    def test_single_crossing(self):
        assert evaluate_milestones(LADDER, 9, 10) == [Milestone(10, "A")]

    def test_no_crossing_below_threshold(self):
        assert evaluate_milestones(LADDER, 8, 9) == []

    def test_multi_crossing_in_ascending_order(self):
        assert evaluate_milestones(LADDER, 0, 150) == [Milestone(10, "A"), Milestone(100, "B")]

    def test_lower_bound_is_exclusive(self):
        assert evaluate_milestones(LADDER, 10, 99) == []

    def test_upper_bound_is_inclusive(self):
        assert evaluate_milestones(LADDER, 99, 100) == [Milestone(100, "B")]

    def test_equal_counts_yield_nothing(self):
        assert evaluate_milestones(LADDER, 100, 100) == []

    def test_decrease_yields_nothing(self):
        assert evaluate_milestones(LADDER, 500, 5) == []

    def test_exactly_the_thresholds_in_range(self):
        for old in range(0, 520, 7):
            for new in range(old, 520, 13):
                got = evaluate_milestones(LADDER, old, new)
                expected = [m for m in LADDER if old < m.threshold <= new]
                assert got == expected


class TestHighestReached:
    def test_below_first(self):
        assert highest_reached(LADDER, 9) == 0

    def test_on_threshold(self):
        assert highest_reached(LADDER, 100) == 100

    def test_past_last(self):
        assert highest_reached(LADDER, 10_000) == 500


class TestMilestoneProgress:
    def test_new_member(self):
        p = milestone_progress(LADDER, 0)
        assert p.current is None
        assert p.next == Milestone(10, "A")
        assert p.remaining == 10
        assert not p.maxed

    def test_between_milestones(self):
        p = milestone_progress(LADDER, 120)
        assert p.current == Milestone(100, "B")
        assert p.next == Milestone(500, "C")
        assert p.remaining == 380

    def test_maxed(self):
        p = milestone_progress(LADDER, 500)
        assert p.current == Milestone(500, "C")
        assert p.next is None
        assert p.remaining is None
        assert p.maxed


class TestValidateMilestones:
    def test_default_ladder_is_valid(self):
        assert validate_milestones(DEFAULT_MILESTONES) == DEFAULT_MILESTONES
        assert [m.threshold for m in DEFAULT_MILESTONES] == [
            10, 100, 500, 1000, 2500, 5000, 10000, 25000, 50000,
        ]

    @pytest.mark.parametrize("ladder", [
        [],
        [Milestone(0, "Zero")],
        [Milestone(-5, "Negative")],
        [Milestone(10, "")],
        [Milestone(10, "A"), Milestone(10, "B")],
        [Milestone(100, "B"), Milestone(10, "A")],
        [Milestone(True, "Bool")],
    ])
    def test_rejects_bad_ladders(self, ladder):
        with pytest.raises(InvalidConfiguration):
            validate_milestones(ladder)
