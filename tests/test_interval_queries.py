"""
tests/test_interval_queries.py

Unit tests for interval queries and Allen relations.

Tests cover:
- Overlap detection with half-open intervals
- Conflict checks
- Free slot search and next available slot
- Allen's 13 relations and their inverses
"""

import pytest

from component_32_interval_queries import (
    AllenRelation,
    Interval,
    allen_relation,
    check_conflicts,
    find_free_slots,
    find_next_available_slot,
    find_overlapping,
)

# ==================== Fixtures ====================


@pytest.fixture
def calendar():
    return [
        Interval("meeting", 9, 10),
        Interval("lunch", 12, 13),
        Interval("review", 12.5, 14),
    ]


# ==================== Tests ====================


class TestOverlap:
    """Test overlap detection and conflicts."""

    def test_find_overlapping(self, calendar):
        """Test: Only intervals sharing time are returned."""
        found = find_overlapping(calendar, 9.5, 12.25)
        assert [i.interval_id for i in found] == ["meeting", "lunch"]

    def test_touching_is_not_overlapping(self, calendar):
        """Test: Half-open intervals that touch do not overlap."""
        assert find_overlapping(calendar, 10, 12) == []

    def test_check_conflicts(self, calendar):
        """Test: A conflicting proposal lists the conflicts."""
        is_free, conflicts = check_conflicts(calendar, 13, 15)
        assert not is_free
        assert [i.interval_id for i in conflicts] == ["review"]

        is_free, conflicts = check_conflicts(calendar, 10, 11)
        assert is_free
        assert conflicts == []

    def test_invalid_interval(self):
        """Test: An interval may not end before it starts."""
        with pytest.raises(ValueError):
            Interval("bad", 5, 4)


class TestFreeSlots:
    """Test free-slot search."""

    def test_free_slots_in_window(self, calendar):
        """Test: Gaps between merged busy periods."""
        slots = find_free_slots(calendar, 1, 8, 18)
        assert slots == [(8, 9), (10, 12), (14, 18)]

    def test_short_gaps_are_skipped(self, calendar):
        """Test: Gaps shorter than the duration are ignored."""
        assert find_free_slots(calendar, 3, 8, 18) == [(14, 18)]

    def test_no_busy_intervals(self):
        """Test: An empty calendar is one free slot."""
        assert find_free_slots([], 2, 0, 10) == [(0, 10)]

    def test_invalid_window(self):
        """Test: The window must not be reversed."""
        with pytest.raises(ValueError):
            find_free_slots([], 1, 5, 0)

    def test_next_available_slot(self, calendar):
        """Test: Earliest fitting slot after a release time."""
        assert find_next_available_slot(calendar, 1.5, earliest_start=9) == (10, 11.5)
        assert find_next_available_slot(calendar, 3, earliest_start=9) == (14, 17)

    def test_next_slot_beyond_horizon(self, calendar):
        """Test: No slot if the horizon is too close."""
        assert find_next_available_slot(calendar, 3, earliest_start=9, horizon=13) is None


class TestAllenRelations:
    """Test Allen's interval algebra."""

    @pytest.mark.parametrize(
        "a, b, expected",
        [
            ((0, 1), (2, 3), AllenRelation.BEFORE),
            ((2, 3), (0, 1), AllenRelation.AFTER),
            ((0, 2), (2, 3), AllenRelation.MEETS),
            ((2, 3), (0, 2), AllenRelation.MET_BY),
            ((0, 2), (1, 3), AllenRelation.OVERLAPS),
            ((1, 3), (0, 2), AllenRelation.OVERLAPPED_BY),
            ((0, 1), (0, 3), AllenRelation.STARTS),
            ((0, 3), (0, 1), AllenRelation.STARTED_BY),
            ((1, 2), (0, 3), AllenRelation.DURING),
            ((0, 3), (1, 2), AllenRelation.CONTAINS),
            ((2, 3), (0, 3), AllenRelation.FINISHES),
            ((0, 3), (2, 3), AllenRelation.FINISHED_BY),
            ((0, 3), (0, 3), AllenRelation.EQUALS),
        ],
    )
    def test_relation(self, a, b, expected):
        """Test: Each of the 13 relations is recognised."""
        assert allen_relation(a, b) == expected

    def test_inverse_is_consistent(self):
        """Test: relation(b, a) is the inverse of relation(a, b)."""
        pairs = [((0, 1), (2, 3)), ((0, 2), (1, 3)), ((1, 2), (0, 3)), ((0, 3), (2, 3))]
        for a, b in pairs:
            assert allen_relation(b, a) == allen_relation(a, b).inverse

    def test_interval_objects(self):
        """Test: Interval instances are accepted."""
        assert allen_relation(Interval("a", 0, 2), Interval("b", 2, 4)) == AllenRelation.MEETS
