"""
tests/test_temporal_network.py

Unit tests for the Simple Temporal Network.

Tests cover:
- Time points and constraint insertion
- Path consistency (Floyd-Warshall) and negative cycle detection
- Idempotence and order independence of relaxation
- Batches and transactions
- Activities, constraint retraction and schedules
- Read-only interval queries
"""

import itertools
import math

import numpy as np
import pytest

from component_32_temporal_network import ORIGIN, TemporalNetwork
from htp_exceptions import InconsistentTemporalNetwork, LocalPlanningFailure, TemporalException

# ==================== Fixtures ====================


@pytest.fixture
def network():
    return TemporalNetwork()


@pytest.fixture
def chain():
    """origin -> a -> b -> c with [1, 3] between consecutive points."""
    stn = TemporalNetwork()
    a, b, c = (stn.add_time_point(label) for label in "abc")
    stn.add_constraint(ORIGIN, a, 0, 10)
    stn.add_constraint(a, b, 1, 3)
    stn.add_constraint(b, c, 1, 3)
    return stn, (a, b, c)


# ==================== Tests ====================


class TestTimePoints:
    """Test time point creation."""

    def test_origin_exists(self, network):
        """Test: A new network holds only the origin."""
        assert network.size == 1
        assert network.origin == ORIGIN
        assert network.is_consistent()

    def test_time_points_are_sequential(self, network):
        """Test: Time point ids are handed out in order."""
        assert network.add_time_point() == 1
        assert network.add_time_point("x") == 2
        assert network.label(2) == "x"
        assert network.size == 3

    def test_unconstrained_point_is_unbounded(self, network):
        """Test: Unconstrained points have infinite distance."""
        p = network.add_time_point()
        lower, upper = network.bounds(ORIGIN, p)
        assert math.isinf(lower) and lower < 0
        assert math.isinf(upper) and upper > 0


class TestConstraints:
    """Test constraint insertion and relaxation."""

    def test_bounds_are_tightened_transitively(self, chain):
        """Test: a->c is derived from a->b and b->c."""
        stn, (a, b, c) = chain
        assert stn.bounds(a, c) == (2.0, 6.0)
        assert stn.bounds(c, a) == (-6.0, -2.0)

    def test_earliest_and_latest(self, chain):
        """Test: Earliest/latest times relative to the origin."""
        stn, (a, b, c) = chain
        assert stn.earliest(c) == 2.0
        assert stn.latest(c) == 16.0

    def test_lower_above_upper_rejected(self, network):
        """Test: lower > upper is a ValueError, not an inconsistency."""
        p = network.add_time_point()
        with pytest.raises(ValueError):
            network.add_constraint(ORIGIN, p, 5, 1)

    def test_unknown_point_rejected(self, network):
        """Test: Constraints on unknown points are rejected."""
        with pytest.raises(ValueError):
            network.add_constraint(ORIGIN, 7, 0, 1)

    def test_negative_cycle_detected(self, network):
        """Test: Contradictory constraints raise InconsistentTemporalNetwork."""
        a = network.add_time_point()
        b = network.add_time_point()
        network.add_constraint(a, b, 5, 10)
        with pytest.raises(InconsistentTemporalNetwork) as exc_info:
            network.add_constraint(b, a, 0, 3)

        assert exc_info.value.context["constraint"] == (b, a, 0.0, 3.0)
        assert not network.is_consistent()

    def test_inconsistency_is_a_local_failure(self):
        """Test: The exception belongs to both the temporal and planning families."""
        assert issubclass(InconsistentTemporalNetwork, TemporalException)
        assert issubclass(InconsistentTemporalNetwork, LocalPlanningFailure)

    def test_relaxation_is_idempotent(self, chain):
        """Test: Relaxing a relaxed network changes nothing."""
        stn, _ = chain
        before = stn.distance_matrix()
        assert stn.is_consistent()
        assert stn.is_consistent()
        np.testing.assert_array_equal(before, stn.distance_matrix())

    def test_order_independence(self):
        """Test: Every insertion order yields the same bounds."""
        constraints = [(0, 1, 0, 10), (1, 2, 2, 4), (2, 3, 1, 5), (0, 3, 0, 8), (1, 3, 3, 7)]
        matrices = []
        for order in itertools.permutations(constraints):
            stn = TemporalNetwork()
            for _ in range(3):
                stn.add_time_point()
            for source, target, lower, upper in order:
                stn.add_constraint(source, target, lower, upper)
            matrices.append(stn.distance_matrix())

        for matrix in matrices[1:]:
            np.testing.assert_array_equal(matrices[0], matrix)

    def test_order_independence_of_inconsistency(self):
        """Test: The verdict does not depend on insertion order."""
        constraints = [(1, 2, 5, 10), (2, 3, 5, 10), (1, 3, 0, 8)]
        for order in itertools.permutations(constraints):
            stn = TemporalNetwork()
            for _ in range(3):
                stn.add_time_point()
            with pytest.raises(InconsistentTemporalNetwork):
                for constraint in order:
                    stn.add_constraint(*constraint)


class TestBatchesAndTransactions:
    """Test deferred relaxation and rollback."""

    def test_batch_relaxes_once(self, network):
        """Test: A batch performs a single relaxation."""
        a = network.add_time_point()
        b = network.add_time_point()
        before = network.stats["relaxations"]
        with network.batch():
            network.add_constraint(ORIGIN, a, 1, 2)
            network.add_constraint(a, b, 1, 2)
        assert network.stats["relaxations"] == before + 1
        assert network.bounds(ORIGIN, b) == (2.0, 4.0)

    def test_batch_reports_inconsistency_on_exit(self, network):
        """Test: A contradictory batch raises when it closes."""
        a = network.add_time_point()
        with pytest.raises(InconsistentTemporalNetwork):
            with network.batch():
                network.add_constraint(ORIGIN, a, 5, 6)
                network.add_constraint(a, ORIGIN, 0, 1)

    def test_add_constraints_is_one_batch(self, network):
        """Test: add_constraints inserts several constraints atomically."""
        a = network.add_time_point()
        b = network.add_time_point()
        network.add_constraints([(ORIGIN, a, 0, 5), (a, b, 1, 1)], owner="x")
        assert network.bounds(ORIGIN, b) == (1.0, 6.0)
        assert all(c.owner == "x" for c in network.constraints)

    def test_transaction_rolls_back(self, network):
        """Test: A failed transaction leaves the network as it was."""
        a = network.add_time_point()
        network.add_constraint(ORIGIN, a, 2, 4)
        before = network.distance_matrix()

        with pytest.raises(InconsistentTemporalNetwork):
            with network.transaction():
                b = network.add_time_point()
                network.add_constraint(a, b, 1, 1)
                network.add_constraint(b, ORIGIN, 0, 1)

        assert network.is_consistent()
        assert network.size == 2
        np.testing.assert_array_equal(before, network.distance_matrix())

    def test_transaction_commits(self, network):
        """Test: A consistent transaction keeps its constraints."""
        with network.transaction():
            a = network.add_time_point()
            network.add_constraint(ORIGIN, a, 3, 3)
        assert network.earliest(a) == 3.0


class TestActivities:
    """Test activities, retraction and schedules."""

    def test_activity_duration(self, network):
        """Test: An activity's end follows its start by its duration."""
        activity = network.add_activity("load", (2, 2))
        assert network.bounds(activity.start, activity.end) == (2.0, 2.0)
        assert network.earliest(activity.start) == 0.0

    def test_duplicate_activity_rejected(self, network):
        """Test: Activity ids are unique."""
        network.add_activity("a", (1, 1))
        with pytest.raises(ValueError):
            network.add_activity("a", (1, 1))

    def test_remove_constraints_by_owner(self, network):
        """Test: Retracting an owner's constraints re-relaxes from scratch."""
        a = network.add_activity("a", (2, 2))
        b = network.add_activity("b", (3, 3))
        network.add_constraint(a.end, b.start, 0, math.inf, owner="order")
        assert network.earliest(b.start) == 2.0

        removed = network.remove_constraints(["order"])
        assert removed == 1
        assert network.earliest(b.start) == 0.0
        assert network.stats["rebuilds"] == 1

    def test_remove_fixes_inconsistency(self, network):
        """Test: Retracting the offending constraints restores consistency."""
        a = network.add_activity("a", (5, 5))
        with pytest.raises(InconsistentTemporalNetwork):
            network.add_constraint(a.start, a.end, 0, 1, owner="bad")
        assert not network.is_consistent()

        network.remove_constraints(["bad"])
        assert network.is_consistent()

    def test_precedes(self, network):
        """Test: Precedence is derived from the relaxed network."""
        a = network.add_activity("a", (1, 1))
        b = network.add_activity("b", (1, 1))
        c = network.add_activity("c", (1, 1))
        network.add_constraint(a.end, b.start, 0, math.inf)
        network.add_constraint(b.end, c.start, 0, math.inf)
        assert network.precedes("a", "c")
        assert not network.precedes("c", "a")

    def test_schedule_keeps_parallelism(self, network):
        """Test: Unrelated activities are not serialised."""
        a = network.add_activity("a", (2, 2))
        b = network.add_activity("b", (5, 5))
        c = network.add_activity("c", (1, 1))
        network.add_constraint(a.end, c.start, 0, math.inf)
        network.add_constraint(b.end, c.start, 0, math.inf)

        schedule = network.get_schedule()
        assert schedule.makespan == 6.0
        assert schedule["a"].slack == 3.0
        assert schedule["b"].slack == 0.0
        assert schedule.critical_path() == ["b", "c"]

    def test_schedule_of_inconsistent_network(self, network):
        """Test: Scheduling an inconsistent network fails."""
        a = network.add_activity("a", (5, 5))
        with pytest.raises(InconsistentTemporalNetwork):
            network.add_constraint(a.start, a.end, 0, 1)
        with pytest.raises(InconsistentTemporalNetwork):
            network.get_schedule()


class TestIntervalQueries:
    """Test read-only interval queries on the network."""

    @pytest.fixture
    def busy(self):
        stn = TemporalNetwork()
        a = stn.add_activity("a", (2, 2))
        b = stn.add_activity("b", (3, 3))
        stn.add_constraint(ORIGIN, b.start, 5, math.inf)
        return stn

    def test_intervals_at_earliest_times(self, busy):
        """Test: Activities are placed at their earliest times."""
        intervals = {i.interval_id: (i.start, i.end) for i in busy.intervals()}
        assert intervals == {"a": (0.0, 2.0), "b": (5.0, 8.0)}

    def test_overlap_and_conflicts(self, busy):
        """Test: Overlap detection and conflict checks."""
        assert [i.interval_id for i in busy.find_overlapping(1, 6)] == ["a", "b"]
        is_free, conflicts = busy.check_conflicts(2, 5)
        assert is_free and conflicts == []

    def test_free_slots(self, busy):
        """Test: Free-slot search inside a window."""
        assert busy.find_free_slots(2, 0, 10) == [(2.0, 5.0), (8.0, 10)]
        assert busy.find_next_available_slot(4) == (8.0, 12.0)

    def test_queries_do_not_mutate(self, busy):
        """Test: Queries leave the network untouched."""
        before = busy.distance_matrix()
        constraints = len(busy.constraints)
        busy.find_overlapping(0, 10)
        busy.find_free_slots(1, 0, 10)
        busy.check_conflicts(0, 1)
        assert len(busy.constraints) == constraints
        np.testing.assert_array_equal(before, busy.distance_matrix())
