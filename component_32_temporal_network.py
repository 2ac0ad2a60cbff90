"""
Component 32: Simple Temporal Network

Time points and interval constraints with a path-consistency solver:
- Time points (point 0 is the origin)
- Constraints lower <= t(to) - t(from) <= upper, tagged with an owner
- All-pairs shortest distances via vectorised Floyd-Warshall (numpy)
- Batched insertion with one relaxation per batch
- Transactions that roll back on inconsistency
- Activities (start/end point pairs) and CPM schedules derived from them
- Read-only interval queries over the relaxed network

Distance matrix convention: D[a, b] is the tightest upper bound on
t(b) - t(a). Hence lower(a, b) = -D[b, a], earliest(p) = -D[p, origin] and
latest(p) = D[origin, p]. A negative diagonal entry means inconsistent.

Author: HTP Development Team
Date: 2026-10-17
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from common.constants import STN_EPSILON, STN_ORIGIN_LABEL, UNBOUNDED
from component_15_logging_config import PerformanceLogger, get_logger
from component_32_critical_path import Activity, Schedule, compute_schedule
from component_32_interval_queries import (
    Interval,
    check_conflicts,
    find_free_slots,
    find_next_available_slot,
    find_overlapping,
)
from htp_exceptions import InconsistentTemporalNetwork

logger = get_logger(__name__)

ORIGIN = 0


@dataclass(frozen=True)
class Constraint:
    """lower <= t(target) - t(source) <= upper"""

    source: int
    target: int
    lower: float
    upper: float
    owner: Optional[Hashable] = None


@dataclass(frozen=True)
class TemporalActivity:
    """An activity's start/end points and declared duration bounds."""

    activity_id: Hashable
    start: int
    end: int
    min_duration: float
    max_duration: float
    kind: str = "action"
    label: Optional[str] = None


class TemporalNetwork:
    """
    Simple Temporal Network owned by one planning session.

    Every read relaxes pending insertions first, so callers never observe a
    stale distance matrix. Once inconsistent, the network stays inconsistent
    until the offending constraints are removed or a transaction rolls back.
    """

    def __init__(self):
        self._labels: List[Optional[str]] = [STN_ORIGIN_LABEL]
        self._constraints: List[Constraint] = []
        self._pending: List[Constraint] = []
        self._dist = np.zeros((1, 1), dtype=float)
        self._consistent = True
        self._batch_depth = 0
        self._activities: Dict[Hashable, TemporalActivity] = {}
        self.stats: Dict[str, int] = {"relaxations": 0, "rebuilds": 0}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @property
    def origin(self) -> int:
        return ORIGIN

    @property
    def size(self) -> int:
        return len(self._labels)

    @property
    def constraints(self) -> List[Constraint]:
        return list(self._constraints)

    def add_time_point(self, label: Optional[str] = None) -> int:
        """Add an unconstrained time point and return its id."""
        point = len(self._labels)
        self._labels.append(label)

        n = point + 1
        grown = np.full((n, n), UNBOUNDED, dtype=float)
        grown[:point, :point] = self._dist
        grown[point, point] = 0.0
        self._dist = grown
        return point

    def label(self, point: int) -> Optional[str]:
        return self._labels[point]

    def add_constraint(
        self,
        source: int,
        target: int,
        lower: float,
        upper: float,
        owner: Optional[Hashable] = None,
    ) -> None:
        """
        Add lower <= t(target) - t(source) <= upper.

        Outside a batch the network is relaxed immediately.

        Raises:
            ValueError: lower > upper, NaN bounds or unknown time points
            InconsistentTemporalNetwork: the network has no solution anymore
        """
        lower, upper = float(lower), float(upper)
        if np.isnan(lower) or np.isnan(upper):
            raise ValueError("Constraint bounds must not be NaN")
        if lower > upper:
            raise ValueError(f"lower bound {lower} exceeds upper bound {upper}")
        for point in (source, target):
            if not 0 <= point < self.size:
                raise ValueError(f"Unknown time point {point}")

        constraint = Constraint(source, target, lower, upper, owner)
        self._constraints.append(constraint)
        self._pending.append(constraint)

        if self._batch_depth == 0:
            self._relax(trigger=constraint)

    def add_constraints(
        self, constraints: Iterable[Tuple[int, int, float, float]], owner: Optional[Hashable] = None
    ) -> None:
        """Add several constraints as one batch (one relaxation)."""
        with self.batch():
            for source, target, lower, upper in constraints:
                self.add_constraint(source, target, lower, upper, owner=owner)

    @contextmanager
    def batch(self) -> Iterator["TemporalNetwork"]:
        """
        Defer relaxation until the outermost batch exits.

        Raises InconsistentTemporalNetwork on exit if the batch made the
        network inconsistent.
        """
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
        if self._batch_depth == 0:
            self._relax()

    @contextmanager
    def transaction(self) -> Iterator["TemporalNetwork"]:
        """
        Restore the pre-transaction network if an exception escapes.

        Time points added inside a rolled-back transaction are removed too.
        """
        snapshot = (
            list(self._labels),
            list(self._constraints),
            list(self._pending),
            self._dist.copy(),
            self._consistent,
            dict(self._activities),
        )
        try:
            with self.batch():
                yield self
        except BaseException:
            (
                self._labels,
                self._constraints,
                self._pending,
                self._dist,
                self._consistent,
                self._activities,
            ) = snapshot
            raise

    def add_activity(
        self,
        activity_id: Hashable,
        duration: Optional[Tuple[float, float]] = None,
        kind: str = "action",
        label: Optional[str] = None,
    ) -> TemporalActivity:
        """
        Create start/end points for an activity.

        The activity starts no earlier than the origin and its duration is
        bounded by `duration` (default [0, inf)). Constraints are owned by
        activity_id.
        """
        if activity_id in self._activities:
            raise ValueError(f"Activity {activity_id!r} already exists")
        lo, hi = duration if duration is not None else (0.0, UNBOUNDED)

        start = self.add_time_point(f"{label or activity_id}.start")
        end = self.add_time_point(f"{label or activity_id}.end")
        activity = TemporalActivity(activity_id, start, end, float(lo), float(hi), kind, label)
        self._activities[activity_id] = activity

        with self.batch():
            self.add_constraint(ORIGIN, start, 0.0, UNBOUNDED, owner=activity_id)
            self.add_constraint(start, end, lo, hi, owner=activity_id)
        return activity

    def activity(self, activity_id: Hashable) -> TemporalActivity:
        return self._activities[activity_id]

    def has_activity(self, activity_id: Hashable) -> bool:
        return activity_id in self._activities

    def remove_constraints(self, owners: Iterable[Hashable]) -> int:
        """
        Retract every constraint owned by one of `owners` and re-relax from
        scratch. Time points stay (they are never removed); activities of the
        owners are forgotten.

        Returns:
            Number of constraints removed
        """
        owner_set = set(owners)
        if not owner_set:
            return 0
        kept = [c for c in self._constraints if c.owner not in owner_set]
        removed = len(self._constraints) - len(kept)
        for owner in owner_set:
            self._activities.pop(owner, None)
        if removed:
            self._constraints = kept
            self._rebuild()
        return removed

    # ------------------------------------------------------------------
    # Consistency
    # ------------------------------------------------------------------

    def _rebuild(self) -> None:
        n = self.size
        self._dist = np.full((n, n), UNBOUNDED, dtype=float)
        np.fill_diagonal(self._dist, 0.0)
        self._consistent = True
        self._pending = list(self._constraints)
        self.stats["rebuilds"] += 1
        if self._batch_depth == 0:
            self._relax()

    def _relax(self, trigger: Optional[Constraint] = None) -> None:
        """Fold pending constraints into the matrix and run Floyd-Warshall."""
        if not self._pending:
            if not self._consistent:
                raise InconsistentTemporalNetwork(
                    "Temporal network is inconsistent",
                    constraint=_as_tuple(trigger),
                )
            return

        pending, self._pending = self._pending, []
        if not self._consistent:
            raise InconsistentTemporalNetwork(
                "Temporal network is inconsistent",
                constraint=_as_tuple(trigger or pending[-1]),
            )

        d = self._dist
        for c in pending:
            d[c.source, c.target] = min(d[c.source, c.target], c.upper)
            d[c.target, c.source] = min(d[c.target, c.source], -c.lower)

        with PerformanceLogger(logger.logger, "STN relaxation", points=self.size):
            for k in range(self.size):
                np.minimum(d, d[:, k : k + 1] + d[k : k + 1, :], out=d)
        self.stats["relaxations"] += 1

        if np.any(np.diag(d) < -STN_EPSILON):
            self._consistent = False
            offending = trigger or pending[-1]
            logger.debug(
                "Temporal network became inconsistent",
                extra={"constraint": _as_tuple(offending), "batch_size": len(pending)},
            )
            raise InconsistentTemporalNetwork(
                "Constraint makes the temporal network inconsistent",
                constraint=_as_tuple(offending),
            )

    def is_consistent(self) -> bool:
        """True if the network has a solution. Idempotent, never mutates bounds."""
        if self._pending and self._batch_depth == 0:
            try:
                self._relax()
            except InconsistentTemporalNetwork:
                return False
        return self._consistent

    def _read(self) -> np.ndarray:
        if self._batch_depth > 0:
            raise RuntimeError("Network cannot be read inside an open batch")
        self._relax()
        return self._dist

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def distance(self, a: int, b: int) -> float:
        """Tightest upper bound on t(b) - t(a)."""
        return float(self._read()[a, b])

    def bounds(self, a: int, b: int) -> Tuple[float, float]:
        """(lower, upper) bounds on t(b) - t(a)."""
        d = self._read()
        return float(-d[b, a]), float(d[a, b])

    def earliest(self, point: int) -> float:
        return float(-self._read()[point, ORIGIN])

    def latest(self, point: int) -> float:
        return float(self._read()[ORIGIN, point])

    def precedes(self, a: Hashable, b: Hashable) -> bool:
        """True if the network forces activity a to end no later than b starts."""
        first, second = self._activities[a], self._activities[b]
        return self.distance(second.start, first.end) <= STN_EPSILON

    def distance_matrix(self) -> np.ndarray:
        return self._read().copy()

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def get_schedule(
        self,
        activity_ids: Optional[Sequence[Hashable]] = None,
        kind: Optional[str] = "action",
    ) -> Schedule:
        """
        CPM schedule over activities, using only precedences the network implies.

        Args:
            activity_ids: Activities to schedule (default: all of `kind`)
            kind: Activity kind filter when activity_ids is None

        Raises:
            InconsistentTemporalNetwork: if the network is inconsistent
        """
        if not self.is_consistent():
            raise InconsistentTemporalNetwork("Cannot schedule an inconsistent network")

        if activity_ids is None:
            activity_ids = [
                a.activity_id
                for a in self._activities.values()
                if kind is None or a.kind == kind
            ]
        ids = list(activity_ids)
        d = self._read()

        edges = []
        for i, a in enumerate(ids):
            for j, b in enumerate(ids):
                if i == j:
                    continue
                first, second = self._activities[a], self._activities[b]
                if d[second.start, first.end] <= STN_EPSILON:
                    # Mutual precedence only happens for zero-length activities
                    # pinned to the same instant; keep insertion order.
                    reverse = d[first.start, second.end] <= STN_EPSILON
                    if reverse and j < i:
                        continue
                    edges.append((a, b))

        activities = [
            Activity(
                activity_id=a,
                duration=self._activities[a].min_duration,
                label=self._activities[a].label,
            )
            for a in ids
        ]
        return compute_schedule(activities, extra_edges=edges)

    # ------------------------------------------------------------------
    # Interval queries (read-only)
    # ------------------------------------------------------------------

    def intervals(self, kind: Optional[str] = "action") -> List[Interval]:
        """Activities placed at their earliest times."""
        d = self._read()
        return [
            Interval(a.activity_id, float(-d[a.start, ORIGIN]), float(-d[a.end, ORIGIN]))
            for a in self._activities.values()
            if kind is None or a.kind == kind
        ]

    def find_overlapping(self, start: float, end: float) -> List[Interval]:
        return find_overlapping(self.intervals(), start, end)

    def find_free_slots(
        self, duration: float, window_start: float, window_end: float
    ) -> List[Tuple[float, float]]:
        return find_free_slots(self.intervals(), duration, window_start, window_end)

    def check_conflicts(self, start: float, end: float) -> Tuple[bool, List[Interval]]:
        return check_conflicts(self.intervals(), start, end)

    def find_next_available_slot(
        self, duration: float, earliest_start: float = 0.0
    ) -> Optional[Tuple[float, float]]:
        return find_next_available_slot(self.intervals(), duration, earliest_start)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": self.size,
            "constraints": len(self._constraints),
            "consistent": self.is_consistent(),
            "activities": len(self._activities),
        }

    def __repr__(self):
        return (
            f"TemporalNetwork(points={self.size}, constraints={len(self._constraints)}, "
            f"consistent={self._consistent})"
        )


def _as_tuple(constraint: Optional[Constraint]) -> Optional[Tuple[Any, ...]]:
    if constraint is None:
        return None
    return (constraint.source, constraint.target, constraint.lower, constraint.upper)
