"""
Component 32: Critical Path Scheduling

Critical Path Method (CPM) over a partial-order activity graph:
- Kahn topological sort with cycle detection and reporting
- Forward pass: earliest start/finish, makespan
- Backward pass: latest start/finish, slack
- Critical path extraction (zero-slack chain from a source to the sink)

Unrelated activities stay unordered: the schedule only contains the
precedences passed in, so parallel activities run concurrently.

Author: HTP Development Team
Date: 2026-10-17
"""

from collections import deque
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    Dict,
    Hashable,
    Iterable,
    List,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from common.constants import STN_EPSILON
from component_15_logging_config import get_logger
from htp_exceptions import CycleDetectedError

logger = get_logger(__name__)

Edge = Tuple[Hashable, Hashable]


@dataclass
class Activity:
    """
    Schedulable activity.

    Attributes:
        activity_id: Unique id (solution tree node id for planned actions)
        duration: Nominal duration
        predecessors: Ids that must finish before this activity starts
        label: Display name
    """

    activity_id: Hashable
    duration: float
    predecessors: Tuple[Hashable, ...] = ()
    label: Optional[str] = None

    def __post_init__(self):
        if self.duration < 0:
            raise ValueError(
                f"Activity {self.activity_id} has negative duration {self.duration}"
            )
        self.predecessors = tuple(self.predecessors)


@dataclass
class ScheduledActivity:
    activity_id: Hashable
    duration: float
    earliest_start: float
    earliest_finish: float
    latest_start: float = 0.0
    latest_finish: float = 0.0
    label: Optional[str] = None

    @property
    def slack(self) -> float:
        return self.latest_start - self.earliest_start

    @property
    def is_critical(self) -> bool:
        return abs(self.slack) <= STN_EPSILON

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activity_id": self.activity_id,
            "label": self.label,
            "duration": self.duration,
            "earliest_start": self.earliest_start,
            "earliest_finish": self.earliest_finish,
            "latest_start": self.latest_start,
            "latest_finish": self.latest_finish,
            "slack": self.slack,
            "critical": self.is_critical,
        }


@dataclass
class Schedule:
    """
    Result of a CPM run.

    entries are keyed by activity id and iterate in topological order.
    """

    entries: Dict[Hashable, ScheduledActivity] = field(default_factory=dict)
    edges: List[Edge] = field(default_factory=list)
    makespan: float = 0.0

    def __getitem__(self, activity_id: Hashable) -> ScheduledActivity:
        return self.entries[activity_id]

    def __contains__(self, activity_id: Hashable) -> bool:
        return activity_id in self.entries

    def __iter__(self):
        return iter(self.entries.values())

    def __len__(self):
        return len(self.entries)

    @property
    def order(self) -> List[Hashable]:
        return list(self.entries)

    def critical_activities(self) -> List[Hashable]:
        return [a.activity_id for a in self.entries.values() if a.is_critical]

    def successors(self, activity_id: Hashable) -> List[Hashable]:
        return [b for a, b in self.edges if a == activity_id]

    def critical_path(self) -> List[Hashable]:
        """
        One zero-slack chain from a source to the sink.

        Consecutive activities are linked by an edge and touch in time
        (EF of one equals ES of the next). The chain's total length equals
        the makespan. Empty for an empty schedule.
        """
        if not self.entries:
            return []

        succ: Dict[Hashable, List[Hashable]] = {a: [] for a in self.entries}
        for a, b in self.edges:
            succ[a].append(b)

        start = next(
            (
                a.activity_id
                for a in self.entries.values()
                if a.is_critical and abs(a.earliest_start) <= STN_EPSILON
            ),
            None,
        )
        if start is None:
            return []

        path = [start]
        current = self.entries[start]
        while abs(current.earliest_finish - self.makespan) > STN_EPSILON:
            nxt = next(
                (
                    self.entries[b]
                    for b in succ[current.activity_id]
                    if self.entries[b].is_critical
                    and abs(self.entries[b].earliest_start - current.earliest_finish)
                    <= STN_EPSILON
                ),
                None,
            )
            if nxt is None:
                break
            path.append(nxt.activity_id)
            current = nxt
        return path

    def to_dict(self) -> Dict[str, Any]:
        return {
            "makespan": self.makespan,
            "activities": [a.to_dict() for a in self.entries.values()],
            "edges": [list(e) for e in self.edges],
            "critical_path": self.critical_path(),
        }


# ============================================================================
# Topological ordering
# ============================================================================


def topological_sort(nodes: Sequence[Hashable], edges: Iterable[Edge]) -> List[Hashable]:
    """
    Kahn's algorithm. Ties keep the input order of `nodes`.

    Raises:
        CycleDetectedError: if the edges contain a cycle. The exception lists
            the nodes of one concrete cycle.
    """
    index = {n: i for i, n in enumerate(nodes)}
    successors: Dict[Hashable, List[Hashable]] = {n: [] for n in nodes}
    indegree: Dict[Hashable, int] = {n: 0 for n in nodes}

    for a, b in edges:
        if a not in index or b not in index:
            raise KeyError(f"Edge {a!r} -> {b!r} references an unknown activity")
        successors[a].append(b)
        indegree[b] += 1

    ready = deque(n for n in nodes if indegree[n] == 0)
    order: List[Hashable] = []
    while ready:
        node = ready.popleft()
        order.append(node)
        for succ in sorted(successors[node], key=index.get):
            indegree[succ] -= 1
            if indegree[succ] == 0:
                ready.append(succ)

    if len(order) != len(nodes):
        remaining = {n for n in nodes if indegree[n] > 0}
        cycle = _find_cycle(remaining, successors, index)
        raise CycleDetectedError(
            f"Precedence graph contains a cycle of {len(cycle)} activities",
            cycle_nodes=cycle,
        )
    return order


def _find_cycle(
    remaining: Set[Hashable],
    successors: Dict[Hashable, List[Hashable]],
    index: Dict[Hashable, int],
) -> List[Hashable]:
    """
    Extract one concrete cycle from the nodes Kahn's algorithm left behind.

    Every remaining node has a predecessor inside the remainder, so walking
    predecessors must eventually revisit a node.
    """
    predecessors: Dict[Hashable, List[Hashable]] = {n: [] for n in remaining}
    for a in remaining:
        for b in successors[a]:
            if b in remaining:
                predecessors[b].append(a)

    node = min(remaining, key=index.get)
    seen: Dict[Hashable, int] = {}
    walk: List[Hashable] = []
    while node not in seen:
        seen[node] = len(walk)
        walk.append(node)
        node = min(predecessors[node], key=index.get)
    cycle = walk[seen[node]:]
    cycle.reverse()
    return cycle


def order_by_comparator(
    items: Sequence[Hashable], precedes: Callable[[Hashable, Hashable], bool]
) -> List[Edge]:
    """
    Build precedence edges from a pairwise comparator and validate them.

    Returns:
        Edges (a, b) for every ordered pair with precedes(a, b)

    Raises:
        CycleDetectedError: if the comparator is not a partial order
    """
    edges = [
        (a, b) for a in items for b in items if a != b and precedes(a, b)
    ]
    topological_sort(items, edges)
    return edges


# ============================================================================
# CPM
# ============================================================================


def compute_schedule(
    activities: Sequence[Activity], extra_edges: Iterable[Edge] = ()
) -> Schedule:
    """
    Forward and backward pass over the activity graph.

    Args:
        activities: Activities with durations and predecessors
        extra_edges: Additional (before, after) precedences

    Returns:
        Schedule with ES/EF/LS/LF per activity and the makespan

    Raises:
        CycleDetectedError: if the precedences are cyclic
    """
    by_id: Dict[Hashable, Activity] = {}
    for activity in activities:
        if activity.activity_id in by_id:
            raise ValueError(f"Duplicate activity id {activity.activity_id!r}")
        by_id[activity.activity_id] = activity

    edges: List[Edge] = []
    seen_edges: Set[Edge] = set()
    for activity in activities:
        for pred in activity.predecessors:
            edge = (pred, activity.activity_id)
            if edge not in seen_edges:
                seen_edges.add(edge)
                edges.append(edge)
    for edge in extra_edges:
        edge = tuple(edge)
        if edge not in seen_edges:
            seen_edges.add(edge)
            edges.append(edge)

    order = topological_sort(list(by_id), edges)

    preds: Dict[Hashable, List[Hashable]] = {a: [] for a in by_id}
    succs: Dict[Hashable, List[Hashable]] = {a: [] for a in by_id}
    for a, b in edges:
        preds[b].append(a)
        succs[a].append(b)

    # Forward pass
    entries: Dict[Hashable, ScheduledActivity] = {}
    for activity_id in order:
        activity = by_id[activity_id]
        es = max((entries[p].earliest_finish for p in preds[activity_id]), default=0.0)
        entries[activity_id] = ScheduledActivity(
            activity_id=activity_id,
            duration=activity.duration,
            earliest_start=es,
            earliest_finish=es + activity.duration,
            label=activity.label,
        )
    makespan = max((e.earliest_finish for e in entries.values()), default=0.0)

    # Backward pass
    for activity_id in reversed(order):
        entry = entries[activity_id]
        lf = min((entries[s].latest_start for s in succs[activity_id]), default=makespan)
        entry.latest_finish = lf
        entry.latest_start = lf - entry.duration

    schedule = Schedule(entries=entries, edges=edges, makespan=makespan)
    logger.debug(
        "CPM schedule computed",
        extra={
            "activities": len(entries),
            "edges": len(edges),
            "makespan": makespan,
            "critical": len(schedule.critical_activities()),
        },
    )
    return schedule
