"""
Component 32: Interval Queries

Read-only queries over scheduled intervals:
- Overlap detection
- Free-slot search inside a window
- Conflict detection for a proposed interval
- Next available slot after a release time
- Allen's 13 interval relations

Intervals are half-open [start, end). Nothing here mutates a temporal
network; TemporalNetwork.intervals() produces the input.

Author: HTP Development Team
Date: 2026-10-17
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Hashable, Iterable, List, Optional, Tuple

from common.constants import STN_EPSILON, UNBOUNDED


@dataclass(frozen=True)
class Interval:
    interval_id: Hashable
    start: float
    end: float

    def __post_init__(self):
        if self.end < self.start:
            raise ValueError(
                f"Interval {self.interval_id} ends before it starts ({self.start} > {self.end})"
            )

    @property
    def duration(self) -> float:
        return self.end - self.start

    def overlaps(self, start: float, end: float) -> bool:
        return self.start < end - STN_EPSILON and start < self.end - STN_EPSILON


def find_overlapping(
    intervals: Iterable[Interval], start: float, end: float
) -> List[Interval]:
    """Intervals sharing time with [start, end). Touching endpoints do not overlap."""
    return sorted(
        (i for i in intervals if i.overlaps(start, end)),
        key=lambda i: (i.start, str(i.interval_id)),
    )


def check_conflicts(
    intervals: Iterable[Interval], start: float, end: float
) -> Tuple[bool, List[Interval]]:
    """
    Check whether [start, end) can be placed without overlap.

    Returns:
        (is_free, conflicting_intervals)
    """
    conflicts = find_overlapping(intervals, start, end)
    return not conflicts, conflicts


def _merged_busy(intervals: Iterable[Interval]) -> List[Tuple[float, float]]:
    busy: List[Tuple[float, float]] = []
    for interval in sorted(intervals, key=lambda i: (i.start, i.end)):
        if interval.duration <= 0:
            continue
        if busy and interval.start <= busy[-1][1] + STN_EPSILON:
            busy[-1] = (busy[-1][0], max(busy[-1][1], interval.end))
        else:
            busy.append((interval.start, interval.end))
    return busy


def find_free_slots(
    intervals: Iterable[Interval],
    duration: float,
    window_start: float,
    window_end: float,
) -> List[Tuple[float, float]]:
    """
    Gaps of at least `duration` inside [window_start, window_end).

    Returns:
        List of (gap_start, gap_end), in time order
    """
    if window_end < window_start:
        raise ValueError("window_end must not precede window_start")

    slots: List[Tuple[float, float]] = []
    cursor = window_start
    for busy_start, busy_end in _merged_busy(intervals):
        if busy_end <= cursor:
            continue
        if busy_start >= window_end:
            break
        gap_end = min(busy_start, window_end)
        if gap_end - cursor >= duration - STN_EPSILON:
            slots.append((cursor, gap_end))
        cursor = max(cursor, busy_end)
        if cursor >= window_end:
            break
    if window_end - cursor >= duration - STN_EPSILON and cursor < window_end:
        slots.append((cursor, window_end))
    return slots


def find_next_available_slot(
    intervals: Iterable[Interval],
    duration: float,
    earliest_start: float = 0.0,
    horizon: float = UNBOUNDED,
) -> Optional[Tuple[float, float]]:
    """
    Earliest [start, start + duration) at or after earliest_start that fits
    before `horizon` without overlapping any interval.
    """
    for gap_start, gap_end in find_free_slots(intervals, duration, earliest_start, horizon):
        return gap_start, gap_start + duration
    return None


# ============================================================================
# Allen's interval algebra
# ============================================================================


class AllenRelation(Enum):
    """The 13 base relations between two intervals A and B."""

    BEFORE = "before"
    AFTER = "after"
    MEETS = "meets"
    MET_BY = "met_by"
    OVERLAPS = "overlaps"
    OVERLAPPED_BY = "overlapped_by"
    STARTS = "starts"
    STARTED_BY = "started_by"
    DURING = "during"
    CONTAINS = "contains"
    FINISHES = "finishes"
    FINISHED_BY = "finished_by"
    EQUALS = "equals"

    @property
    def inverse(self) -> "AllenRelation":
        return _INVERSES[self]


_INVERSES = {
    AllenRelation.BEFORE: AllenRelation.AFTER,
    AllenRelation.AFTER: AllenRelation.BEFORE,
    AllenRelation.MEETS: AllenRelation.MET_BY,
    AllenRelation.MET_BY: AllenRelation.MEETS,
    AllenRelation.OVERLAPS: AllenRelation.OVERLAPPED_BY,
    AllenRelation.OVERLAPPED_BY: AllenRelation.OVERLAPS,
    AllenRelation.STARTS: AllenRelation.STARTED_BY,
    AllenRelation.STARTED_BY: AllenRelation.STARTS,
    AllenRelation.DURING: AllenRelation.CONTAINS,
    AllenRelation.CONTAINS: AllenRelation.DURING,
    AllenRelation.FINISHES: AllenRelation.FINISHED_BY,
    AllenRelation.FINISHED_BY: AllenRelation.FINISHES,
    AllenRelation.EQUALS: AllenRelation.EQUALS,
}


def _cmp(x: float, y: float) -> int:
    if abs(x - y) <= STN_EPSILON:
        return 0
    return -1 if x < y else 1


def allen_relation(a: Any, b: Any) -> AllenRelation:
    """
    Allen relation of interval a with respect to interval b.

    Accepts Interval objects or (start, end) pairs.
    """
    a_start, a_end = _bounds(a)
    b_start, b_end = _bounds(b)

    ss = _cmp(a_start, b_start)
    ee = _cmp(a_end, b_end)
    es = _cmp(a_end, b_start)
    se = _cmp(a_start, b_end)

    if es < 0:
        return AllenRelation.BEFORE
    if se > 0:
        return AllenRelation.AFTER
    if es == 0 and ss < 0:
        return AllenRelation.MEETS
    if se == 0 and ss > 0:
        return AllenRelation.MET_BY
    if ss == 0 and ee == 0:
        return AllenRelation.EQUALS
    if ss == 0:
        return AllenRelation.STARTS if ee < 0 else AllenRelation.STARTED_BY
    if ee == 0:
        return AllenRelation.FINISHES if ss > 0 else AllenRelation.FINISHED_BY
    if ss > 0 and ee < 0:
        return AllenRelation.DURING
    if ss < 0 and ee > 0:
        return AllenRelation.CONTAINS
    if ss < 0:
        return AllenRelation.OVERLAPS
    return AllenRelation.OVERLAPPED_BY


def _bounds(interval: Any) -> Tuple[float, float]:
    if isinstance(interval, Interval):
        return interval.start, interval.end
    start, end = interval
    return float(start), float(end)
