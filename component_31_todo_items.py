"""
Component 31: Todo Items

Value types that make up todo lists and method decompositions:
- Task: compound task refined by task methods
- ActionCall: primitive action executed against the state
- Goal: unigoal (predicate, subject, value) achieved by unigoal methods
- Multigoal: conjunction of goals achieved by multigoal methods
- Decomposition / Unordered: method results with ordering and constraints
- TimeRef / TemporalConstraint: metric constraints between todo items

Plain tuples ("name", *args) are accepted wherever a todo item is expected
and classified by registry membership (see coerce_todo).

Author: HTP Development Team
Date: 2026-10-17
"""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from common.constants import UNBOUNDED
from htp_exceptions import UnknownTodoItemError


@dataclass(frozen=True)
class Task:
    name: str
    args: Tuple[Any, ...] = ()

    def __str__(self):
        return f"{self.name}({', '.join(map(str, self.args))})"


@dataclass(frozen=True)
class ActionCall:
    name: str
    args: Tuple[Any, ...] = ()

    def __str__(self):
        return f"{self.name}({', '.join(map(str, self.args))})"


@dataclass(frozen=True)
class Goal:
    """Desired value of one fact: state.get(predicate, subject) == value."""

    predicate: str
    subject: Any
    value: Any

    def __str__(self):
        return f"{self.predicate}({self.subject})={self.value}"


@dataclass(frozen=True)
class Multigoal:
    """
    Conjunction of goals. The tag selects multigoal methods by pattern.

    Example: Multigoal((Goal("on", "a", "b"), Goal("on", "b", "table")), tag="stack")
    """

    goals: Tuple[Goal, ...]
    tag: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "goals", tuple(_as_goal(g) for g in self.goals))

    def unsatisfied(self, state) -> List[Goal]:
        return [
            g for g in self.goals if not state.matches(g.predicate, g.subject, g.value)
        ]

    def __str__(self):
        label = self.tag or "multigoal"
        return f"{label}[{', '.join(map(str, self.goals))}]"


TodoItem = Union[Task, ActionCall, Goal, Multigoal]


# ============================================================================
# Temporal constraints between todo items
# ============================================================================


@dataclass(frozen=True)
class TimeRef:
    """
    Reference to the start or end of a todo item by its position.

    index=None refers to the network origin (time 0).
    """

    index: Optional[int]
    point: str = "start"

    def __post_init__(self):
        if self.point not in ("start", "end"):
            raise ValueError(f"TimeRef point must be 'start' or 'end', got {self.point!r}")


@dataclass(frozen=True)
class TemporalConstraint:
    """
    lower <= t(target) - t(source) <= upper, with both sides addressed by TimeRef.
    """

    source: TimeRef
    target: TimeRef
    lower: float = 0.0
    upper: float = UNBOUNDED

    def __post_init__(self):
        if self.lower > self.upper:
            raise ValueError(
                f"lower bound {self.lower} exceeds upper bound {self.upper}"
            )

    @classmethod
    def before(
        cls, first: int, second: int, min_gap: float = 0.0, max_gap: float = UNBOUNDED
    ) -> "TemporalConstraint":
        """Item `first` ends at least min_gap (at most max_gap) before `second` starts."""
        return cls(TimeRef(first, "end"), TimeRef(second, "start"), min_gap, max_gap)

    @classmethod
    def release(cls, index: int, earliest_start: float) -> "TemporalConstraint":
        return cls(TimeRef(None), TimeRef(index, "start"), earliest_start, UNBOUNDED)

    @classmethod
    def due(cls, index: int, latest_end: float) -> "TemporalConstraint":
        return cls(TimeRef(None), TimeRef(index, "end"), 0.0, latest_end)

    def max_index(self) -> int:
        """Largest todo index referenced (-1 if only the origin is used)."""
        indices = [r.index for r in (self.source, self.target) if r.index is not None]
        return max(indices) if indices else -1


@dataclass(frozen=True)
class Decomposition:
    """
    Result of a method: subtasks plus ordering and optional constraints.

    Methods may also return a plain list (ordered, no constraints).
    """

    subtasks: Tuple[Any, ...] = ()
    ordered: bool = True
    constraints: Tuple[TemporalConstraint, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, "subtasks", tuple(self.subtasks))
        object.__setattr__(self, "constraints", tuple(self.constraints))
        for constraint in self.constraints:
            for ref in (constraint.source, constraint.target):
                if ref.index is not None and not 0 <= ref.index < len(self.subtasks):
                    raise ValueError(
                        f"constraint references subtask {ref.index}, "
                        f"decomposition has {len(self.subtasks)}"
                    )


def Unordered(
    subtasks: Iterable[Any], constraints: Sequence[TemporalConstraint] = ()
) -> Decomposition:
    """Shorthand for an unordered decomposition."""
    return Decomposition(tuple(subtasks), ordered=False, constraints=tuple(constraints))


def as_decomposition(result: Any) -> Optional[Decomposition]:
    """
    Normalise a method result.

    None/False means the method is not applicable. A list or tuple is an
    ordered decomposition. An empty decomposition means "already done".
    """
    if result is None or result is False:
        return None
    if isinstance(result, Decomposition):
        return result
    if isinstance(result, (list, tuple)):
        return Decomposition(tuple(result))
    raise TypeError(
        f"Method must return a list, Decomposition, None or False, got {type(result).__name__}"
    )


def coerce_todo(item: Any, domain) -> TodoItem:
    """
    Classify a todo item.

    Typed items pass through. Tuples ("name", *args) become ActionCall or
    Task by exact registry membership; a tuple whose first element is not a
    registered name is rejected, there is no fallback between categories.
    """
    if isinstance(item, (Task, ActionCall, Goal, Multigoal)):
        return item
    if isinstance(item, tuple) and item and isinstance(item[0], str):
        name, args = item[0], tuple(item[1:])
        if domain.has_action(name):
            return ActionCall(name, args)
        if domain.has_task(name):
            return Task(name, args)
        raise UnknownTodoItemError(f"'{name}' is neither a task nor an action", item=item)
    raise UnknownTodoItemError("Unrecognised todo item", item=item)


def _as_goal(goal: Any) -> Goal:
    if isinstance(goal, Goal):
        return goal
    predicate, subject, value = goal
    return Goal(predicate, subject, value)
