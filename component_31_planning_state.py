"""
Component 31: Planning State

World state for hierarchical temporal planning:
- Facts keyed by (predicate, subject) -> value
- Entity table with types, capabilities and availability
- Goal matching for unigoals and multigoals

Actions and commands receive a copy of the state and return the successor
state (or a falsy value on failure). The engine never lets an action mutate
the state it owns.

Author: HTP Development Team
Date: 2026-10-17
"""

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

Fact = Tuple[str, Any, Any]


@dataclass
class Entity:
    """
    A resource that actions can require (agent, vehicle, tool, room...).

    Example: Entity("taxi_1", "vehicle", {"transport", "passengers"})
    """

    entity_id: str
    entity_type: str
    capabilities: Set[str] = field(default_factory=set)
    available: bool = True

    def has_capabilities(self, required: Iterable[str]) -> bool:
        return set(required).issubset(self.capabilities)


@dataclass
class State:
    """
    World state as a fact store plus an entity table.

    Facts: (predicate, subject) -> value
    Example: state.set("location", "alice", "home") means
             "the location of alice is home"
    """

    facts: Dict[Tuple[str, Any], Any] = field(default_factory=dict)
    entities: Dict[str, Entity] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Facts
    # ------------------------------------------------------------------

    def get(self, predicate: str, subject: Any, default: Any = None) -> Any:
        return self.facts.get((predicate, subject), default)

    def set(self, predicate: str, subject: Any, value: Any) -> "State":
        """Set a fact. Returns self so actions can chain and return it."""
        self.facts[(predicate, subject)] = value
        return self

    def remove(self, predicate: str, subject: Any) -> "State":
        self.facts.pop((predicate, subject), None)
        return self

    def has(self, predicate: str, subject: Any) -> bool:
        return (predicate, subject) in self.facts

    def matches(self, predicate: str, subject: Any, value: Any) -> bool:
        """True if the fact (predicate, subject) currently has the given value."""
        key = (predicate, subject)
        return key in self.facts and self.facts[key] == value

    def satisfies(self, goals: Iterable[Any]) -> bool:
        """
        Check if all goals hold in this state.

        Goals may be Goal objects or (predicate, subject, value) triples.
        """
        for goal in goals:
            predicate, subject, value = _goal_triple(goal)
            if not self.matches(predicate, subject, value):
                return False
        return True

    def subjects(self, predicate: str) -> List[Any]:
        """All subjects with a value for the given predicate."""
        return [s for (p, s) in self.facts if p == predicate]

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def register_entity(
        self,
        entity_id: str,
        entity_type: str,
        capabilities: Optional[Iterable[str]] = None,
        available: bool = True,
    ) -> Entity:
        entity = Entity(entity_id, entity_type, set(capabilities or ()), available)
        self.entities[entity_id] = entity
        return entity

    def set_entity_available(self, entity_id: str, available: bool) -> "State":
        if entity_id not in self.entities:
            raise KeyError(f"Unknown entity: {entity_id}")
        self.entities[entity_id].available = available
        return self

    def entities_of_type(
        self,
        entity_type: str,
        capabilities: Iterable[str] = (),
        only_available: bool = True,
    ) -> List[Entity]:
        """Entities of a type having all given capabilities, in id order."""
        required = set(capabilities)
        return [
            e
            for _, e in sorted(self.entities.items())
            if e.entity_type == entity_type
            and required.issubset(e.capabilities)
            and (e.available or not only_available)
        ]

    # ------------------------------------------------------------------
    # Conversion
    # ------------------------------------------------------------------

    def copy(self) -> "State":
        """Deep copy, so actions can freely mutate the copy they receive."""
        return State(facts=deepcopy(self.facts), entities=deepcopy(self.entities))

    def to_triples(self) -> List[Fact]:
        """Facts as (predicate, subject, value) triples in stable order."""
        return sorted(
            ((p, s, v) for (p, s), v in self.facts.items()),
            key=lambda t: (str(t[0]), str(t[1])),
        )

    @classmethod
    def from_triples(cls, triples: Iterable[Fact]) -> "State":
        state = cls()
        for predicate, subject, value in triples:
            state.set(predicate, subject, value)
        return state

    def to_string(self) -> str:
        """Human-readable state representation."""
        if not self.facts:
            return "State(empty)"
        facts = ", ".join(f"{p}({s})={v}" for p, s, v in self.to_triples())
        return f"State({facts})"


def _goal_triple(goal: Any) -> Fact:
    if hasattr(goal, "predicate"):
        return goal.predicate, goal.subject, goal.value
    predicate, subject, value = goal
    return predicate, subject, value
