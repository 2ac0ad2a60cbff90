"""
Component 31: Domain Registry

Maps names to actions, commands and methods for hierarchical planning:
- Actions: primitive state transformers with temporal/entity metadata
- Commands: execution-time counterparts of actions (same name space)
- Task methods: refine a named task into subtasks
- Unigoal methods: achieve predicate(subject) = value
- Multigoal methods: achieve a conjunction of goals, selected by tag pattern

Domains are assembled with a DomainBuilder and frozen by build(). No lookup
falls back to another category: an unknown task is never tried as an action
and vice versa.

Executable signatures:
    action(state, *args)            -> new State, or None/False on failure
    command(state, *args)           -> same as action
    task_method(state, *args)       -> list | Decomposition | None/False
    unigoal_method(state, subject, value) -> list | Decomposition | None/False
    multigoal_method(state, multigoal)    -> list | Decomposition | None/False

Author: HTP Development Team
Date: 2026-10-17
"""

from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from component_15_logging_config import get_logger
from component_31_planning_state import State
from component_31_todo_items import Goal, Multigoal, Task
from htp_exceptions import DomainRegistrationError

logger = get_logger(__name__)


# ============================================================================
# Action metadata
# ============================================================================


@dataclass(frozen=True)
class Duration:
    """
    Duration bounds of an action: min_duration <= end - start <= max_duration.

    The nominal duration (used for CPM scheduling) is the lower bound.
    """

    min_duration: float
    max_duration: float

    def __post_init__(self):
        if self.min_duration < 0:
            raise ValueError(f"Duration must not be negative: {self.min_duration}")
        if self.min_duration > self.max_duration:
            raise ValueError(
                f"Duration lower bound {self.min_duration} exceeds upper bound {self.max_duration}"
            )

    @classmethod
    def fixed(cls, duration: float) -> "Duration":
        return cls(float(duration), float(duration))

    @classmethod
    def between(cls, lower: float, upper: float) -> "Duration":
        return cls(float(lower), float(upper))

    @property
    def nominal(self) -> float:
        return self.min_duration

    def as_bounds(self) -> Tuple[float, float]:
        return self.min_duration, self.max_duration


@dataclass(frozen=True)
class EntityRequirement:
    """An available entity of entity_type having all capabilities."""

    entity_type: str
    capabilities: FrozenSet[str] = frozenset()

    def __post_init__(self):
        object.__setattr__(self, "capabilities", frozenset(self.capabilities))

    def is_met(self, state: State) -> bool:
        return bool(state.entities_of_type(self.entity_type, self.capabilities))


@dataclass(frozen=True)
class ActionMetadata:
    duration: Duration = field(default_factory=lambda: Duration.fixed(0.0))
    requires_entities: Tuple[EntityRequirement, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "requires_entities", tuple(self.requires_entities))

    def unmet_requirements(self, state: State) -> List[EntityRequirement]:
        return [r for r in self.requires_entities if not r.is_met(state)]


@dataclass(frozen=True)
class NamedMethod:
    name: str
    executable: Callable[..., Any]


# ============================================================================
# Domain
# ============================================================================


class Domain:
    """
    Immutable registry of actions, commands and methods.

    Read-only during planning; build one with DomainBuilder.
    """

    def __init__(
        self,
        name: str,
        actions: Dict[str, Tuple[ActionMetadata, Callable]],
        commands: Dict[str, Callable],
        task_methods: Dict[str, List[NamedMethod]],
        unigoal_methods: Dict[str, List[NamedMethod]],
        multigoal_methods: Dict[str, List[NamedMethod]],
    ):
        self.name = name
        self._actions: Mapping[str, Tuple[ActionMetadata, Callable]] = MappingProxyType(
            dict(actions)
        )
        self._commands: Mapping[str, Callable] = MappingProxyType(dict(commands))
        self._task_methods = MappingProxyType(
            {k: tuple(v) for k, v in task_methods.items()}
        )
        self._unigoal_methods = MappingProxyType(
            {k: tuple(v) for k, v in unigoal_methods.items()}
        )
        self._multigoal_methods = MappingProxyType(
            {k: tuple(v) for k, v in multigoal_methods.items()}
        )

    # --- membership -----------------------------------------------------

    def has_action(self, name: str) -> bool:
        return name in self._actions

    def has_task(self, name: str) -> bool:
        return name in self._task_methods

    @property
    def action_names(self) -> List[str]:
        return list(self._actions)

    @property
    def task_names(self) -> List[str]:
        return list(self._task_methods)

    # --- resolution -----------------------------------------------------

    def resolve_action(self, name: str) -> Optional[Tuple[ActionMetadata, Callable]]:
        """(metadata, executable) for an action, or None if unknown."""
        return self._actions.get(name)

    def resolve_command(self, name: str) -> Optional[Callable]:
        return self._commands.get(name)

    def resolve_task_methods(self, name: str) -> List[NamedMethod]:
        return list(self._task_methods.get(name, ()))

    def resolve_unigoal_methods(self, predicate: str) -> List[NamedMethod]:
        return list(self._unigoal_methods.get(predicate, ()))

    def resolve_multigoal_methods(
        self, pattern_or_multigoal: Union[str, Multigoal, None]
    ) -> List[NamedMethod]:
        """
        Multigoal methods matching a tag.

        Methods registered under the exact tag come first, then methods whose
        pattern matches the tag with shell-style wildcards, in registration
        order. An untagged multigoal matches only wildcard patterns.
        """
        if isinstance(pattern_or_multigoal, Multigoal):
            tag = pattern_or_multigoal.tag or ""
        else:
            tag = pattern_or_multigoal or ""

        exact = list(self._multigoal_methods.get(tag, ())) if tag else []
        wildcard: List[NamedMethod] = []
        for pattern, methods in self._multigoal_methods.items():
            if pattern == tag:
                continue
            if fnmatchcase(tag, pattern):
                wildcard.extend(methods)
        return exact + wildcard

    def methods_for(self, item: Any) -> List[NamedMethod]:
        """Candidate methods for a Task, Goal or Multigoal item."""
        if isinstance(item, Task):
            return self.resolve_task_methods(item.name)
        if isinstance(item, Goal):
            return self.resolve_unigoal_methods(item.predicate)
        if isinstance(item, Multigoal):
            return self.resolve_multigoal_methods(item)
        return []

    # --- diagnostics ----------------------------------------------------

    def validate(self) -> Tuple[bool, Optional[str]]:
        """
        Check the domain for obvious registration problems.

        Returns:
            (is_valid, error_message)
        """
        for name, (metadata, executable) in self._actions.items():
            if not callable(executable):
                return False, f"Action '{name}' is not callable"
            if not isinstance(metadata.duration, Duration):
                return False, f"Action '{name}' has no valid duration"
        for name in self._commands:
            if name not in self._actions:
                return False, f"Command '{name}' has no matching action"
        return True, None

    def stats(self) -> Dict[str, int]:
        return {
            "actions": len(self._actions),
            "commands": len(self._commands),
            "task_methods": sum(len(m) for m in self._task_methods.values()),
            "unigoal_methods": sum(len(m) for m in self._unigoal_methods.values()),
            "multigoal_methods": sum(len(m) for m in self._multigoal_methods.values()),
        }

    def __repr__(self):
        return f"Domain({self.name!r}, {self.stats()})"


class DomainBuilder:
    """
    Collects registrations and produces a frozen Domain.

    Example:
        builder = DomainBuilder("travel")
        builder.register_action("walk", ActionMetadata(Duration.fixed(5)), walk)
        builder.register_task_method("travel", "m_travel_by_foot", m_travel_by_foot)
        domain = builder.build()
    """

    def __init__(self, name: str = "domain"):
        self.name = name
        self._actions: Dict[str, Tuple[ActionMetadata, Callable]] = {}
        self._commands: Dict[str, Callable] = {}
        self._task_methods: Dict[str, List[NamedMethod]] = {}
        self._unigoal_methods: Dict[str, List[NamedMethod]] = {}
        self._multigoal_methods: Dict[str, List[NamedMethod]] = {}

    def register_action(
        self,
        name: str,
        metadata: Optional[ActionMetadata],
        executable: Callable,
    ) -> "DomainBuilder":
        self._check_callable(name, executable)
        if name in self._task_methods:
            raise DomainRegistrationError(
                "Name already registered as a task", name=name
            )
        if name in self._actions:
            raise DomainRegistrationError("Action registered twice", name=name)
        self._actions[name] = (metadata or ActionMetadata(), executable)
        logger.debug(f"Registered action {name}")
        return self

    def register_command(self, name: str, executable: Callable) -> "DomainBuilder":
        self._check_callable(name, executable)
        if name in self._task_methods:
            raise DomainRegistrationError(
                "Name already registered as a task", name=name
            )
        self._commands[name] = executable
        return self

    def register_task_method(
        self, task_name: str, method_name: str, executable: Callable
    ) -> "DomainBuilder":
        self._check_callable(method_name, executable)
        if task_name in self._actions or task_name in self._commands:
            raise DomainRegistrationError(
                "Name already registered as an action", name=task_name
            )
        self._append_method(self._task_methods, task_name, method_name, executable)
        return self

    def register_unigoal_method(
        self, predicate: str, method_name: str, executable: Callable
    ) -> "DomainBuilder":
        self._check_callable(method_name, executable)
        self._append_method(self._unigoal_methods, predicate, method_name, executable)
        return self

    def register_multigoal_method(
        self, pattern: str, method_name: str, executable: Callable
    ) -> "DomainBuilder":
        self._check_callable(method_name, executable)
        self._append_method(self._multigoal_methods, pattern, method_name, executable)
        return self

    def build(self) -> Domain:
        domain = Domain(
            self.name,
            self._actions,
            self._commands,
            self._task_methods,
            self._unigoal_methods,
            self._multigoal_methods,
        )
        is_valid, error = domain.validate()
        if not is_valid:
            raise DomainRegistrationError(error, context={"domain": self.name})
        logger.info(f"Domain '{self.name}' built", extra=domain.stats())
        return domain

    # --- helpers --------------------------------------------------------

    @staticmethod
    def _check_callable(name: str, executable: Any) -> None:
        if not callable(executable):
            raise DomainRegistrationError("Executable is not callable", name=name)

    @staticmethod
    def _append_method(
        table: Dict[str, List[NamedMethod]],
        key: str,
        method_name: str,
        executable: Callable,
    ) -> None:
        methods = table.setdefault(key, [])
        if any(m.name == method_name for m in methods):
            raise DomainRegistrationError(
                f"Method '{method_name}' registered twice for '{key}'", name=method_name
            )
        methods.append(NamedMethod(method_name, executable))
