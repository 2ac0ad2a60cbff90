"""
Component 31: Blacklist & Backtracking

Failure memory and backtrack point selection:
- BlacklistEntry records (action, args) calls that failed during execution
- Scopes: SESSION (whole attempt), SUBTREE (cleared when the owning subtree
  is discarded), GLOBAL (survives sessions in a GlobalBlacklist)
- find_backtrack_point: nearest ancestor with an untried method

Entries never expire on their own. Only backtracking clears SUBTREE entries
and only the caller clears a GlobalBlacklist.

Author: HTP Development Team
Date: 2026-10-17
"""

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from component_15_logging_config import get_logger

logger = get_logger(__name__)

CallKey = Tuple[str, Tuple[Any, ...]]


def call_key(action_name: str, args: Iterable[Any]) -> CallKey:
    """
    Hashable lookup key for a call.

    Lists, tuples, dicts and sets in the arguments are frozen recursively so
    calls such as ("visit", ["a", "b"]) can be blacklisted.
    """
    return action_name, tuple(_freeze(arg) for arg in args)


def _freeze(value: Any) -> Any:
    if isinstance(value, dict):
        return ("dict", frozenset((_freeze(k), _freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, (set, frozenset)):
        return ("set", frozenset(_freeze(v) for v in value))
    try:
        hash(value)
    except TypeError:
        # Unhashable objects compare by type and repr
        return (type(value).__name__, repr(value))
    return value


class BlacklistScope(Enum):
    SESSION = "session"
    SUBTREE = "subtree"
    GLOBAL = "global"


@dataclass
class BlacklistEntry:
    action_name: str
    args: Tuple[Any, ...]
    scope: BlacklistScope
    failure_count: int = 1
    created_at: float = field(default_factory=time.time)
    owner_node_id: Optional[int] = None

    @property
    def key(self) -> CallKey:
        return call_key(self.action_name, self.args)

    def __str__(self):
        args = ", ".join(map(str, self.args))
        owner = f" owner={self.owner_node_id}" if self.owner_node_id is not None else ""
        return (
            f"{self.action_name}({args}) [{self.scope.value}] "
            f"failures={self.failure_count}{owner}"
        )


class GlobalBlacklist:
    """
    Blacklist shared across planning sessions.

    Passed explicitly to run_lazy()/plan(); there is no module level
    instance. Thread-safe so several sessions can share one store.
    """

    def __init__(self):
        self._entries: Dict[CallKey, BlacklistEntry] = {}
        self._lock = threading.RLock()

    def record(self, action_name: str, args: Tuple[Any, ...]) -> BlacklistEntry:
        key = call_key(action_name, args)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = BlacklistEntry(action_name, tuple(args), BlacklistScope.GLOBAL)
                self._entries[key] = entry
            else:
                entry.failure_count += 1
            return entry

    def get(self, action_name: str, args: Tuple[Any, ...]) -> Optional[BlacklistEntry]:
        with self._lock:
            return self._entries.get(call_key(action_name, args))

    def contains(self, action_name: str, args: Tuple[Any, ...]) -> bool:
        return self.get(action_name, args) is not None

    def entries(self) -> List[BlacklistEntry]:
        with self._lock:
            return list(self._entries.values())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self):
        with self._lock:
            return len(self._entries)


class Blacklist:
    """
    Per-session blacklist, optionally backed by a GlobalBlacklist.

    Owned by one RefinementEngine; not thread-safe by itself.
    """

    def __init__(
        self,
        default_scope: BlacklistScope = BlacklistScope.SESSION,
        global_store: Optional[GlobalBlacklist] = None,
    ):
        self.default_scope = default_scope
        self.global_store = global_store
        self._entries: Dict[CallKey, BlacklistEntry] = {}

    def add(
        self,
        action_name: str,
        args: Iterable[Any],
        scope: Optional[BlacklistScope] = None,
        owner_node_id: Optional[int] = None,
    ) -> BlacklistEntry:
        """
        Record a failed call. Repeated failures bump failure_count.

        GLOBAL entries go to the global store (SESSION if none is attached).
        """
        scope = scope or self.default_scope
        args = tuple(args)

        if scope == BlacklistScope.GLOBAL:
            if self.global_store is not None:
                entry = self.global_store.record(action_name, args)
                logger.warning(
                    f"Blacklisted {action_name}{args} globally",
                    extra={"failures": entry.failure_count},
                )
                return entry
            scope = BlacklistScope.SESSION

        key = call_key(action_name, args)
        entry = self._entries.get(key)
        if entry is None:
            entry = BlacklistEntry(action_name, args, scope, owner_node_id=owner_node_id)
            self._entries[key] = entry
        else:
            entry.failure_count += 1
            # A session-wide entry is never narrowed back to a subtree
            if scope == BlacklistScope.SESSION:
                entry.scope = scope
                entry.owner_node_id = None
        logger.warning(
            f"Blacklisted {action_name}{args}",
            extra={
                "scope": entry.scope.value,
                "owner": entry.owner_node_id,
                "failures": entry.failure_count,
            },
        )
        return entry

    def contains(self, action_name: str, args: Iterable[Any]) -> bool:
        args = tuple(args)
        if call_key(action_name, args) in self._entries:
            return True
        return self.global_store is not None and self.global_store.contains(action_name, args)

    def get(self, action_name: str, args: Iterable[Any]) -> Optional[BlacklistEntry]:
        args = tuple(args)
        entry = self._entries.get(call_key(action_name, args))
        if entry is None and self.global_store is not None:
            entry = self.global_store.get(action_name, args)
        return entry

    def clear_subtree(self, discarded_node_ids: Iterable[int]) -> List[BlacklistEntry]:
        """Drop SUBTREE entries owned by discarded nodes."""
        discarded = set(discarded_node_ids)
        removed = [
            e
            for e in self._entries.values()
            if e.scope == BlacklistScope.SUBTREE and e.owner_node_id in discarded
        ]
        for entry in removed:
            del self._entries[entry.key]
        if removed:
            logger.debug(
                f"Cleared {len(removed)} subtree blacklist entries",
                extra={"entries": [str(e) for e in removed]},
            )
        return removed

    def entries(self, include_global: bool = True) -> List[BlacklistEntry]:
        result = list(self._entries.values())
        if include_global and self.global_store is not None:
            result.extend(self.global_store.entries())
        return result

    def __len__(self):
        return len(self.entries())

    def __contains__(self, key: CallKey) -> bool:
        action_name, args = key
        return self.contains(action_name, args)


def find_backtrack_point(
    tree,
    failed_node_id: int,
    domain,
    max_depth: Optional[int] = None,
) -> Optional[int]:
    """
    Nearest ancestor of the failed node that still has an untried method.

    Ancestors are visited nearest first; at most max_depth levels are
    climbed (None = up to the root). The root and action nodes have no
    alternatives and are skipped.

    Returns:
        Node id of the backtrack point, or None if search is exhausted
    """
    for level, ancestor in enumerate(tree.ancestors(failed_node_id), start=1):
        if max_depth is not None and level > max_depth:
            break
        if not ancestor.kind.is_refinable:
            continue
        methods = domain.methods_for(ancestor.payload)
        if any(m.name not in ancestor.tried_alternatives for m in methods):
            return ancestor.node_id
    return None
