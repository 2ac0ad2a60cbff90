"""
Component 31: Solution Tree

Search tree of a hierarchical refinement session:
- Node kinds: root, task, action, goal, multigoal and their verify nodes
- Node status machine: OPEN -> CLOSED | FAILED
- Ordered and unordered child groups
- Discarded subtrees stay addressable so backtracking can revisit them

Nodes are never pruned. When backtracking abandons a refinement, the
children move to the parent's abandoned_children and are flagged discarded.

Author: HTP Development Team
Date: 2026-10-17
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Hashable, Iterator, List, Optional

from component_31_todo_items import ActionCall, Goal, Multigoal, Task


class NodeKind(Enum):
    ROOT = "root"
    TASK = "task"
    ACTION = "action"
    GOAL = "goal"
    MULTIGOAL = "multigoal"
    VERIFY_GOAL = "verify_goal"
    VERIFY_MULTIGOAL = "verify_multigoal"

    @property
    def is_verify(self) -> bool:
        return self in (NodeKind.VERIFY_GOAL, NodeKind.VERIFY_MULTIGOAL)

    @property
    def is_refinable(self) -> bool:
        """Kinds whose refinement is chosen among alternative methods."""
        return self in (NodeKind.TASK, NodeKind.GOAL, NodeKind.MULTIGOAL)


class NodeStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"
    FAILED = "failed"


def kind_of(item: Any) -> NodeKind:
    """Node kind for a typed todo item."""
    if isinstance(item, ActionCall):
        return NodeKind.ACTION
    if isinstance(item, Task):
        return NodeKind.TASK
    if isinstance(item, Goal):
        return NodeKind.GOAL
    if isinstance(item, Multigoal):
        return NodeKind.MULTIGOAL
    raise TypeError(f"No node kind for {type(item).__name__}")


@dataclass
class Node:
    """
    One item in the solution tree.

    temporal_context is the id of the node's activity in the temporal
    network (the node id itself once the activity exists).
    """

    node_id: int
    kind: NodeKind
    payload: Any
    parent_id: Optional[int] = None
    status: NodeStatus = NodeStatus.OPEN
    children_ids: List[int] = field(default_factory=list)
    ordered_children: bool = True
    expanded: bool = False
    discarded: bool = False
    tried_alternatives: List[str] = field(default_factory=list)
    method_used: Optional[str] = None
    failure_reason: Optional[str] = None
    temporal_context: Optional[Hashable] = None
    abandoned_children: List[int] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status == NodeStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == NodeStatus.CLOSED

    @property
    def is_failed(self) -> bool:
        return self.status == NodeStatus.FAILED

    def describe(self) -> str:
        if self.kind == NodeKind.ROOT:
            return "root"
        return f"{self.kind.value}:{self.payload}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.node_id,
            "kind": self.kind.value,
            "payload": str(self.payload),
            "status": self.status.value,
            "parent": self.parent_id,
            "children": list(self.children_ids),
            "ordered": self.ordered_children,
            "discarded": self.discarded,
            "tried_alternatives": list(self.tried_alternatives),
            "method": self.method_used,
            "failure_reason": self.failure_reason,
        }


class SolutionTree:
    """
    Solution tree rooted at a synthetic ROOT node whose children are the
    caller's todo items.
    """

    def __init__(self):
        self.nodes: Dict[int, Node] = {}
        self._next_id = 0
        self.network = None
        self.trace = None
        self.final_state = None
        root = self._new_node(NodeKind.ROOT, None, None)
        self.root_id = root.node_id

    def _new_node(self, kind: NodeKind, payload: Any, parent_id: Optional[int]) -> Node:
        node = Node(node_id=self._next_id, kind=kind, payload=payload, parent_id=parent_id)
        self.nodes[node.node_id] = node
        self._next_id += 1
        return node

    def __getitem__(self, node_id: int) -> Node:
        return self.nodes[node_id]

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def root(self) -> Node:
        return self.nodes[self.root_id]

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def expand(
        self,
        node_id: int,
        children: List[Any],
        ordered: bool = True,
        kinds: Optional[List[NodeKind]] = None,
    ) -> List[Node]:
        """
        Attach children to a node. Children are typed todo items; `kinds`
        overrides the derived kind (used for verify nodes).
        """
        parent = self.nodes[node_id]
        created = []
        for i, item in enumerate(children):
            kind = kinds[i] if kinds else kind_of(item)
            child = self._new_node(kind, item, node_id)
            parent.children_ids.append(child.node_id)
            created.append(child)
        parent.ordered_children = ordered
        parent.expanded = True
        return created

    def append_child(self, node_id: int, kind: NodeKind, payload: Any) -> Node:
        parent = self.nodes[node_id]
        child = self._new_node(kind, payload, node_id)
        parent.children_ids.append(child.node_id)
        return child

    def mark_closed(self, node_id: int) -> None:
        node = self.nodes[node_id]
        node.status = NodeStatus.CLOSED
        node.failure_reason = None

    def mark_failed(self, node_id: int, reason: Optional[str] = None) -> None:
        node = self.nodes[node_id]
        node.status = NodeStatus.FAILED
        node.failure_reason = reason

    def discard_subtree(self, node_id: int, keep_closed: bool = False) -> List[int]:
        """
        Abandon the current refinement of a node.

        All descendants are flagged discarded. Open descendants become FAILED;
        closed descendants become FAILED too unless keep_closed (their effects
        are committed, e.g. commands that really ran). The node's children are
        moved to abandoned_children and the node is reopened for another
        method.

        Returns:
            Ids of the discarded descendants
        """
        node = self.nodes[node_id]
        discarded = self.descendants(node_id)
        for desc_id in discarded:
            desc = self.nodes[desc_id]
            desc.discarded = True
            if desc.is_open or not keep_closed:
                if not desc.is_failed:
                    desc.status = NodeStatus.FAILED
                    desc.failure_reason = desc.failure_reason or "discarded by backtracking"
        node.abandoned_children.extend(node.children_ids)
        node.children_ids = []
        node.expanded = False
        node.method_used = None
        node.status = NodeStatus.OPEN
        node.failure_reason = None
        return discarded

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def children(self, node_id: int) -> List[Node]:
        return [self.nodes[c] for c in self.nodes[node_id].children_ids]

    def parent(self, node_id: int) -> Optional[Node]:
        parent_id = self.nodes[node_id].parent_id
        return None if parent_id is None else self.nodes[parent_id]

    def ancestors(self, node_id: int) -> List[Node]:
        """Nearest first, ending with the root."""
        result = []
        current = self.parent(node_id)
        while current is not None:
            result.append(current)
            current = self.parent(current.node_id)
        return result

    def descendants(self, node_id: int) -> List[int]:
        """Current (non-abandoned) descendants in DFS pre-order."""
        result: List[int] = []
        stack = list(reversed(self.nodes[node_id].children_ids))
        while stack:
            current = stack.pop()
            result.append(current)
            stack.extend(reversed(self.nodes[current].children_ids))
        return result

    def iter_dfs(self) -> Iterator[Node]:
        yield self.root
        for node_id in self.descendants(self.root_id):
            yield self.nodes[node_id]

    def depth(self, node_id: int) -> int:
        return len(self.ancestors(node_id))

    def primitive_actions(self) -> List[Node]:
        """Closed, non-discarded action nodes in DFS order."""
        return [
            n
            for n in self.iter_dfs()
            if n.kind == NodeKind.ACTION and n.is_closed and not n.discarded
        ]

    def is_complete(self) -> bool:
        return self.root.is_closed

    def stats(self) -> Dict[str, Any]:
        by_status = {s.value: 0 for s in NodeStatus}
        by_kind = {k.value: 0 for k in NodeKind}
        discarded = 0
        for node in self.nodes.values():
            by_status[node.status.value] += 1
            by_kind[node.kind.value] += 1
            discarded += node.discarded
        live = list(self.iter_dfs())
        return {
            "total_nodes": len(self.nodes),
            "live_nodes": len(live),
            "discarded_nodes": discarded,
            "max_depth": max((self.depth(n.node_id) for n in live), default=0),
            "by_status": by_status,
            "by_kind": by_kind,
            "primitive_actions": len(self.primitive_actions()),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root": self.root_id,
            "nodes": [n.to_dict() for n in self.nodes.values()],
        }
