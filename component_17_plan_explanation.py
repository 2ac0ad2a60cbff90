"""
component_17_plan_explanation.py

Search trace and explanation for the refinement engine.

Records every decision of a planning session (decompositions, executions,
failures, blacklisting, backtracking, verification) and renders it for
people and for JSON export.

Functions:
- TraceStep: one engine decision with full traceability
- SearchTrace: ordered record of a session
- format_trace / format_solution_tree: human readable text
- export_trace_to_json / import_trace_from_json: persistence
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class StepType(Enum):
    """Types of engine decisions"""

    DECOMPOSE = "decompose"  # Method applied, children attached
    EXECUTE = "execute"  # Action/command succeeded
    FAIL = "fail"  # Node failed
    BLACKLIST = "blacklist"  # Call added to the blacklist
    BACKTRACK = "backtrack"  # Subtree discarded, ancestor reopened
    VERIFY = "verify"  # Goal verification
    TEMPORAL = "temporal"  # Temporal network decision (constraints, schedule)


@dataclass
class TraceStep:
    """
    One engine decision.

    Attributes:
        sequence: Position in the session (0-based)
        step_type: Kind of decision
        node_id: Solution tree node the decision concerns
        description: Short human readable text
        method: Method name (DECOMPOSE, FAIL)
        details: Additional data (decision specific)
        timestamp: When the decision was taken
    """

    sequence: int
    step_type: StepType
    node_id: Optional[int]
    description: str
    method: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "sequence": self.sequence,
            "step_type": self.step_type.value,
            "node_id": self.node_id,
            "description": self.description,
            "method": self.method,
            "details": {k: _jsonable(v) for k, v in self.details.items()},
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TraceStep":
        """Create TraceStep from dictionary"""
        data_copy = data.copy()
        data_copy["step_type"] = StepType(data_copy["step_type"])
        data_copy["timestamp"] = datetime.fromisoformat(data_copy["timestamp"])
        return cls(**data_copy)


@dataclass
class SearchTrace:
    """Ordered record of one planning session."""

    session: str = "planning"
    steps: List[TraceStep] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)

    def record(
        self,
        step_type: StepType,
        node_id: Optional[int],
        description: str,
        method: Optional[str] = None,
        **details: Any,
    ) -> TraceStep:
        step = TraceStep(
            sequence=len(self.steps),
            step_type=step_type,
            node_id=node_id,
            description=description,
            method=method,
            details=details,
        )
        self.steps.append(step)
        return step

    def of_type(self, step_type: StepType) -> List[TraceStep]:
        return [s for s in self.steps if s.step_type == step_type]

    def for_node(self, node_id: int) -> List[TraceStep]:
        return [s for s in self.steps if s.node_id == node_id]

    def __len__(self):
        return len(self.steps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session,
            "created_at": self.created_at.isoformat(),
            "steps": [s.to_dict() for s in self.steps],
        }


def format_trace_step(step: TraceStep) -> str:
    """Format a single step as one line of text."""
    icon = _get_step_icon(step.step_type)
    node = f"#{step.node_id}" if step.node_id is not None else "-"
    method = f" via {step.method}" if step.method else ""
    return f"{step.sequence:4d} {icon} {node} {step.description}{method}"


def format_trace(trace: SearchTrace, last: Optional[int] = None) -> str:
    """
    Format a trace as human-readable text.

    Args:
        trace: The SearchTrace to format
        last: Only show the last N steps

    Returns:
        Formatted string
    """
    lines = ["=" * 60, f"Search trace: {trace.session}", "=" * 60]
    steps = trace.steps[-last:] if last else trace.steps
    if not steps:
        lines.append("No steps recorded.")
        return "\n".join(lines)
    lines.extend(format_trace_step(s) for s in steps)
    counts = {t.value: len(trace.of_type(t)) for t in StepType if trace.of_type(t)}
    lines.append("")
    lines.append(
        f"Total: {len(trace)} steps ("
        + ", ".join(f"{k}={v}" for k, v in counts.items())
        + ")"
    )
    return "\n".join(lines)


def decomposition_trail(tree, node_id: int) -> List[str]:
    """
    Path from the root to a node, one line per level, with the method
    chosen (or tried) at each level.
    """
    path = list(reversed(tree.ancestors(node_id))) + [tree[node_id]]
    lines = []
    for depth, node in enumerate(path):
        method = node.method_used or (
            node.tried_alternatives[-1] if node.tried_alternatives else None
        )
        suffix = f" [{method}]" if method else ""
        tried = (
            f" tried={node.tried_alternatives}" if len(node.tried_alternatives) > 1 else ""
        )
        lines.append(
            f"{'  ' * depth}{node.describe()} ({node.status.value}){suffix}{tried}"
        )
    return lines


def format_solution_tree(tree, show_discarded: bool = False) -> str:
    """
    Render the solution tree as indented text.

    Args:
        tree: SolutionTree
        show_discarded: Also render abandoned refinements

    Returns:
        Formatted string
    """
    lines: List[str] = []
    stack = [(tree.root_id, 0)]
    while stack:
        node_id, depth = stack.pop()
        node = tree[node_id]
        marker = {"open": "[ ]", "closed": "[x]", "failed": "[!]"}[node.status.value]
        extra = f" <{node.method_used}>" if node.method_used else ""
        if node.discarded:
            extra += " (discarded)"
        lines.append(f"{'  ' * depth}{marker} #{node.node_id} {node.describe()}{extra}")

        children = list(node.children_ids)
        if show_discarded:
            children = list(node.abandoned_children) + children
        for child_id in reversed(children):
            stack.append((child_id, depth + 1))
    return "\n".join(lines)


def export_trace_to_json(trace: SearchTrace, filepath: str) -> None:
    """Export trace to JSON file"""
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(trace.to_dict(), f, indent=2, ensure_ascii=False)


def import_trace_from_json(filepath: str) -> SearchTrace:
    """Import trace from JSON file"""
    with open(filepath, "r", encoding="utf-8") as f:
        data = json.load(f)

    trace = SearchTrace(
        session=data["session"],
        created_at=datetime.fromisoformat(data["created_at"]),
    )
    for step_data in data["steps"]:
        trace.steps.append(TraceStep.from_dict(step_data))
    return trace


def _get_step_icon(step_type: StepType) -> str:
    """Get icon for step type"""
    icons = {
        StepType.DECOMPOSE: "[DECOMPOSE]",
        StepType.EXECUTE: "[EXECUTE]  ",
        StepType.FAIL: "[FAIL]     ",
        StepType.BLACKLIST: "[BLACKLIST]",
        StepType.BACKTRACK: "[BACKTRACK]",
        StepType.VERIFY: "[VERIFY]   ",
        StepType.TEMPORAL: "[TEMPORAL] ",
    }
    return icons.get(step_type, "*")


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)
