"""
tests/test_plan_explanation.py

Unit tests for search traces and their rendering.

Tests cover:
- Recording and filtering trace steps
- Text formatting of traces and solution trees
- Decomposition trails
- JSON export and import
"""

from component_17_plan_explanation import (
    SearchTrace,
    StepType,
    decomposition_trail,
    export_trace_to_json,
    format_solution_tree,
    format_trace,
    import_trace_from_json,
)
from component_31_solution_tree import SolutionTree
from component_31_todo_items import ActionCall, Task

# ==================== Helper Functions ====================


def sample_trace():
    trace = SearchTrace(session="plan:test")
    trace.record(StepType.DECOMPOSE, 1, "deliver -> [load, move]", method="m_truck")
    trace.record(StepType.EXECUTE, 2, "load(box)")
    trace.record(StepType.FAIL, 3, "move failed", error="ActionExecutionFailure")
    trace.record(StepType.BACKTRACK, 1, "reopen deliver", tried=["m_truck"])
    return trace


def sample_tree():
    tree = SolutionTree()
    (deliver,) = tree.expand(tree.root_id, [Task("deliver", ("box",))])
    load, move = tree.expand(deliver.node_id, [ActionCall("load", ("box",)), ActionCall("move")])
    deliver.tried_alternatives = ["m_truck"]
    deliver.method_used = "m_truck"
    tree.mark_closed(load.node_id)
    return tree, deliver, load, move


# ==================== Tests ====================


class TestSearchTrace:
    """Test trace recording."""

    def test_sequence_numbers(self):
        """Test: Steps are numbered in recording order."""
        trace = sample_trace()
        assert [s.sequence for s in trace.steps] == [0, 1, 2, 3]
        assert len(trace) == 4

    def test_filters(self):
        """Test: Steps can be filtered by type and node."""
        trace = sample_trace()
        assert [s.node_id for s in trace.of_type(StepType.EXECUTE)] == [2]
        assert [s.step_type for s in trace.for_node(1)] == [
            StepType.DECOMPOSE,
            StepType.BACKTRACK,
        ]
        assert trace.steps[2].details == {"error": "ActionExecutionFailure"}

    def test_format_trace(self):
        """Test: Text rendering lists steps and totals."""
        text = format_trace(sample_trace())
        assert "Search trace: plan:test" in text
        assert "via m_truck" in text
        assert "[BACKTRACK]" in text
        assert "Total: 4 steps" in text

    def test_format_last_steps(self):
        """Test: Only the last N steps are shown."""
        text = format_trace(sample_trace(), last=1)
        assert "reopen deliver" in text
        assert "load(box)" not in text

    def test_format_empty_trace(self):
        """Test: An empty trace says so."""
        assert "No steps recorded." in format_trace(SearchTrace())


class TestTreeRendering:
    """Test solution tree rendering."""

    def test_decomposition_trail(self):
        """Test: One line per level from the root to the node."""
        tree, deliver, load, move = sample_tree()
        trail = decomposition_trail(tree, move.node_id)
        assert trail == [
            "root (open)",
            "  task:deliver(box) (open) [m_truck]",
            "    action:move() (open)",
        ]

    def test_format_solution_tree(self):
        """Test: Status markers and methods are rendered."""
        tree, deliver, load, move = sample_tree()
        lines = format_solution_tree(tree).splitlines()
        assert lines[0] == "[ ] #0 root"
        assert lines[1] == "  [ ] #1 task:deliver(box) <m_truck>"
        assert lines[2] == "    [x] #2 action:load(box)"

    def test_show_discarded(self):
        """Test: Abandoned children are only shown on request."""
        tree, deliver, load, move = sample_tree()
        tree.discard_subtree(deliver.node_id)
        assert "load(box)" not in format_solution_tree(tree)
        text = format_solution_tree(tree, show_discarded=True)
        assert "action:load(box) (discarded)" in text


class TestJsonExport:
    """Test JSON persistence."""

    def test_export_import(self, tmp_path):
        """Test: Exported traces can be read back."""
        path = tmp_path / "trace.json"
        trace = sample_trace()
        export_trace_to_json(trace, str(path))
        loaded = import_trace_from_json(str(path))

        assert loaded.session == "plan:test"
        assert [s.step_type for s in loaded.steps] == [s.step_type for s in trace.steps]
        assert loaded.steps[3].details == {"tried": ["m_truck"]}
        assert loaded.steps[0].method == "m_truck"

    def test_non_json_details_are_stringified(self, tmp_path):
        """Test: Arbitrary detail values are exported as text."""
        trace = SearchTrace()
        trace.record(StepType.TEMPORAL, None, "constraint", constraint=(1, 2, 0.0, float("inf")), item=Task("x"))
        data = trace.to_dict()
        assert data["steps"][0]["details"]["item"] == "x()"
        assert data["steps"][0]["details"]["constraint"][:2] == [1, 2]
