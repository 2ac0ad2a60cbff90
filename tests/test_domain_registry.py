"""
tests/test_domain_registry.py

Unit tests for domain construction, lookup and todo item classification.

Tests cover:
- Action, command and method registration
- Name clashes and invalid registrations
- Multigoal method selection by tag pattern
- Todo item coercion without cross-category fallback
- Durations, entity requirements and world state helpers
"""

import pytest

from component_31_domain_registry import (
    ActionMetadata,
    DomainBuilder,
    Duration,
    EntityRequirement,
)
from component_31_planning_state import State
from component_31_todo_items import (
    ActionCall,
    Decomposition,
    Goal,
    Multigoal,
    Task,
    TemporalConstraint,
    TimeRef,
    Unordered,
    as_decomposition,
    coerce_todo,
)
from htp_exceptions import DomainRegistrationError, UnknownTodoItemError

# ==================== Helper Functions ====================


def noop(state, *args):
    return state


def method(state, *args):
    return []


def sample_domain():
    builder = DomainBuilder("sample")
    builder.register_action("walk", ActionMetadata(Duration.fixed(3)), noop)
    builder.register_command("walk", noop)
    builder.register_task_method("travel", "m_walk", method)
    builder.register_task_method("travel", "m_stay", method)
    builder.register_unigoal_method("at", "m_at", method)
    builder.register_multigoal_method("stack", "m_stack_exact", method)
    builder.register_multigoal_method("stack*", "m_stack_any", method)
    builder.register_multigoal_method("*", "m_generic", method)
    return builder.build()


# ==================== Tests ====================


class TestDomainBuilder:
    """Test registration rules."""

    def test_lookup(self):
        """Test: Registered items resolve by name."""
        domain = sample_domain()
        metadata, executable = domain.resolve_action("walk")
        assert metadata.duration.as_bounds() == (3.0, 3.0)
        assert executable is noop
        assert domain.resolve_command("walk") is noop
        assert [m.name for m in domain.resolve_task_methods("travel")] == ["m_walk", "m_stay"]
        assert [m.name for m in domain.resolve_unigoal_methods("at")] == ["m_at"]

    def test_unknown_names(self):
        """Test: Unknown names resolve to nothing."""
        domain = sample_domain()
        assert domain.resolve_action("fly") is None
        assert domain.resolve_command("fly") is None
        assert domain.resolve_task_methods("fly") == []

    def test_action_task_clash(self):
        """Test: A name cannot be both action and task."""
        builder = DomainBuilder()
        builder.register_action("walk", None, noop)
        with pytest.raises(DomainRegistrationError):
            builder.register_task_method("walk", "m_walk", method)

        builder = DomainBuilder()
        builder.register_task_method("travel", "m_walk", method)
        with pytest.raises(DomainRegistrationError):
            builder.register_action("travel", None, noop)

    def test_duplicate_registrations(self):
        """Test: Actions and method names are unique."""
        builder = DomainBuilder()
        builder.register_action("walk", None, noop)
        with pytest.raises(DomainRegistrationError):
            builder.register_action("walk", None, noop)

        builder.register_task_method("travel", "m_walk", method)
        with pytest.raises(DomainRegistrationError):
            builder.register_task_method("travel", "m_walk", method)

    def test_non_callable_rejected(self):
        """Test: Executables must be callable."""
        with pytest.raises(DomainRegistrationError):
            DomainBuilder().register_action("walk", None, "not callable")

    def test_command_without_action(self):
        """Test: build() rejects commands without an action."""
        builder = DomainBuilder()
        builder.register_command("walk", noop)
        with pytest.raises(DomainRegistrationError):
            builder.build()

    def test_default_metadata(self):
        """Test: Actions without metadata take zero time."""
        builder = DomainBuilder()
        builder.register_action("blink", None, noop)
        metadata, _ = builder.build().resolve_action("blink")
        assert metadata.duration.as_bounds() == (0.0, 0.0)

    def test_stats(self):
        """Test: Domain statistics count registrations."""
        stats = sample_domain().stats()
        assert stats["actions"] == 1
        assert stats["commands"] == 1
        assert stats["task_methods"] == 2
        assert stats["multigoal_methods"] == 3


class TestMultigoalMatching:
    """Test multigoal method selection."""

    def test_exact_tag_first(self):
        """Test: Exact matches precede wildcard matches."""
        domain = sample_domain()
        names = [m.name for m in domain.resolve_multigoal_methods("stack")]
        assert names == ["m_stack_exact", "m_stack_any", "m_generic"]

    def test_wildcard_tag(self):
        """Test: Wildcards match longer tags."""
        domain = sample_domain()
        names = [m.name for m in domain.resolve_multigoal_methods("stack_blocks")]
        assert names == ["m_stack_any", "m_generic"]

    def test_untagged_multigoal(self):
        """Test: Untagged multigoals only match wildcard patterns."""
        domain = sample_domain()
        multigoal = Multigoal((("on", "a", "b"),))
        assert [m.name for m in domain.resolve_multigoal_methods(multigoal)] == ["m_generic"]

    def test_methods_for_item(self):
        """Test: methods_for dispatches on the item type."""
        domain = sample_domain()
        assert [m.name for m in domain.methods_for(Task("travel"))] == ["m_walk", "m_stay"]
        assert [m.name for m in domain.methods_for(Goal("at", "x", "y"))] == ["m_at"]
        assert domain.methods_for(ActionCall("walk")) == []


class TestTodoItems:
    """Test todo item classification and decompositions."""

    def test_tuple_classification(self):
        """Test: Tuples become actions or tasks by registry membership."""
        domain = sample_domain()
        assert coerce_todo(("walk", "alice"), domain) == ActionCall("walk", ("alice",))
        assert coerce_todo(("travel", "alice", "park"), domain) == Task("travel", ("alice", "park"))

    def test_typed_items_pass_through(self):
        """Test: Typed items are returned unchanged."""
        goal = Goal("at", "alice", "park")
        assert coerce_todo(goal, sample_domain()) is goal

    def test_unknown_tuple(self):
        """Test: Unregistered names are rejected."""
        with pytest.raises(UnknownTodoItemError):
            coerce_todo(("fly", "alice"), sample_domain())
        with pytest.raises(UnknownTodoItemError):
            coerce_todo(42, sample_domain())

    def test_multigoal_coerces_triples(self):
        """Test: Multigoal goals are converted to Goal objects."""
        multigoal = Multigoal((("at", "a", "x"), Goal("at", "b", "y")), tag="t")
        assert all(isinstance(g, Goal) for g in multigoal.goals)
        state = State.from_triples([("at", "a", "x")])
        assert multigoal.unsatisfied(state) == [Goal("at", "b", "y")]

    def test_as_decomposition(self):
        """Test: Method results are normalised."""
        assert as_decomposition(None) is None
        assert as_decomposition(False) is None
        assert as_decomposition([("walk",)]).ordered
        assert as_decomposition([]).subtasks == ()
        assert not Unordered([("walk",)]).ordered
        with pytest.raises(TypeError):
            as_decomposition("walk")

    def test_constraint_index_validated(self):
        """Test: Constraints must reference existing subtasks."""
        with pytest.raises(ValueError):
            Decomposition([("walk",)], constraints=[TemporalConstraint.before(0, 1)])

    def test_constraint_bounds_validated(self):
        """Test: lower must not exceed upper."""
        with pytest.raises(ValueError):
            TemporalConstraint(TimeRef(0), TimeRef(1), 5, 1)
        with pytest.raises(ValueError):
            TimeRef(0, "middle")


class TestMetadataAndState:
    """Test durations, entity requirements and state helpers."""

    def test_duration_bounds(self):
        """Test: Duration validation and nominal value."""
        assert Duration.between(2, 5).nominal == 2
        with pytest.raises(ValueError):
            Duration.between(5, 2)
        with pytest.raises(ValueError):
            Duration.fixed(-1)

    def test_entity_requirements(self):
        """Test: Requirements check type, capabilities and availability."""
        state = State()
        state.register_entity("van", "vehicle", {"transport"})
        state.register_entity("bike", "vehicle", {"transport"}, available=False)
        metadata = ActionMetadata(
            requires_entities=[
                EntityRequirement("vehicle", {"transport"}),
                EntityRequirement("vehicle", {"cooling"}),
            ]
        )
        unmet = metadata.unmet_requirements(state)
        assert [r.capabilities for r in unmet] == [frozenset({"cooling"})]

        state.set_entity_available("van", False)
        assert [e.entity_id for e in state.entities_of_type("vehicle", only_available=False)] == [
            "bike",
            "van",
        ]
        assert state.entities_of_type("vehicle") == []

    def test_unknown_entity(self):
        """Test: Availability of unknown entities cannot be set."""
        with pytest.raises(KeyError):
            State().set_entity_available("ghost", True)

    def test_state_copy_is_independent(self):
        """Test: Copies do not share facts or entities."""
        state = State.from_triples([("at", "a", "x")])
        state.register_entity("van", "vehicle")
        copy = state.copy()
        copy.set("at", "a", "y")
        copy.set_entity_available("van", False)
        assert state.get("at", "a") == "x"
        assert state.entities["van"].available

    def test_state_queries(self):
        """Test: Goal matching and triples."""
        state = State().set("at", "a", "x").set("at", "b", "y")
        assert state.satisfies([("at", "a", "x"), Goal("at", "b", "y")])
        assert not state.satisfies([("at", "a", "y")])
        assert sorted(state.subjects("at")) == ["a", "b"]
        assert state.to_triples() == [("at", "a", "x"), ("at", "b", "y")]
        assert "at(a)=x" in state.to_string()
