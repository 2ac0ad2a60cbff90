"""
Component 31: Hybrid Temporal Planner

Facade module providing the public planning API.

The planner is split into focused modules:
- component_31_planning_state: World state and entities
- component_31_todo_items: Tasks, actions, goals, multigoals, decompositions
- component_31_domain_registry: Domain construction and lookup
- component_31_solution_tree: Search tree and node status machine
- component_31_blacklist: Failure memory and backtrack point selection
- component_31_refinement_engine: Lazy refinement loop and entry points
- component_32_*: Temporal network, CPM scheduling, interval queries

Typical use:
    builder = DomainBuilder("logistics")
    builder.register_action("load", ActionMetadata(Duration.fixed(2)), load)
    domain = builder.build()

    final = run_lazy(domain, state, [("load", "box")])
    schedule = get_schedule(final.solution_tree)

    # or plan first and execute later
    tree = plan(domain, state, [("load", "box")])
    final = run_lazy_tree(domain, state, tree)

Author: HTP Development Team
"""

# ============================================================================
# Import all public classes from split modules
# ============================================================================

from component_31_blacklist import (
    Blacklist,
    BlacklistEntry,
    BlacklistScope,
    GlobalBlacklist,
    find_backtrack_point,
)
from component_31_domain_registry import (
    ActionMetadata,
    Domain,
    DomainBuilder,
    Duration,
    EntityRequirement,
    NamedMethod,
)
from component_31_planning_state import Entity, State
from component_31_refinement_engine import (
    FinalState,
    RefinementEngine,
    RefinementMode,
    get_schedule,
    plan,
    run_lazy,
    run_lazy_tree,
)
from component_31_solution_tree import Node, NodeKind, NodeStatus, SolutionTree
from component_31_todo_items import (
    ActionCall,
    Decomposition,
    Goal,
    Multigoal,
    Task,
    TemporalConstraint,
    TimeRef,
    Unordered,
)
from component_32_critical_path import Schedule, ScheduledActivity
from component_32_temporal_network import TemporalNetwork
from htp_config import PlannerOptions, load_options

__all__ = [
    # Entry points
    "plan",
    "run_lazy",
    "run_lazy_tree",
    "get_schedule",
    "FinalState",
    "RefinementEngine",
    "RefinementMode",
    "PlannerOptions",
    "load_options",
    # State
    "State",
    "Entity",
    # Todo items
    "Task",
    "ActionCall",
    "Goal",
    "Multigoal",
    "Decomposition",
    "Unordered",
    "TimeRef",
    "TemporalConstraint",
    # Domain
    "Domain",
    "DomainBuilder",
    "ActionMetadata",
    "Duration",
    "EntityRequirement",
    "NamedMethod",
    # Solution tree
    "SolutionTree",
    "Node",
    "NodeKind",
    "NodeStatus",
    # Blacklist
    "Blacklist",
    "BlacklistEntry",
    "BlacklistScope",
    "GlobalBlacklist",
    "find_backtrack_point",
    # Temporal
    "TemporalNetwork",
    "Schedule",
    "ScheduledActivity",
]
