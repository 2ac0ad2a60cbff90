"""
Component 31: Lazy Refinement Engine

Interleaved hierarchical planning and execution:
- One cooperative control loop selects an open node per iteration
- Action nodes take priority over verify nodes over task/goal/multigoal nodes
- Actions run as soon as they are selected (commands in lazy mode,
  action executables in plan mode)
- Tasks and goals are refined by the first applicable registered method
- Every node owns an activity in the temporal network; decompositions add
  containment, ordering and method constraints in one atomic batch
- Failures blacklist the call and backtrack to the nearest ancestor with an
  untried method, with an explicit loop (no recursion)

Plan mode rolls back the effects of discarded subtrees. Lazy mode keeps the
effects of commands that already ran (they happened in the world) and only
abandons the open part of the discarded subtree.

Author: HTP Development Team
Date: 2026-10-17
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from common.constants import COMPOUND_SPAN_BOUNDS, UNBOUNDED, VERIFY_SPAN_BOUNDS
from component_15_logging_config import (
    PerformanceLogger,
    get_logger,
    log_component_end,
    log_component_start,
)
from component_17_plan_explanation import SearchTrace, StepType, decomposition_trail
from component_31_blacklist import Blacklist, GlobalBlacklist, find_backtrack_point
from component_31_domain_registry import Domain, NamedMethod
from component_31_planning_state import State
from component_31_solution_tree import Node, NodeKind, NodeStatus, SolutionTree
from component_31_todo_items import (
    ActionCall,
    Decomposition,
    TemporalConstraint,
    TimeRef,
    as_decomposition,
    coerce_todo,
)
from component_32_critical_path import Schedule
from component_32_temporal_network import ORIGIN, TemporalNetwork
from htp_config import PlannerOptions
from htp_exceptions import (
    ActionExecutionFailure,
    ActionPreconditionUnmet,
    GoalVerificationFailure,
    HTPException,
    InconsistentTemporalNetwork,
    LocalPlanningFailure,
    NoApplicableMethod,
    NoViableBacktrackPoint,
    PlanError,
    SearchBudgetExceeded,
    UnknownTodoItemError,
)

logger = get_logger(__name__)


class RefinementMode(Enum):
    PLAN = "plan"  # simulate actions, no commands
    LAZY = "lazy"  # run commands as actions are selected


# Selection priority per node kind (lower runs first)
_SELECTION_PRIORITY = {
    NodeKind.ACTION: 0,
    NodeKind.VERIFY_GOAL: 1,
    NodeKind.VERIFY_MULTIGOAL: 1,
    NodeKind.TASK: 2,
    NodeKind.GOAL: 2,
    NodeKind.MULTIGOAL: 2,
}

if set(_SELECTION_PRIORITY) != set(NodeKind) - {NodeKind.ROOT}:
    raise RuntimeError("Selection priority must cover every non-root node kind")


@dataclass
class FinalState:
    """
    Result of a successful run_lazy() or run_lazy_tree() session.

    Attributes:
        state: World state after all commands ran
        solution_tree: The refined tree (root CLOSED)
        executed_actions: Every command that ran, in order, including those
            whose subtree was later abandoned
        trace: Search trace of the session
        stats: Engine counters
    """

    state: State
    solution_tree: SolutionTree
    executed_actions: List[ActionCall] = field(default_factory=list)
    trace: Optional[SearchTrace] = None
    stats: Dict[str, int] = field(default_factory=dict)


class RefinementEngine:
    """
    One planning session.

    Owns the solution tree, the temporal network and the session blacklist.
    The domain is only read.
    """

    def __init__(
        self,
        domain: Domain,
        initial_state: State,
        todo_list: Sequence[Any],
        options: Optional[PlannerOptions] = None,
        constraints: Sequence[TemporalConstraint] = (),
        global_blacklist: Optional[GlobalBlacklist] = None,
        mode: RefinementMode = RefinementMode.PLAN,
        solution_tree: Optional[SolutionTree] = None,
    ):
        self.domain = domain
        self.options = options or PlannerOptions()
        self.mode = mode
        self.state = initial_state.copy()
        self.user_constraints = tuple(constraints)
        self.trace = SearchTrace(session=f"{mode.value}:{domain.name}")

        # A planned tree is replayed on a private copy, its network included
        self.replaying = solution_tree is not None
        if self.replaying:
            if solution_tree.network is None:
                raise PlanError("Solution tree has no temporal network")
            self.tree = copy.deepcopy(solution_tree)
            self.network = self.tree.network
            self.todo_items = [c.payload for c in self.tree.children(self.tree.root_id)]
        else:
            self.tree = SolutionTree()
            self.network = TemporalNetwork()
            self.todo_items = [coerce_todo(item, domain) for item in todo_list]
        self.tree.network = self.network
        self.tree.trace = self.trace
        self.tree.final_state = None

        self.blacklist = Blacklist(self.options.blacklist_scope_default, global_blacklist)
        self.executed_actions: List[ActionCall] = []

        # Leaf closures in chronological order with the state before each.
        # Plan mode undoes them on backtracking.
        self._journal: List[Tuple[int, State]] = []

        self.stats: Dict[str, int] = {
            "iterations": 0,
            "expansions": 0,
            "actions_executed": 0,
            "failures": 0,
            "backtracks": 0,
            "blacklisted": 0,
        }

        self._handlers: Dict[NodeKind, Callable[[Node], None]] = {
            NodeKind.ACTION: self._process_action,
            NodeKind.TASK: self._process_task,
            NodeKind.GOAL: self._process_goal,
            NodeKind.MULTIGOAL: self._process_multigoal,
            NodeKind.VERIFY_GOAL: self._process_verify_goal,
            NodeKind.VERIFY_MULTIGOAL: self._process_verify_multigoal,
        }

    # ========================================================================
    # Session
    # ========================================================================

    def run(self) -> SolutionTree:
        """
        Refine until the root closes.

        Raises:
            InconsistentTemporalNetwork: the caller's constraints (or deadline)
                are contradictory; raised before any action runs
            NoViableBacktrackPoint: search exhausted
        """
        log_component_start(
            logger,
            f"{self.mode.value} session",
            domain=self.domain.name,
            todo_items=len(self.todo_items),
        )
        if self.replaying:
            self._reopen_planned_tree()
        else:
            self._initialise()

        with PerformanceLogger(logger.logger, f"{self.mode.value} session"):
            while True:
                node = self._select()
                if node is None:
                    break

                self.stats["iterations"] += 1
                if self.stats["iterations"] > self.options.max_iterations:
                    raise SearchBudgetExceeded(
                        f"Search stopped after {self.options.max_iterations} iterations",
                        trace=decomposition_trail(self.tree, node.node_id),
                        blacklist=[str(e) for e in self.blacklist.entries()],
                        context={"node_id": node.node_id},
                    )

                try:
                    self._handlers[node.kind](node)
                except LocalPlanningFailure as failure:
                    self._handle_failure(node, failure)

        if not self.tree.is_complete():
            raise PlanError(
                "Refinement stalled with the root still open",
                context={"tree": self.tree.stats()},
            )

        log_component_end(
            logger, f"{self.mode.value} session", **self.stats
        )
        return self.tree

    def _initialise(self) -> None:
        """Root activity, deadline, todo items and caller constraints."""
        root = self.tree.root
        with self.network.transaction():
            self.network.add_activity(root.node_id, COMPOUND_SPAN_BOUNDS, kind="root", label="root")
            root.temporal_context = root.node_id
            if self.options.deadline is not None:
                self.network.add_constraint(
                    ORIGIN,
                    self.network.activity(root.node_id).end,
                    0.0,
                    self.options.deadline,
                    owner=root.node_id,
                )

        try:
            self._attach_children(
                root, self.todo_items, ordered=True, constraints=self.user_constraints
            )
        except InconsistentTemporalNetwork as e:
            self.trace.record(
                StepType.TEMPORAL,
                root.node_id,
                "caller constraints are inconsistent",
                constraint=e.context.get("constraint"),
            )
            logger.error(
                "Caller constraints make the temporal network inconsistent",
                extra={"constraints": len(self.user_constraints), "deadline": self.options.deadline},
            )
            raise

        self.trace.record(
            StepType.TEMPORAL,
            root.node_id,
            f"{len(self.todo_items)} todo items, {len(self.user_constraints)} constraints",
            deadline=self.options.deadline,
        )
        if not self.todo_items:
            self._close(root.node_id)

    def _reopen_planned_tree(self) -> None:
        """
        Reopen every closed leaf of a planned tree so its actions run again
        as commands, in the order the loop selects them. Expanded compound
        nodes keep their method; goals that already held are checked again.
        """
        root = self.tree.root
        if not root.is_closed:
            raise PlanError(
                "Only a complete solution tree can be executed",
                context={"tree": self.tree.stats()},
            )

        leaves = [
            n
            for n in self.tree.iter_dfs()
            if n.kind != NodeKind.ROOT and n.is_closed and not n.children_ids
        ]
        for leaf in leaves:
            self._reopen(leaf.node_id)

        actions = sum(1 for n in leaves if n.kind == NodeKind.ACTION)
        logger.info(
            "Executing planned solution tree",
            extra={"actions": actions, "nodes": len(self.tree)},
        )

    # ========================================================================
    # Selection
    # ========================================================================

    def _is_enabled(self, parent: Node, node: Node) -> bool:
        siblings = [self.tree[c] for c in parent.children_ids]
        if node.kind.is_verify:
            return all(s.is_closed for s in siblings if not s.kind.is_verify)
        if not parent.ordered_children:
            return True
        for sibling in siblings:
            if sibling.node_id == node.node_id:
                return True
            if not sibling.kind.is_verify and not sibling.is_closed:
                return False
        return True

    def frontier(self) -> List[Node]:
        """Open, unexpanded nodes whose ordering predecessors are closed, in selection order."""
        candidates = []
        for dfs_index, node in enumerate(self.tree.iter_dfs()):
            if node.kind == NodeKind.ROOT or not node.is_open or node.expanded:
                continue
            if not self._is_enabled(self.tree[node.parent_id], node):
                continue
            candidates.append((_SELECTION_PRIORITY[node.kind], dfs_index, node))
        candidates.sort(key=lambda c: (c[0], c[1]))
        return [c[2] for c in candidates]

    def _select(self) -> Optional[Node]:
        frontier = self.frontier()
        return frontier[0] if frontier else None

    # ========================================================================
    # Actions
    # ========================================================================

    def _process_action(self, node: Node) -> None:
        call: ActionCall = node.payload

        if self.blacklist.contains(call.name, call.args):
            raise ActionExecutionFailure(
                f"{call} is blacklisted",
                action_name=call.name,
                args=call.args,
                node_id=node.node_id,
            )

        resolved = self.domain.resolve_action(call.name)
        if resolved is None:
            raise NoApplicableMethod(f"Unknown action '{call.name}'", node_id=node.node_id)
        metadata, executable = resolved

        unmet = metadata.unmet_requirements(self.state)
        if unmet:
            raise ActionPreconditionUnmet(
                f"{call} requires unavailable entities",
                node_id=node.node_id,
                context={
                    "requirements": [
                        f"{r.entity_type}{sorted(r.capabilities)}" for r in unmet
                    ]
                },
            )

        if self.mode == RefinementMode.LAZY:
            executable = self.domain.resolve_command(call.name) or executable

        try:
            result = executable(self.state.copy(), *call.args)
        except Exception as e:
            self._blacklist_call(node, call, f"raised {type(e).__name__}")
            raise ActionExecutionFailure(
                f"{call} raised {type(e).__name__}",
                action_name=call.name,
                args=call.args,
                node_id=node.node_id,
                original_exception=e,
            )

        if result is None or result is False:
            self._blacklist_call(node, call, "reported failure")
            raise ActionExecutionFailure(
                f"{call} failed", action_name=call.name, args=call.args, node_id=node.node_id
            )
        if not isinstance(result, State):
            self._blacklist_call(node, call, f"returned {type(result).__name__}")
            raise ActionExecutionFailure(
                f"{call} returned {type(result).__name__} instead of a State",
                action_name=call.name,
                args=call.args,
                node_id=node.node_id,
            )

        previous = self.state
        self.state = result
        self.stats["actions_executed"] += 1
        if self.mode == RefinementMode.LAZY:
            self.executed_actions.append(call)

        self.trace.record(StepType.EXECUTE, node.node_id, f"{call}")
        logger.debug(f"Executed {call}", extra={"node_id": node.node_id})
        self._close(node.node_id, state_before=previous)

    def _blacklist_call(self, node: Node, call: ActionCall, reason: str) -> None:
        entry = self.blacklist.add(call.name, call.args, owner_node_id=node.parent_id)
        self.stats["blacklisted"] += 1
        self.trace.record(
            StepType.BLACKLIST,
            node.node_id,
            f"{call} {reason}",
            scope=entry.scope.value,
            failures=entry.failure_count,
        )

    # ========================================================================
    # Refinement
    # ========================================================================

    def _process_task(self, node: Node) -> None:
        task = node.payload
        methods = self.domain.resolve_task_methods(task.name)
        if not methods:
            raise NoApplicableMethod(f"No method for task {task}", node_id=node.node_id)
        self._refine(node, methods, lambda m, state: m.executable(state, *task.args))

    def _process_goal(self, node: Node) -> None:
        goal = node.payload
        if self.state.matches(goal.predicate, goal.subject, goal.value):
            self.trace.record(StepType.VERIFY, node.node_id, f"{goal} already holds")
            self._close(node.node_id)
            return
        methods = self.domain.resolve_unigoal_methods(goal.predicate)
        if not methods:
            raise NoApplicableMethod(f"No unigoal method for {goal.predicate}", node_id=node.node_id)
        self._refine(node, methods, lambda m, state: m.executable(state, goal.subject, goal.value))

    def _process_multigoal(self, node: Node) -> None:
        multigoal = node.payload
        if self.state.satisfies(multigoal.goals):
            self.trace.record(StepType.VERIFY, node.node_id, f"{multigoal} already holds")
            self._close(node.node_id)
            return
        methods = self.domain.resolve_multigoal_methods(multigoal)
        if not methods:
            raise NoApplicableMethod(
                f"No multigoal method matches {multigoal.tag or 'untagged multigoal'}",
                node_id=node.node_id,
            )
        self._refine(node, methods, lambda m, state: m.executable(state, multigoal))

    def _refine(
        self,
        node: Node,
        methods: List[NamedMethod],
        invoke: Callable[[NamedMethod, State], Any],
    ) -> None:
        """
        Try untried methods in registration order; the first valid
        decomposition is expanded. A decomposition is invalid when the method
        declines, raises, returns unknown items, contains a blacklisted call
        or makes the temporal network inconsistent.
        """
        last_reason = None
        for method in methods:
            if method.name in node.tried_alternatives:
                continue
            node.tried_alternatives.append(method.name)

            try:
                decomposition = as_decomposition(invoke(method, self.state.copy()))
            except Exception as e:
                last_reason = f"{method.name} raised {type(e).__name__}: {e}"
                logger.warning(
                    f"Method {method.name} raised",
                    extra={"node_id": node.node_id, "error": f"{type(e).__name__}: {e}"},
                )
                self.trace.record(StepType.FAIL, node.node_id, last_reason, method=method.name)
                continue

            if decomposition is None:
                last_reason = f"{method.name} not applicable"
                logger.debug(last_reason, extra={"node_id": node.node_id})
                continue

            try:
                items = [coerce_todo(i, self.domain) for i in decomposition.subtasks]
            except UnknownTodoItemError as e:
                last_reason = f"{method.name}: {e.message}"
                logger.warning(
                    f"Method {method.name} returned an unknown item",
                    extra={"node_id": node.node_id, "item": e.context.get("item")},
                )
                self.trace.record(StepType.FAIL, node.node_id, last_reason, method=method.name)
                continue

            blocked = next(
                (
                    i
                    for i in items
                    if isinstance(i, ActionCall) and self.blacklist.contains(i.name, i.args)
                ),
                None,
            )
            if blocked is not None:
                last_reason = f"{method.name} uses blacklisted {blocked}"
                self.trace.record(StepType.BLACKLIST, node.node_id, last_reason, method=method.name)
                continue

            try:
                self._expand(node, method.name, items, decomposition)
            except InconsistentTemporalNetwork as e:
                last_reason = f"{method.name} violates temporal constraints"
                self.trace.record(
                    StepType.TEMPORAL,
                    node.node_id,
                    last_reason,
                    method=method.name,
                    constraint=e.context.get("constraint"),
                )
                logger.debug(last_reason, extra={"node_id": node.node_id})
                continue
            return

        raise NoApplicableMethod(
            f"All methods failed for {node.payload}",
            node_id=node.node_id,
            context={"tried": list(node.tried_alternatives), "last_reason": last_reason},
        )

    def _expand(
        self,
        node: Node,
        method_name: str,
        items: List[Any],
        decomposition: Decomposition,
    ) -> None:
        verify_kind = None
        if self.options.verify_goals:
            if node.kind == NodeKind.GOAL:
                verify_kind = NodeKind.VERIFY_GOAL
            elif node.kind == NodeKind.MULTIGOAL:
                verify_kind = NodeKind.VERIFY_MULTIGOAL

        children = self._attach_children(
            node,
            items,
            ordered=decomposition.ordered,
            constraints=decomposition.constraints,
            verify_kind=verify_kind,
        )
        node.method_used = method_name
        self.stats["expansions"] += 1
        self.trace.record(
            StepType.DECOMPOSE,
            node.node_id,
            f"{node.payload} -> [{', '.join(str(c.payload) for c in children)}]",
            method=method_name,
            ordered=decomposition.ordered,
        )
        logger.debug(
            f"Expanded {node.describe()} via {method_name}",
            extra={"node_id": node.node_id, "children": len(children)},
        )
        if not children:
            self._close(node.node_id)

    def _attach_children(
        self,
        parent: Node,
        items: List[Any],
        ordered: bool,
        constraints: Sequence[TemporalConstraint] = (),
        verify_kind: Optional[NodeKind] = None,
    ) -> List[Node]:
        """
        Create child nodes with their activities and constraints in one
        transaction. On inconsistency both the network and the tree are
        restored and InconsistentTemporalNetwork propagates.
        """
        children = self.tree.expand(parent.node_id, items, ordered=ordered)
        work_children = list(children)
        if verify_kind is not None:
            children.append(self.tree.append_child(parent.node_id, verify_kind, parent.payload))

        try:
            with self.network.transaction():
                parent_activity = self.network.activity(parent.node_id)
                for child in children:
                    activity = self.network.add_activity(
                        child.node_id,
                        self._duration_bounds(child),
                        kind="action" if child.kind == NodeKind.ACTION else "compound",
                        label=str(child.payload),
                    )
                    child.temporal_context = child.node_id
                    self.network.add_constraint(
                        parent_activity.start, activity.start, 0.0, UNBOUNDED, owner=child.node_id
                    )
                    self.network.add_constraint(
                        activity.end, parent_activity.end, 0.0, UNBOUNDED, owner=child.node_id
                    )

                if ordered:
                    for prev, nxt in zip(work_children, work_children[1:]):
                        self.network.add_constraint(
                            self.network.activity(prev.node_id).end,
                            self.network.activity(nxt.node_id).start,
                            0.0,
                            UNBOUNDED,
                            owner=nxt.node_id,
                        )

                if verify_kind is not None:
                    verify = children[-1]
                    for sibling in work_children:
                        self.network.add_constraint(
                            self.network.activity(sibling.node_id).end,
                            self.network.activity(verify.node_id).start,
                            0.0,
                            UNBOUNDED,
                            owner=verify.node_id,
                        )

                for constraint in constraints:
                    self._add_item_constraint(work_children, constraint)
        except InconsistentTemporalNetwork as e:
            new_ids = [c.node_id for c in children]
            parent.children_ids = [c for c in parent.children_ids if c not in new_ids]
            parent.abandoned_children.extend(new_ids)
            parent.expanded = False
            for child in children:
                self.tree.mark_failed(child.node_id, "inconsistent temporal constraints")
                child.discarded = True
            if e.node_id is None:
                e.node_id = parent.node_id
                e.context["node_id"] = parent.node_id
            raise
        return children

    def _duration_bounds(self, node: Node) -> Tuple[float, float]:
        if node.kind == NodeKind.ACTION:
            resolved = self.domain.resolve_action(node.payload.name)
            if resolved is not None:
                return resolved[0].duration.as_bounds()
            return COMPOUND_SPAN_BOUNDS
        if node.kind.is_verify:
            return VERIFY_SPAN_BOUNDS
        return COMPOUND_SPAN_BOUNDS

    def _add_item_constraint(self, children: List[Node], constraint: TemporalConstraint) -> None:
        if not children and constraint.max_index() >= 0:
            raise ValueError("Constraint references items of an empty decomposition")
        source = self._time_point(children, constraint.source)
        target = self._time_point(children, constraint.target)
        owner = children[max(constraint.max_index(), 0)].node_id if children else None
        self.network.add_constraint(source, target, constraint.lower, constraint.upper, owner=owner)

    def _time_point(self, children: List[Node], ref: TimeRef) -> int:
        if ref.index is None:
            return ORIGIN
        if not 0 <= ref.index < len(children):
            raise ValueError(f"Constraint references item {ref.index} of {len(children)}")
        activity = self.network.activity(children[ref.index].node_id)
        return activity.start if ref.point == "start" else activity.end

    # ========================================================================
    # Verification
    # ========================================================================

    def _process_verify_goal(self, node: Node) -> None:
        goal = node.payload
        if not self.state.matches(goal.predicate, goal.subject, goal.value):
            raise GoalVerificationFailure(
                f"Goal {goal} does not hold after its method",
                node_id=node.node_id,
                context={"actual": self.state.get(goal.predicate, goal.subject)},
            )
        self.trace.record(StepType.VERIFY, node.node_id, f"{goal} verified")
        self._close(node.node_id)

    def _process_verify_multigoal(self, node: Node) -> None:
        multigoal = node.payload
        missing = multigoal.unsatisfied(self.state)
        if missing:
            raise GoalVerificationFailure(
                f"Multigoal {multigoal.tag or ''} not achieved",
                node_id=node.node_id,
                context={"missing": [str(g) for g in missing]},
            )
        self.trace.record(StepType.VERIFY, node.node_id, f"{multigoal} verified")
        self._close(node.node_id)

    # ========================================================================
    # Closing, failure and backtracking
    # ========================================================================

    def _close(self, node_id: int, state_before: Optional[State] = None) -> None:
        """Close a node and every ancestor whose children are now all closed."""
        self.tree.mark_closed(node_id)
        if self.mode == RefinementMode.PLAN:
            self._journal.append(
                (node_id, state_before if state_before is not None else self.state)
            )

        parent = self.tree.parent(node_id)
        while parent is not None and all(c.is_closed for c in self.tree.children(parent.node_id)):
            self.tree.mark_closed(parent.node_id)
            logger.debug(f"Closed {parent.describe()}", extra={"node_id": parent.node_id})
            parent = self.tree.parent(parent.node_id)

    def _handle_failure(self, node: Node, failure: HTPException) -> None:
        self.tree.mark_failed(node.node_id, failure.message)
        self.stats["failures"] += 1
        self.trace.record(
            StepType.FAIL,
            node.node_id,
            f"{node.describe()}: {failure.message}",
            error=type(failure).__name__,
        )
        logger.debug(
            f"Node failed: {node.describe()}",
            extra={"node_id": node.node_id, "error": type(failure).__name__},
        )

        point_id = find_backtrack_point(
            self.tree, node.node_id, self.domain, self.options.max_backtrack_depth
        )
        if point_id is None:
            logger.error(
                "No viable backtrack point",
                extra={"node_id": node.node_id, "reason": failure.message},
            )
            raise NoViableBacktrackPoint(
                f"Planning failed: {node.describe()} failed and no ancestor has an untried method",
                trace=decomposition_trail(self.tree, node.node_id),
                blacklist=[str(e) for e in self.blacklist.entries()],
                context={"node_id": node.node_id, "reason": failure.message},
                original_exception=failure,
            )
        self._backtrack(point_id)

    def _backtrack(self, point_id: int) -> None:
        point = self.tree[point_id]
        abandoned_method = point.method_used
        descendants = self.tree.descendants(point_id)

        if self.mode == RefinementMode.PLAN:
            self._rollback(set(descendants))
            retract = descendants
            self.tree.discard_subtree(point_id, keep_closed=False)
        else:
            retract = [d for d in descendants if not self.tree[d].is_closed]
            self.tree.discard_subtree(point_id, keep_closed=True)

        self.network.remove_constraints(retract)
        self.blacklist.clear_subtree(descendants)
        self.stats["backtracks"] += 1

        self.trace.record(
            StepType.BACKTRACK,
            point_id,
            f"reopen {point.describe()}, {len(descendants)} nodes discarded",
            method=abandoned_method,
            tried=list(point.tried_alternatives),
        )
        logger.warning(
            f"Backtracking to {point.describe()}",
            extra={
                "node_id": point_id,
                "abandoned_method": abandoned_method,
                "discarded": len(descendants),
            },
        )

    def _rollback(self, discarded: Set[int]) -> None:
        """
        Undo state effects of discarded nodes (plan mode).

        The state returns to what it was before the first discarded closure.
        Later closures outside the discarded set are reopened so they run
        again against the restored state.
        """
        first = next(
            (i for i, (node_id, _) in enumerate(self._journal) if node_id in discarded),
            None,
        )
        if first is None:
            return

        self.state = self._journal[first][1]
        later = self._journal[first + 1 :]
        del self._journal[first:]

        for node_id, _ in later:
            if node_id not in discarded:
                self._reopen(node_id)

    def _reopen(self, node_id: int) -> None:
        node = self.tree[node_id]
        if node.discarded:
            return
        node.status = NodeStatus.OPEN
        if node.kind.is_refinable and not node.children_ids:
            if node.method_used is not None:
                node.tried_alternatives.remove(node.method_used)
                node.method_used = None
            node.expanded = False

        for ancestor in self.tree.ancestors(node_id):
            if not ancestor.is_closed:
                break
            ancestor.status = NodeStatus.OPEN
        logger.debug(f"Reopened {node.describe()}", extra={"node_id": node_id})


# ============================================================================
# Entry points
# ============================================================================


def plan(
    domain: Domain,
    initial_state: State,
    todo_list: Sequence[Any],
    options: Optional[PlannerOptions] = None,
    constraints: Sequence[TemporalConstraint] = (),
) -> SolutionTree:
    """
    Pure decomposition: simulate action executables, never run commands.

    Returns:
        The solution tree (root CLOSED). tree.network holds the temporal
        network and tree.trace the search trace.

    Raises:
        InconsistentTemporalNetwork: caller constraints are contradictory
        NoViableBacktrackPoint: no plan exists
    """
    engine = RefinementEngine(
        domain, initial_state, todo_list, options, constraints, mode=RefinementMode.PLAN
    )
    tree = engine.run()
    tree.final_state = engine.state
    return tree


def run_lazy(
    domain: Domain,
    initial_state: State,
    todo_list: Sequence[Any],
    options: Optional[PlannerOptions] = None,
    constraints: Sequence[TemporalConstraint] = (),
    global_blacklist: Optional[GlobalBlacklist] = None,
) -> FinalState:
    """
    Interleaved planning and execution. Commands run as soon as their action
    node is selected.

    Raises:
        InconsistentTemporalNetwork: caller constraints are contradictory
        NoViableBacktrackPoint: search exhausted
    """
    engine = RefinementEngine(
        domain,
        initial_state,
        todo_list,
        options,
        constraints,
        global_blacklist=global_blacklist,
        mode=RefinementMode.LAZY,
    )
    tree = engine.run()
    tree.final_state = engine.state
    return FinalState(
        state=engine.state,
        solution_tree=tree,
        executed_actions=list(engine.executed_actions),
        trace=engine.trace,
        stats=dict(engine.stats),
    )


def run_lazy_tree(
    domain: Domain,
    initial_state: State,
    solution_tree: SolutionTree,
    options: Optional[PlannerOptions] = None,
    global_blacklist: Optional[GlobalBlacklist] = None,
) -> FinalState:
    """
    Execute a tree produced by plan().

    The planned primitive actions run as commands in plan order. A command
    failure is blacklisted and the engine backtracks and refines further,
    exactly as in run_lazy(). The given tree is not modified; the returned
    FinalState holds the executed copy.

    Raises:
        PlanError: the tree is incomplete or has no temporal network
        NoViableBacktrackPoint: a command failed and no alternative worked
    """
    engine = RefinementEngine(
        domain,
        initial_state,
        (),
        options,
        global_blacklist=global_blacklist,
        mode=RefinementMode.LAZY,
        solution_tree=solution_tree,
    )
    tree = engine.run()
    tree.final_state = engine.state
    return FinalState(
        state=engine.state,
        solution_tree=tree,
        executed_actions=list(engine.executed_actions),
        trace=engine.trace,
        stats=dict(engine.stats),
    )


def get_schedule(solution_tree: SolutionTree) -> Schedule:
    """
    Critical-path view of the tree's closed primitive actions.

    Schedule entries are keyed by action node id; labels carry the action call.

    Raises:
        InconsistentTemporalNetwork: the tree's network is inconsistent
    """
    network = solution_tree.network
    if network is None:
        raise PlanError("Solution tree has no temporal network")
    action_ids = [n.node_id for n in solution_tree.primitive_actions()]
    return network.get_schedule(action_ids)
