"""
htp_exceptions.py

Central exception hierarchy for the hybrid temporal planner.

Exception hierarchy:
    HTPException (base)
    ├── TemporalException
    │   ├── InconsistentTemporalNetwork   (also a LocalPlanningFailure)
    │   └── CycleDetectedError
    ├── DomainException
    │   ├── DomainRegistrationError
    │   └── UnknownTodoItemError
    ├── PlanError
    │   ├── LocalPlanningFailure
    │   │   ├── NoApplicableMethod
    │   │   ├── ActionPreconditionUnmet
    │   │   ├── ActionExecutionFailure
    │   │   └── GoalVerificationFailure
    │   └── NoViableBacktrackPoint
    │       └── SearchBudgetExceeded
    └── ConfigurationException
        └── InvalidConfigError

LocalPlanningFailure subclasses are handled inside the refinement engine and
trigger backtracking. Callers of plan()/run_lazy() only ever see
NoViableBacktrackPoint (search exhausted) or InconsistentTemporalNetwork
(their own constraints are contradictory).

Usage:
    from htp_exceptions import NoViableBacktrackPoint

    try:
        final = run_lazy(domain, state, todos)
    except NoViableBacktrackPoint as e:
        logger.error(f"Planning failed: {e}")
        logger.error(f"Blacklist: {e.blacklist}")
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence


class HTPException(Exception):
    """
    Base exception for all planner specific errors.

    All planner exceptions support:
    - a readable message
    - contextual information (dict)
    - chaining of the original exception
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception

    def __str__(self) -> str:
        base_msg = self.message

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, context={self.context!r})"


# ============================================================================
# TEMPORAL EXCEPTIONS
# ============================================================================


class TemporalException(HTPException):
    """Base exception for errors in the temporal layer."""


class CycleDetectedError(TemporalException):
    """
    The precedence graph handed to the scheduler contains a cycle.

    The nodes involved in the cycle are available as ``cycle_nodes``.
    """

    def __init__(
        self,
        message: str,
        cycle_nodes: Optional[Iterable[Any]] = None,
        **kwargs,
    ):
        self.cycle_nodes: List[Any] = list(cycle_nodes or [])
        context = kwargs.pop("context", {})
        if self.cycle_nodes:
            context["cycle_nodes"] = self.cycle_nodes
        super().__init__(message, context=context, **kwargs)


# ============================================================================
# DOMAIN EXCEPTIONS
# ============================================================================


class DomainException(HTPException):
    """Base exception for errors in domain construction and lookup."""


class DomainRegistrationError(DomainException):
    """
    Invalid registration on a DomainBuilder.

    Causes:
    - a name registered as both action and task
    - a non-callable executable
    - an invalid duration
    """

    def __init__(self, message: str, name: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if name:
            context["name"] = name
        super().__init__(message, context=context, **kwargs)


class UnknownTodoItemError(DomainException):
    """A todo item could not be classified as task, action, goal or multigoal."""

    def __init__(self, message: str, item: Any = None, **kwargs):
        context = kwargs.pop("context", {})
        if item is not None:
            context["item"] = repr(item)
        super().__init__(message, context=context, **kwargs)


# ============================================================================
# PLANNING EXCEPTIONS
# ============================================================================


class PlanError(HTPException):
    """Base exception for planning and execution failures."""


class LocalPlanningFailure(PlanError):
    """
    Failure of a single node. Triggers backtracking inside the engine.

    Attributes:
        node_id: Id of the failed solution tree node (if known)
    """

    def __init__(self, message: str, node_id: Optional[int] = None, **kwargs):
        self.node_id = node_id
        context = kwargs.pop("context", {})
        if node_id is not None:
            context["node_id"] = node_id
        super().__init__(message, context=context, **kwargs)


class InconsistentTemporalNetwork(TemporalException, LocalPlanningFailure):
    """
    A constraint insertion made the temporal network inconsistent.

    Inside the engine this fails the node whose expansion added the
    constraints. Raised to callers when their own constraints (or the
    deadline) are contradictory before any action runs.
    """

    def __init__(
        self,
        message: str,
        constraint: Optional[Sequence[Any]] = None,
        node_id: Optional[int] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if constraint is not None:
            context["constraint"] = tuple(constraint)
        super().__init__(message, node_id=node_id, context=context, **kwargs)


class NoApplicableMethod(LocalPlanningFailure):
    """
    No registered method (or action) produced a valid refinement.

    Also raised for a multigoal without any matching multigoal method.
    """


class ActionPreconditionUnmet(LocalPlanningFailure):
    """
    An action's entity requirements are not satisfied by the current state.

    Not blacklisted: the same call may succeed in a different state.
    """


class ActionExecutionFailure(LocalPlanningFailure):
    """
    An action or command failed (falsy result, raised exception, or the call
    is blacklisted).
    """

    def __init__(
        self,
        message: str,
        action_name: Optional[str] = None,
        args: Optional[Sequence[Any]] = None,
        **kwargs,
    ):
        self.action_name = action_name
        self.action_args = tuple(args or ())
        context = kwargs.pop("context", {})
        if action_name:
            context["action"] = action_name
            context["args"] = self.action_args
        super().__init__(message, context=context, **kwargs)


class GoalVerificationFailure(LocalPlanningFailure):
    """A goal method closed, but the goal does not hold afterwards."""


class NoViableBacktrackPoint(PlanError):
    """
    Search is exhausted: a node failed and no ancestor has untried methods.

    Attributes:
        trace: Rendered decomposition trail (list of strings)
        blacklist: Snapshot of blacklist entries at the time of failure
    """

    def __init__(
        self,
        message: str,
        trace: Optional[Sequence[str]] = None,
        blacklist: Optional[Sequence[Any]] = None,
        **kwargs,
    ):
        self.trace: List[str] = list(trace or [])
        self.blacklist: List[Any] = list(blacklist or [])
        super().__init__(message, **kwargs)

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.trace:
            base_msg += "\nDecomposition trail:\n" + "\n".join(
                f"  {line}" for line in self.trace
            )
        if self.blacklist:
            base_msg += "\nBlacklist:\n" + "\n".join(
                f"  {entry}" for entry in self.blacklist
            )
        return base_msg


class SearchBudgetExceeded(NoViableBacktrackPoint):
    """The engine hit max_iterations before reaching a final state."""


# ============================================================================
# CONFIGURATION EXCEPTIONS
# ============================================================================


class ConfigurationException(HTPException):
    """Base exception for configuration errors."""


class InvalidConfigError(ConfigurationException):
    """
    Invalid planner option.

    Causes:
    - negative max_backtrack_depth or max_iterations
    - unknown blacklist scope
    - malformed YAML section
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context, **kwargs)


# ============================================================================
# UTILITIES
# ============================================================================


def wrap_exception(
    exc: Exception, htp_exception_class: type, message: str, **context
) -> HTPException:
    """
    Convert a generic exception into a planner specific one.

    Args:
        exc: Original exception
        htp_exception_class: Target exception class (e.g. ActionExecutionFailure)
        message: Message for the new exception
        **context: Additional context

    Returns:
        Planner exception chained to the original

    Example:
        try:
            new_state = executable(state_copy, *args)
        except Exception as e:
            raise wrap_exception(e, ActionExecutionFailure, "Command raised", node_id=7)
    """
    return htp_exception_class(message=message, context=context, original_exception=exc)


def get_user_friendly_message(exc: Exception, include_details: bool = False) -> str:
    """
    Produce a user facing message for an exception.

    Args:
        exc: Exception object
        include_details: Append technical details (debug mode)

    Returns:
        Readable error message
    """
    friendly_messages = {
        InconsistentTemporalNetwork: "[ERROR] The temporal constraints contradict each other.",
        CycleDetectedError: "[ERROR] The activities depend on each other in a cycle.",
        DomainRegistrationError: "[ERROR] The planning domain is invalid.",
        UnknownTodoItemError: "[ERROR] A todo item is neither a known task nor a known action.",
        NoApplicableMethod: "[ERROR] No method can refine this task.",
        ActionPreconditionUnmet: "[ERROR] The required entities for this action are not available.",
        ActionExecutionFailure: "[ERROR] An action failed during execution.",
        GoalVerificationFailure: "[ERROR] A goal was not achieved by its method.",
        NoViableBacktrackPoint: "[ERROR] No plan could be found. All alternatives have been exhausted.",
        SearchBudgetExceeded: "[ERROR] Planning stopped after reaching the iteration limit.",
        InvalidConfigError: "[ERROR] Invalid planner configuration. Please check the options.",
    }

    default_message = "[ERROR] An unexpected error occurred."

    user_message = friendly_messages.get(type(exc), default_message)

    if isinstance(exc, ActionExecutionFailure) and exc.action_name:
        user_message = f"[ERROR] Action '{exc.action_name}' failed during execution."

    elif isinstance(exc, CycleDetectedError) and exc.cycle_nodes:
        nodes = ", ".join(str(n) for n in exc.cycle_nodes)
        user_message = f"[ERROR] The activities {nodes} depend on each other in a cycle."

    if include_details and isinstance(exc, HTPException):
        user_message += f"\n\nTechnical details: {exc.message}"
        if exc.context:
            user_message += f"\n   Context: {exc.context}"

    return user_message
