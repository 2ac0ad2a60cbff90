"""
Centralized constants for the hybrid temporal planner.

This module provides a single source of truth for defaults and numeric
tolerances used throughout the planner. Individual components accept
overrides through PlannerOptions (see htp_config.py) or constructor
parameters.

Organization:
    - Temporal Network: numeric tolerances and matrix defaults
    - Search: backtracking and iteration defaults
    - Blacklist: scope defaults
    - Configuration: YAML section names

Usage:
    from common.constants import STN_EPSILON, DEFAULT_MAX_ITERATIONS

Last Updated: 2026-10-17
"""

# =============================================================================
# Temporal Network
# =============================================================================

STN_EPSILON: float = 1e-9
"""
Tolerance for negative-cycle detection and precedence checks.

A diagonal entry of the distance matrix below -STN_EPSILON marks the
network inconsistent. Precedence A -> B is derived when the network implies
start(B) - end(A) >= -STN_EPSILON.

Rationale:
    Durations are floats. Summing long constraint chains accumulates rounding
    error, so a strict comparison against 0.0 would report phantom cycles.
"""

STN_ORIGIN_LABEL: str = "origin"
"""
Label of time point 0, the reference point of every network.

Earliest time of p is -D[p, origin], latest time is D[origin, p].
"""

UNBOUNDED: float = float("inf")
"""Upper bound used for "no constraint". Stored as +inf in the distance matrix."""

COMPOUND_SPAN_BOUNDS = (0.0, UNBOUNDED)
"""
Duration bounds for non-primitive nodes (tasks, goals, multigoals).

Their real span is determined by the children they contain.
"""

VERIFY_SPAN_BOUNDS = (0.0, 0.0)
"""Verify nodes take no time."""

# =============================================================================
# Search
# =============================================================================

DEFAULT_MAX_BACKTRACK_DEPTH = None
"""
Maximum number of ancestor levels climbed when looking for a backtrack point.

None means unlimited (climb up to the root).
"""

DEFAULT_MAX_ITERATIONS: int = 10_000
"""
Upper bound on engine loop iterations per session.

Rationale:
    Recursive task methods can refine forever. The budget turns a runaway
    domain into a SearchBudgetExceeded error instead of a hang.

Tuning:
    Large domains with deep decompositions may need 100_000 or more.
"""

DEFAULT_VERIFY_GOALS: bool = True
"""Append VerifyGoal/VerifyMultigoal children after goal methods succeed."""

# =============================================================================
# Blacklist
# =============================================================================

DEFAULT_BLACKLIST_SCOPE: str = "session"
"""
Scope assigned to blacklist entries created by execution failures.

- "session": valid for the whole planning attempt
- "subtree": cleared when backtracking discards the owning node
- "global": stored in the caller supplied GlobalBlacklist, survives sessions
"""

# =============================================================================
# Configuration
# =============================================================================

CONFIG_SECTION_PLANNER: str = "planner"
"""Top-level YAML section read by htp_config.load_options()."""
