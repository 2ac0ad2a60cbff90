"""
Common constants for the hybrid temporal planner.

This package provides centralized defaults and numeric tolerances used
throughout the planner code base.
"""

from common.constants import *

__all__ = [
    # Temporal Network
    "STN_EPSILON",
    "STN_ORIGIN_LABEL",
    "UNBOUNDED",
    "COMPOUND_SPAN_BOUNDS",
    "VERIFY_SPAN_BOUNDS",
    # Search
    "DEFAULT_MAX_BACKTRACK_DEPTH",
    "DEFAULT_MAX_ITERATIONS",
    "DEFAULT_VERIFY_GOALS",
    # Blacklist
    "DEFAULT_BLACKLIST_SCOPE",
    # Configuration
    "CONFIG_SECTION_PLANNER",
]
