"""
htp_config.py

Planner options and their YAML loader.

PlannerOptions is the single configuration record passed to plan() and
run_lazy(). Options can be built in code, from a dict, or read from the
"planner" section of a YAML file:

    planner:
      blacklist_scope_default: subtree
      max_backtrack_depth: 3
      deadline: 120.0
      max_iterations: 5000
      verify_goals: true

Usage:
    from htp_config import PlannerOptions, load_options

    options = load_options("config/planner.yaml")
    tree = plan(domain, state, todos, options=options)
"""

import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from common.constants import (
    CONFIG_SECTION_PLANNER,
    DEFAULT_BLACKLIST_SCOPE,
    DEFAULT_MAX_BACKTRACK_DEPTH,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_VERIFY_GOALS,
)
from component_15_logging_config import get_logger
from component_31_blacklist import BlacklistScope
from htp_exceptions import InvalidConfigError

logger = get_logger(__name__)


def _is_int(value: Any) -> bool:
    # bool is an int subclass but never a valid count
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class PlannerOptions:
    """
    Options for a planning session.

    Attributes:
        blacklist_scope_default: Scope of blacklist entries created by failures
        max_backtrack_depth: Max ancestor levels climbed on backtrack (None = unlimited)
        deadline: Upper bound on the end of the whole plan, relative to the origin
        max_iterations: Engine loop budget
        verify_goals: Append verify nodes after goal methods
    """

    blacklist_scope_default: BlacklistScope = BlacklistScope(DEFAULT_BLACKLIST_SCOPE)
    max_backtrack_depth: Optional[int] = DEFAULT_MAX_BACKTRACK_DEPTH
    deadline: Optional[float] = None
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    verify_goals: bool = DEFAULT_VERIFY_GOALS

    def __post_init__(self):
        if not isinstance(self.blacklist_scope_default, BlacklistScope):
            try:
                self.blacklist_scope_default = BlacklistScope(
                    str(self.blacklist_scope_default).lower()
                )
            except ValueError as e:
                raise InvalidConfigError(
                    "Unknown blacklist scope",
                    config_key="blacklist_scope_default",
                    config_value=self.blacklist_scope_default,
                    original_exception=e,
                )

        if self.max_backtrack_depth is not None and (
            not _is_int(self.max_backtrack_depth) or self.max_backtrack_depth < 0
        ):
            raise InvalidConfigError(
                "max_backtrack_depth must be a non-negative integer or None",
                config_key="max_backtrack_depth",
                config_value=self.max_backtrack_depth,
            )

        if not _is_int(self.max_iterations) or self.max_iterations <= 0:
            raise InvalidConfigError(
                "max_iterations must be a positive integer",
                config_key="max_iterations",
                config_value=self.max_iterations,
            )

        if self.deadline is not None:
            if isinstance(self.deadline, bool):
                raise InvalidConfigError(
                    "deadline must be a number",
                    config_key="deadline",
                    config_value=self.deadline,
                )
            try:
                self.deadline = float(self.deadline)
            except (TypeError, ValueError) as e:
                raise InvalidConfigError(
                    "deadline must be a number",
                    config_key="deadline",
                    config_value=self.deadline,
                    original_exception=e,
                )
            if math.isnan(self.deadline) or self.deadline < 0:
                raise InvalidConfigError(
                    "deadline must be a non-negative number",
                    config_key="deadline",
                    config_value=self.deadline,
                )

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PlannerOptions":
        """Build options from a plain dict. Unknown keys are rejected."""
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidConfigError(
                f"Unknown planner option(s): {', '.join(sorted(unknown))}",
                config_key=sorted(unknown)[0],
            )
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result["blacklist_scope_default"] = self.blacklist_scope_default.value
        return result


def load_options(config_path: Union[str, Path]) -> PlannerOptions:
    """
    Load PlannerOptions from the "planner" section of a YAML file.

    A missing file yields the defaults (with a warning). A malformed file
    raises InvalidConfigError.

    Args:
        config_path: Path to the YAML file

    Returns:
        PlannerOptions
    """
    config_file = Path(config_path)
    if not config_file.exists():
        logger.warning(f"Config file not found: {config_path}, using defaults")
        return PlannerOptions()

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise InvalidConfigError(
            "Could not parse planner configuration",
            context={"path": str(config_file)},
            original_exception=e,
        )

    if config is None:
        config = {}
    if not isinstance(config, dict):
        raise InvalidConfigError(
            "Planner configuration must be a mapping",
            context={"path": str(config_file)},
        )

    section = config.get(CONFIG_SECTION_PLANNER, {}) or {}
    if not isinstance(section, dict):
        raise InvalidConfigError(
            f"Section '{CONFIG_SECTION_PLANNER}' must be a mapping",
            config_key=CONFIG_SECTION_PLANNER,
        )

    options = PlannerOptions.from_dict(section)
    logger.info(
        f"[OK] Configuration loaded from {config_path}", extra=options.to_dict()
    )
    return options
