"""
component_15_logging_config.py

Central logging setup for the hybrid temporal planner.
Provides structured logging with levels, formatting and performance tracking.

Features:
- Console and optional file based logging
- Structured formatting with timestamps and component names
- Performance tracking for expensive operations (STN relaxation, search)
- Contextual key=value information on every record

The library never installs handlers on import. Applications call
setup_logging() once; until then records go wherever the host application
routes the "component_*" loggers.

Usage:
    from component_15_logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("Node expanded", extra={"node_id": 4, "method": "m_travel_by_foot"})
"""

import logging
import logging.handlers
import os
import sys
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import Any, Dict, Literal, MutableMapping, Optional, Tuple, Type

DEFAULT_LOG_LEVEL: int = logging.INFO
CONSOLE_LOG_LEVEL: int = logging.INFO
FILE_LOG_LEVEL: int = logging.DEBUG

PERFORMANCE_LOGGER_NAME: str = "htp.performance"


class HTPLogFormatter(logging.Formatter):
    """
    Formatter for structured log output.
    Optionally colours console output.
    """

    COLORS: Dict[str, str] = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = False, include_extra: bool = True) -> None:
        self.use_colors: bool = use_colors
        self.include_extra: bool = include_extra

        # Format: [TIMESTAMP] [LEVEL] [COMPONENT] MESSAGE
        fmt = "[%(asctime)s] [%(levelname)-8s] [%(name)s] %(message)s"
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        log_message = super().format(record)

        if self.include_extra and getattr(record, "extra_info", None):
            extra_str = " | ".join(f"{k}={v}" for k, v in record.extra_info.items())
            log_message += f" | {extra_str}"

        if self.use_colors:
            color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
            reset = self.COLORS["RESET"]
            log_message = f"{color}{log_message}{reset}"

        return log_message


class SafeRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """
    RotatingFileHandler that survives rotation failures.

    On some platforms os.rename() fails with PermissionError while another
    process still holds the file. Rotation is then skipped and logging
    continues; after max_rotation_errors attempts rotation is retried.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.rotation_errors: int = 0
        self.max_rotation_errors: int = 10

    def doRollover(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None  # type: ignore

        try:
            if self.backupCount > 0:
                for i in range(self.backupCount - 1, 0, -1):
                    sfn = self.rotation_filename(f"{self.baseFilename}.{i}")
                    dfn = self.rotation_filename(f"{self.baseFilename}.{i + 1}")
                    if os.path.exists(sfn):
                        if os.path.exists(dfn):
                            os.remove(dfn)
                        os.rename(sfn, dfn)

                dfn = self.rotation_filename(f"{self.baseFilename}.1")
                if os.path.exists(dfn):
                    os.remove(dfn)
                self.rotate(self.baseFilename, dfn)

            self.rotation_errors = 0

        except OSError as e:
            self.rotation_errors += 1

            # stderr, not logging: avoids recursion into this handler
            if self.rotation_errors == 1:
                print(
                    f"WARNING: Log rotation failed for {self.baseFilename}: {e}. "
                    f"Continuing without rotation.",
                    file=sys.stderr,
                )

            if self.rotation_errors >= self.max_rotation_errors:
                self.rotation_errors = 0

        if not self.stream:
            self.stream = self._open()


class PerformanceLogger:
    """
    Context manager for timing expensive operations.

    Usage:
        with PerformanceLogger(logger.logger, "STN relaxation", points=42):
            network.relax()
    """

    def __init__(
        self, logger: logging.Logger, operation_name: str, **context: Any
    ) -> None:
        self.logger: logging.Logger = logger
        self.operation_name: str = operation_name
        self.context: Dict[str, Any] = context
        self.start_time: Optional[datetime] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = datetime.now()
        self.logger.debug(
            f"START: {self.operation_name}", extra={"extra_info": self.context}
        )
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> Literal[False]:
        assert (
            self.start_time is not None
        ), "PerformanceLogger was not entered"
        duration_ms = (datetime.now() - self.start_time).total_seconds() * 1000
        self.duration_ms = duration_ms

        if exc_type is None:
            self.logger.debug(
                f"END: {self.operation_name} (duration: {duration_ms:.2f}ms)",
                extra={"extra_info": {**self.context, "duration_ms": duration_ms}},
            )
            perf_logger = logging.getLogger(PERFORMANCE_LOGGER_NAME)
            perf_logger.info(
                f"{self.operation_name}: {duration_ms:.2f}ms",
                extra={"extra_info": {**self.context, "duration_ms": duration_ms}},
            )
        else:
            # Planning failures are routine control flow, so DEBUG not ERROR
            self.logger.debug(
                f"FAILED: {self.operation_name} (duration: {duration_ms:.2f}ms)",
                extra={
                    "extra_info": {
                        **self.context,
                        "duration_ms": duration_ms,
                        "error": str(exc_val),
                    }
                },
            )

        return False


class StructuredLogger(logging.LoggerAdapter):
    """
    Logger adapter that carries structured extra information.
    """

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> Tuple[str, MutableMapping[str, Any]]:
        # Move the caller's 'extra' dict into a single 'extra_info' attribute
        extra = kwargs.get("extra", {})
        if extra:
            kwargs["extra"] = {"extra_info": extra}
        return msg, kwargs


def setup_logging(
    console_level: int = CONSOLE_LOG_LEVEL,
    file_level: int = FILE_LOG_LEVEL,
    log_file: Optional[Path] = None,
    enable_performance_logging: bool = True,
) -> None:
    """
    Configure the global logging system.

    Args:
        console_level: Level for console output
        file_level: Level for file output
        log_file: Main log file; file logging is disabled when None
        enable_performance_logging: Route the performance logger into
            '<log_file>.performance' (only when log_file is given)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Prevents duplicated handlers on repeated setup
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(HTPLogFormatter(use_colors=True, include_extra=True))
    root_logger.addHandler(console_handler)

    perf_logger = logging.getLogger(PERFORMANCE_LOGGER_NAME)
    perf_logger.handlers.clear()

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = SafeRotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8"  # 10 MB
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(HTPLogFormatter(use_colors=False, include_extra=True))
        root_logger.addHandler(file_handler)

        if enable_performance_logging:
            perf_logger.setLevel(logging.INFO)
            perf_logger.propagate = False

            perf_handler = SafeRotatingFileHandler(
                log_file.with_suffix(".performance.log"),
                maxBytes=5 * 1024 * 1024,  # 5 MB
                backupCount=3,
                encoding="utf-8",
            )
            perf_handler.setFormatter(
                HTPLogFormatter(use_colors=False, include_extra=True)
            )
            perf_logger.addHandler(perf_handler)

    logger = get_logger("htp.logging_config")
    logger.info(
        "Logging initialised",
        extra={
            "console_level": logging.getLevelName(console_level),
            "file_level": logging.getLevelName(file_level),
            "log_file": str(log_file) if log_file else None,
            "performance_logging": enable_performance_logging,
        },
    )


def get_logger(name: str) -> StructuredLogger:
    """
    Create a structured logger for a component.

    Args:
        name: Component name (usually __name__)

    Returns:
        StructuredLogger instance

    Example:
        logger = get_logger(__name__)
        logger.info("Plan found", extra={"actions": 3})
    """
    base_logger = logging.getLogger(name)
    return StructuredLogger(base_logger, {})


def log_component_start(
    logger: StructuredLogger, component_name: str, **context: Any
) -> None:
    """Log the start of a component operation."""
    logger.info(f"START: {component_name}", extra=context)


def log_component_end(
    logger: StructuredLogger, component_name: str, **context: Any
) -> None:
    """Log the successful end of a component operation."""
    logger.info(f"END: {component_name}", extra=context)
