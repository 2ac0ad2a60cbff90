"""
tests/test_logging_and_errors.py

Unit tests for logging helpers and the exception hierarchy.

Tests cover:
- Structured extra information on log records
- Formatter output
- PerformanceLogger timing and failure records
- Exception messages, context and user friendly texts
"""

import logging

import pytest

from component_15_logging_config import (
    PERFORMANCE_LOGGER_NAME,
    HTPLogFormatter,
    PerformanceLogger,
    SafeRotatingFileHandler,
    get_logger,
    setup_logging,
)
from htp_exceptions import (
    ActionExecutionFailure,
    CycleDetectedError,
    HTPException,
    InconsistentTemporalNetwork,
    LocalPlanningFailure,
    NoApplicableMethod,
    NoViableBacktrackPoint,
    PlanError,
    get_user_friendly_message,
    wrap_exception,
)


class TestStructuredLogging:
    """Test the structured logger and formatter."""

    def test_extra_moved_to_extra_info(self, caplog):
        """Test: extra dicts arrive as record.extra_info."""
        logger = get_logger("component_test.structured")
        with caplog.at_level(logging.INFO, logger="component_test.structured"):
            logger.info("Node expanded", extra={"node_id": 4})

        record = caplog.records[-1]
        assert record.extra_info == {"node_id": 4}

    def test_formatter_appends_extra(self):
        """Test: Extra information is rendered as key=value."""
        record = logging.LogRecord("component_x", logging.INFO, __file__, 1, "Hello", None, None)
        record.extra_info = {"a": 1, "b": "two"}
        text = HTPLogFormatter(use_colors=False).format(record)
        assert "[component_x] Hello | a=1 | b=two" in text

    def test_performance_logger_success(self, caplog):
        """Test: Successful operations log their duration."""
        logger = logging.getLogger("component_test.perf")
        with caplog.at_level(logging.DEBUG):
            with PerformanceLogger(logger, "relax", points=3) as perf:
                pass

        assert perf.duration_ms is not None
        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith("END: relax") for m in messages)
        assert any(r.name == PERFORMANCE_LOGGER_NAME for r in caplog.records)

    def test_performance_logger_failure(self, caplog):
        """Test: Exceptions are logged and propagated."""
        logger = logging.getLogger("component_test.perf_fail")
        with caplog.at_level(logging.DEBUG):
            with pytest.raises(ValueError):
                with PerformanceLogger(logger, "relax"):
                    raise ValueError("boom")

        assert any(r.getMessage().startswith("FAILED: relax") for r in caplog.records)

    def test_setup_logging_with_file(self, tmp_path):
        """Test: setup_logging writes to the given file."""
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        log_file = tmp_path / "logs" / "planner.log"
        try:
            setup_logging(console_level=logging.WARNING, log_file=log_file)
            get_logger("component_test.file").info("written", extra={"k": "v"})
            for handler in root.handlers:
                handler.flush()
            assert "written | k=v" in log_file.read_text(encoding="utf-8")
        finally:
            for handler in root.handlers:
                handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
            perf = logging.getLogger(PERFORMANCE_LOGGER_NAME)
            for handler in perf.handlers:
                handler.close()
            perf.handlers.clear()
            perf.propagate = True



class TestSafeRotatingFileHandler:
    """Test log rotation and its failure handling."""

    @staticmethod
    def record(text):
        return logging.LogRecord("component_x", logging.INFO, __file__, 1, text, None, None)

    def test_rollover_creates_backup(self, tmp_path):
        """Test: A full log file is moved to .1"""
        log_file = tmp_path / "planner.log"
        handler = SafeRotatingFileHandler(log_file, maxBytes=50, backupCount=2, encoding="utf-8")
        try:
            for i in range(3):
                handler.handle(self.record(f"{i}" * 40))
        finally:
            handler.close()

        assert (tmp_path / "planner.log.1").exists()
        assert handler.rotation_errors == 0
        assert "2" * 40 in log_file.read_text(encoding="utf-8")

    def test_failed_rotation_keeps_logging(self, tmp_path, capsys):
        """Test: A rotation error is reported once and records keep flowing."""
        log_file = tmp_path / "planner.log"
        handler = SafeRotatingFileHandler(log_file, maxBytes=50, backupCount=2, encoding="utf-8")

        def locked(source, dest):
            raise PermissionError("file in use")

        handler.rotate = locked
        try:
            for i in range(3):
                handler.handle(self.record(f"{i}" * 40))
        finally:
            handler.close()

        assert handler.rotation_errors == 2
        assert not (tmp_path / "planner.log.1").exists()
        assert "2" * 40 in log_file.read_text(encoding="utf-8")
        assert capsys.readouterr().err.count("Log rotation failed") == 1

class TestExceptions:
    """Test the exception hierarchy."""

    def test_context_in_message(self):
        """Test: Context is appended to the message."""
        exc = NoApplicableMethod("No method", node_id=7, context={"tried": ["m1"]})
        assert str(exc) == "No method | Context: tried=['m1'], node_id=7"
        assert exc.node_id == 7

    def test_hierarchy(self):
        """Test: Local failures and exhausted search are plan errors."""
        assert issubclass(NoApplicableMethod, LocalPlanningFailure)
        assert issubclass(NoViableBacktrackPoint, PlanError)
        assert not issubclass(NoViableBacktrackPoint, LocalPlanningFailure)
        assert issubclass(InconsistentTemporalNetwork, HTPException)

    def test_action_failure_fields(self):
        """Test: Action name and args are kept."""
        exc = ActionExecutionFailure("failed", action_name="drive", args=["car"])
        assert exc.action_args == ("car",)
        assert exc.context["action"] == "drive"

    def test_no_viable_backtrack_point_message(self):
        """Test: Trail and blacklist are appended."""
        exc = NoViableBacktrackPoint(
            "Planning failed", trace=["root (open)", "  task:t() (failed)"], blacklist=["drive(car)"]
        )
        text = str(exc)
        assert "Decomposition trail:\n  root (open)\n    task:t() (failed)" in text
        assert "Blacklist:\n  drive(car)" in text

    def test_wrap_exception(self):
        """Test: Wrapped exceptions keep the cause."""
        original = KeyError("x")
        wrapped = wrap_exception(original, PlanError, "lookup failed", node_id=1)
        assert wrapped.original_exception is original
        assert "Caused by: KeyError" in str(wrapped)

    def test_friendly_messages(self):
        """Test: User facing texts per exception type."""
        assert "cycle" in get_user_friendly_message(CycleDetectedError("c", cycle_nodes=["a", "b"]))
        assert "'drive'" in get_user_friendly_message(
            ActionExecutionFailure("f", action_name="drive")
        )
        detailed = get_user_friendly_message(
            InconsistentTemporalNetwork("bad", constraint=(1, 2, 0, 1)), include_details=True
        )
        assert "Technical details: bad" in detailed
        assert get_user_friendly_message(RuntimeError()) == "[ERROR] An unexpected error occurred."
