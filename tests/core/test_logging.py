"""Tests for logging helpers."""

import importlib

import structlog
from structlog.testing import capture_logs

from agqr.core.logging import LogContext, get_logger


class TestGetLogger:
    def test_cli_modules_import(self):
        app = importlib.import_module("agqr.cli.app")
        assert app.app is not None

    def test_name_is_carried_on_every_line(self):
        logger = get_logger("agqr.test")
        with capture_logs() as logs:
            logger.info("x", answer=42)
        assert logs == [{"event": "x", "answer": 42, "logger_name": "agqr.test", "log_level": "info"}]

    def test_unnamed_logger(self):
        with capture_logs() as logs:
            get_logger().warning("y")
        assert logs[0]["event"] == "y"
        assert "logger_name" not in logs[0]


class TestLogContext:
    def test_binds_and_unbinds(self):
        with LogContext(worker="recorder_invoker"):
            assert structlog.contextvars.get_contextvars()["worker"] == "recorder_invoker"
        assert "worker" not in structlog.contextvars.get_contextvars()

    def test_nested_blocks_restore_outer_value(self):
        with LogContext(group="Foo/2024-01-01_120000"):
            with LogContext(group="Bar/2024-01-01_120000", host="h1"):
                assert structlog.contextvars.get_contextvars()["group"] == "Bar/2024-01-01_120000"
            context = structlog.contextvars.get_contextvars()
            assert context["group"] == "Foo/2024-01-01_120000"
            assert "host" not in context
