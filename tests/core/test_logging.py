"""Tests for structured logging helpers."""

import pytest
from structlog.contextvars import clear_contextvars, get_contextvars
from structlog.testing import capture_logs

from stockwatch.core.logging import LogContext, bind_context, get_logger, unbind_context


@pytest.fixture(autouse=True)
def clean_context():
    clear_contextvars()
    yield
    clear_contextvars()


class TestGetLogger:
    def test_binds_logger_name(self):
        with capture_logs() as logs:
            get_logger("stockwatch.test").info("probe_started", attempt=1)
        assert logs == [
            {"logger_name": "stockwatch.test", "attempt": 1, "event": "probe_started", "log_level": "info"}
        ]

    def test_unnamed(self):
        with capture_logs() as logs:
            get_logger().warning("plain")
        assert logs[0]["event"] == "plain"
        assert "logger_name" not in logs[0]


class TestContext:
    def test_bind_and_unbind(self):
        bind_context(workflow="check", source="test")
        assert get_contextvars() == {"workflow": "check", "source": "test"}
        unbind_context("source")
        assert get_contextvars() == {"workflow": "check"}

    def test_log_context_scopes_keys(self):
        with LogContext(workflow="report"):
            assert get_contextvars()["workflow"] == "report"
        assert "workflow" not in get_contextvars()

    @pytest.mark.asyncio
    async def test_async_log_context(self):
        async with LogContext(workflow="check"):
            assert get_contextvars() == {"workflow": "check"}
        assert get_contextvars() == {}
