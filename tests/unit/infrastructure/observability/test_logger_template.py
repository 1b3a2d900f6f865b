"""Tests for log_operation."""

import logging

import pytest

from widgetry.infrastructure.observability.logger_template import (
    get_module_logger,
    log_operation,
    log_slow_operation,
)

logger = get_module_logger("widgetry.tests.logger_template")


class TestLogOperation:
    """Test start/end logging with timing."""

    async def test_completed_is_logged_with_context(self, caplog: pytest.LogCaptureFixture):
        """Test a successful block logs <op>.completed with context and duration."""
        with caplog.at_level(logging.DEBUG, logger=logger.name):
            async with log_operation(logger, "widget_register", source="widget-a"):
                pass

        messages = [record.getMessage() for record in caplog.records]
        assert messages == ["widget_register.started", "widget_register.completed"]
        completed = caplog.records[-1]
        assert completed.source == "widget-a"
        assert completed.duration_ms >= 0

    async def test_failure_is_logged_and_reraised(self, caplog: pytest.LogCaptureFixture):
        """Test an exception logs <op>.failed and propagates unchanged."""
        with caplog.at_level(logging.WARNING, logger=logger.name):
            with pytest.raises(RuntimeError, match="boom"):
                async with log_operation(logger, "widget_register", source="widget-a"):
                    raise RuntimeError("boom")

        failed = caplog.records[-1]
        assert failed.getMessage() == "widget_register.failed"
        assert failed.error == "boom"
        assert failed.error_type == "RuntimeError"

    async def test_slow_threshold_zero_warns(self, caplog: pytest.LogCaptureFixture):
        """Test a threshold below the duration emits operation.slow."""
        with caplog.at_level(logging.WARNING, logger=logger.name):
            async with log_operation(logger, "widget_register", slow_threshold_ms=-1):
                pass

        assert [record.getMessage() for record in caplog.records] == ["operation.slow"]


def test_log_slow_operation_under_threshold_is_silent(caplog: pytest.LogCaptureFixture):
    """Test fast operations don't warn."""
    with caplog.at_level(logging.WARNING, logger=logger.name):
        log_slow_operation(logger, "op", duration_ms=5, threshold_ms=100)

    assert caplog.records == []
