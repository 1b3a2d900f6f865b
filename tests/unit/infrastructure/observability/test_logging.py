"""Tests for structured logging."""

import json
import logging
from collections.abc import Iterator

import pytest

from widgetry.domain.exceptions import LoadError
from widgetry.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CorrelationIdFilter,
    CustomJsonFormatter,
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def restore_root_logger() -> Iterator[None]:
    """configure_logging() replaces root handlers - put pytest's back afterwards."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


def _record(message: str = "hello", exc_info: object = None) -> logging.LogRecord:
    return logging.LogRecord(
        name="widgetry.test",
        level=logging.ERROR,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=exc_info,  # type: ignore[arg-type]
    )


class TestCorrelationId:
    """Test correlation ID functionality."""

    def test_set_and_get_correlation_id(self):
        """Test setting and getting correlation ID."""
        test_id = "test-123-abc"
        result = set_correlation_id(test_id)
        assert result == test_id
        assert get_correlation_id() == test_id

    def test_set_correlation_id_generates_uuid_when_none(self):
        """Test that setting None generates a UUID."""
        result = set_correlation_id(None)
        assert len(result) == 36
        assert get_correlation_id() == result

    def test_filter_injects_correlation_id(self):
        """Test the filter copies the context ID onto the record."""
        set_correlation_id("load-42")
        record = _record()

        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "load-42"


class TestLoggingConfiguration:
    """Test logging configuration."""

    def test_configure_logging_debug_level(self):
        """Test configuring logging with DEBUG level."""
        configure_logging(log_level="DEBUG", json_format=False, app_name="test-app")
        logger = logging.getLogger("test")
        assert logger.getEffectiveLevel() <= logging.DEBUG

    def test_configure_logging_info_level(self):
        """Test configuring logging with INFO level."""
        configure_logging(log_level="INFO", json_format=False, app_name="test-app")
        logger = logging.getLogger("test")
        assert logger.getEffectiveLevel() == logging.INFO

    def test_configure_logging_replaces_handlers(self):
        """Test repeated calls don't stack handlers."""
        configure_logging(log_level="INFO", json_format=False)
        configure_logging(log_level="INFO", json_format=True)

        root_logger = logging.getLogger()
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, CustomJsonFormatter)

    def test_noisy_libraries_are_quieted(self):
        """Test httpx logs are raised to WARNING."""
        configure_logging(log_level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING


class TestFormatters:
    """Test the JSON and compact formatters."""

    def test_json_formatter_adds_fields(self):
        """Test JSON output carries level, logger and correlation id."""
        formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
        record = _record("widget_register.completed")
        record.correlation_id = "abc"

        payload = json.loads(formatter.format(record))

        assert payload["message"] == "widget_register.completed"
        assert payload["level"] == "ERROR"
        assert payload["logger"] == "widgetry.test"
        assert payload["correlation_id"] == "abc"

    def test_compact_formatter_prints_chain_root_first(self):
        """Test a wrapped LoadError shows its cause before itself."""
        try:
            try:
                raise ConnectionError("refused")
            except ConnectionError as e:
                raise LoadError("https://cdn.jsdelivr.net/w.json", "refused", e) from e
        except LoadError as e:
            exc_info = (type(e), e, e.__traceback__)

        output = CompactExceptionFormatter().formatException(exc_info)
        lines = [line for line in output.splitlines() if line.startswith("╰─►")]

        assert lines[0] == "╰─► ConnectionError: refused"
        assert lines[1].startswith("╰─► LoadError: Failed to load widget from")
