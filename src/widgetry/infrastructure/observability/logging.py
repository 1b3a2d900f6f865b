"""Structured logging configuration with JSON formatting and correlation IDs."""

import contextvars
import logging
import sys
import traceback
import uuid
from pathlib import Path
from typing import Any

from pythonjsonlogger import jsonlogger

# Hey future me, correlation IDs tie together every log line of ONE widget load! The registry
# sets a fresh ID when a load starts, and because contextvars are asyncio-safe, every hook,
# loader and asset fetch running inside that load task logs with the same ID - even though
# several loads interleave on the event loop. Coalesced callers share the ID of the load
# they joined. default="" handles startup logs and code outside any load.
correlation_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "correlation_id", default=""
)


def get_correlation_id() -> str:
    """Get the current correlation ID from context.

    Returns:
        Current correlation ID or empty string if not set
    """
    return correlation_id_var.get()


# Listen up, this setter AUTO-GENERATES a UUID if correlation_id is None! Call it once at the
# START of an operation (the registry does it per load task), not in loops.
def set_correlation_id(correlation_id: str | None = None) -> str:
    """Set correlation ID in context.

    Args:
        correlation_id: Correlation ID to set. If None, generates a new UUID

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    correlation_id_var.set(correlation_id)
    return correlation_id


# This filter injects correlation_id into EVERY log record so formatters can use it.
# Returning False would DROP the record - always return True here.
class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation_id to record if available."""
        record.correlation_id = get_correlation_id()
        return True


class CompactExceptionFormatter(logging.Formatter):
    """Formatter that shows compact exception chains without verbose traceback boilerplate.

    Hey future me - LoadError always wraps the real failure (httpx error, ImportError, ...)
    via "raise ... from". The default formatter prints both tracebacks separated by
    "The above exception was the direct cause ...". This one prints the chain root-first
    with only OUR frames:

    ERROR │ widgetry.application.services.widget_registry:210 │ widget_register.failed
    ╰─► ConnectError: All connection attempts failed
    ╰─► LoadError: Failed to load widget from https://cdn.jsdelivr.net/x: ...
        File "remote_loader.py", line 120, in _fetch_descriptor
          response = await self._http_pool.fetch(source, ...)
    """

    def formatException(self, ei: tuple[type, BaseException, Any]) -> str:
        """Format exception chain in a compact, readable way.

        Args:
            ei: Exception info tuple (type, value, traceback)

        Returns:
            Formatted exception string with compact chain representation
        """
        _, exc_value, _ = ei
        if exc_value is None:
            return ""

        lines: list[str] = []

        exceptions: list[BaseException] = []
        current: BaseException | None = exc_value
        while current is not None:
            exceptions.append(current)
            current = current.__cause__ or current.__context__

        # Root cause first
        exceptions.reverse()

        for exc in exceptions:
            lines.append(f"╰─► {exc.__class__.__name__}: {exc}")

            if exc.__traceback__:
                for frame in traceback.extract_tb(exc.__traceback__):
                    filepath = frame.filename
                    if "/site-packages/" in filepath or "/usr/lib/python" in filepath:
                        continue
                    if "widgetry" not in filepath:
                        continue
                    lines.append(
                        f'    File "{Path(filepath).name}", line {frame.lineno}, in {frame.name}'
                    )
                    if frame.line:
                        lines.append(f"      {frame.line.strip()}")

        return "\n".join(lines)


class CustomJsonFormatter(jsonlogger.JsonFormatter):  # type: ignore[name-defined,misc]
    """Custom JSON formatter with additional fields."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        """Add custom fields to log record.

        Args:
            log_record: Dictionary to be logged as JSON
            record: Python logging record
            message_dict: Message dictionary from format string
        """
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        correlation_id = getattr(record, "correlation_id", "")
        if correlation_id:
            log_record["correlation_id"] = correlation_id

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_record["stack_info"] = self.formatStack(record.stack_info)


# Listen future me, this is THE logging setup function - call it ONCE at startup (lifecycle.py
# does). It configures the ROOT logger, removing existing handlers first so tests/reloads don't
# stack handlers. json_format=True for production log aggregation, False for humans.
# httpx/httpcore get quieted - the remote loader and asset loader would otherwise drown our logs.
def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
    app_name: str = "widgetry",
) -> None:
    """Configure structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON format for logs (recommended for production)
        app_name: Application name to include in logs
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())

    if json_format:
        formatter: logging.Formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = CompactExceptionFormatter(
            fmt="%(asctime)s │ %(levelname)-7s │ %(name)s:%(lineno)d │ %(message)s",
            datefmt="%H:%M:%S",
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(
        "Logging configured",
        extra={
            "app_name": app_name,
            "log_level": log_level,
            "json_format": json_format,
        },
    )
