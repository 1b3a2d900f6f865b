"""Shared logger utilities.

Hey future me - use these helpers instead of hand-rolled timing code!

USAGE:
    from widgetry.infrastructure.observability.logger_template import (
        get_module_logger,
        log_operation,
    )

    logger = get_module_logger(__name__)

    async with log_operation(logger, "widget_register", source="widget-a"):
        await do_the_load()
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any


# Always pass __name__ so logger names mirror the module path (widgetry.infrastructure.loaders...).
def get_module_logger(name: str) -> logging.Logger:
    """Get logger for module with standard config.

    Args:
        name: Module name (use __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


# Yo, this context manager logs start/end with automatic duration tracking. The **context
# kwargs become extra fields on every line. On exception it logs "<op>.failed" and RE-RAISES -
# it never swallows. Keep context keys away from LogRecord attribute names ("name", "module",
# "message" ...) or logging raises KeyError!
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    slow_threshold_ms: int | None = None,
    **context: Any,
) -> AsyncIterator[None]:
    """Context manager for logging operation start/end with automatic timing.

    Logs:
    - {operation}.started with context fields (DEBUG)
    - {operation}.completed with context + duration_ms
    - {operation}.failed with context + duration_ms + error details (if exception)
    - operation.slow if slow_threshold_ms is set and exceeded

    Args:
        logger: Logger instance from get_module_logger()
        operation: Operation name (e.g., "widget_register")
        slow_threshold_ms: Optional threshold for an extra slow-operation warning
        **context: Additional fields to include in logs
    """
    start = time.monotonic()
    logger.debug(f"{operation}.started", extra=context)

    try:
        yield
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.warning(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": duration_ms,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(f"{operation}.completed", extra={**context, "duration_ms": duration_ms})
    if slow_threshold_ms is not None:
        log_slow_operation(logger, operation, duration_ms, slow_threshold_ms, **context)


def log_slow_operation(
    logger: logging.Logger,
    operation: str,
    duration_ms: int,
    threshold_ms: int = 100,
    **context: Any,
) -> None:
    """Log warning if operation exceeded threshold.

    Args:
        logger: Logger instance
        operation: Operation name
        duration_ms: Actual operation duration
        threshold_ms: Threshold for "slow" (default: 100ms)
        **context: Additional fields
    """
    if duration_ms > threshold_ms:
        logger.warning(
            "operation.slow",
            extra={
                **context,
                "operation": operation,
                "duration_ms": duration_ms,
                "threshold_ms": threshold_ms,
            },
        )
