"""Error handling utilities for consistent exception recording and metrics."""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import TypedDict

import newrelic.agent
import structlog

# Support both standard Logger and structlog BoundLogger
LoggerType = logging.Logger | structlog.BoundLogger


class ErrorCounter(TypedDict, total=False):
    """Counter dict for tracking success/failure metrics."""

    successful: int
    failed: int


@contextmanager
def record_exception_and_ignore(
    logger: LoggerType, context: str, counter: ErrorCounter
) -> Generator[None]:
    """Context manager that records both successes and failures for metrics.

    On success: increments counter["successful"]
    On exception: logs error, records to New Relic, increments counter["failed"], continues execution

    Args:
        logger: Logger instance to use for error logging
        context: Description of what operation failed (e.g. "Failed to process startup message")
        counter: Dict to track success/failure counts (will be modified in-place)

    Example:
        counter = {}
        with record_exception_and_ignore(logger, "Failed to process startup message", counter):
            await router.process(payload)

        logger.info(f"Drained {counter.get('successful', 0)} messages, {counter.get('failed', 0)} failed")
    """
    try:
        yield
        counter["successful"] = counter.get("successful", 0) + 1
    except Exception as e:
        logger.error(f"{context}: {e}")
        newrelic.agent.record_exception()
        counter["failed"] = counter.get("failed", 0) + 1
