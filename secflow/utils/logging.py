"""Structured logging for the secflow workers.

Importing this module configures logging once for the process. structlog events and records from stdlib
loggers (nats, github, apscheduler, uvicorn) go through the same processor chain and the same root handler:
a colored console renderer when SECFLOW_ENVIRONMENT is 'local', one JSON object per line otherwise.

```
from secflow.utils.logging import LogContext, get_logger

logger = get_logger(__name__)

with LogContext(repository=record.name, owner=owner):
    logger.info("Routing repository", subject="repos.valid")  # carries repository and owner
```

LogContext binds into contextvars, so each asyncio task routing a message sees only its own context.
"""

from __future__ import annotations

import logging
import os
from typing import Any

import structlog
import structlog.contextvars

from secflow.utils.config import get_secflow_environment
from secflow.utils.newrelic_logging import newrelic_error_processor

_UVICORN_LOGGERS = ("uvicorn", "uvicorn.access", "uvicorn.error")

LogContext = structlog.contextvars.bound_contextvars


def _is_local_environment() -> bool:
    return get_secflow_environment() == "local"


def _get_log_renderer() -> structlog.types.Processor:
    """Pick the final renderer. LOG_RENDERER=console|json overrides the environment default."""
    match os.getenv("LOG_RENDERER", "").lower():
        case "console":
            use_console = True
        case "json":
            use_console = False
        case _:
            use_console = _is_local_environment()

    if not use_console:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=True,
        pad_event=0,
        force_colors=False,
        repr_native_str=False,
        exception_formatter=structlog.dev.plain_traceback,
        sort_keys=True,
        event_key="message",
    )


def _pre_chain() -> list[structlog.types.Processor]:
    """Processors shared by structlog events and foreign stdlib records, up to rendering."""
    return [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.contextvars.merge_contextvars,
        structlog.processors.EventRenamer("message"),
        newrelic_error_processor,
    ]


def _build_formatter() -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        processor=_get_log_renderer(),
        foreign_pre_chain=_pre_chain(),
    )


def configure_logging() -> None:
    """(Re)configure structlog and the root handler from the current environment."""
    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.stdlib.filter_by_level,  # needs the level added above
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(_build_formatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
    root_logger.setLevel(level)

    if level <= logging.DEBUG:
        for name in _UVICORN_LOGGERS:
            uvicorn_logger = logging.getLogger(name)
            if uvicorn_logger.level > level:
                uvicorn_logger.setLevel(level)


configure_logging()


def get_logger(name: str, **kwargs: Any) -> structlog.BoundLogger:
    return structlog.get_logger(name, **kwargs)


def get_uvicorn_log_config() -> dict[str, Any]:
    """dictConfig for the health server: same formatter as the workers, warnings and above only."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"structlog": {"()": _build_formatter}},
        "handlers": {
            "stdout": {
                "formatter": "structlog",
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            name: {"handlers": ["stdout"], "level": "WARNING", "propagate": False}
            for name in _UVICORN_LOGGERS
        },
    }
