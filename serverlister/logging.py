"""Centralised logging configuration using structlog and contextvars."""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.contextvars import (
    bind_contextvars,
    clear_contextvars,
    unbind_contextvars,
)

from .config import settings


_LOGGING_CONFIGURED = False


def configure_logging(
    level: int | str | None = None, *, json_logs: bool | None = None
) -> None:
    """Initialise structlog once per process.

    Both the API and the worker call this at bootstrap; later calls are no-ops
    so library modules can safely request loggers at import time.
    """

    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    resolved_level = level if level is not None else settings.log_level
    if isinstance(resolved_level, str):
        resolved_level = logging.getLevelName(resolved_level.upper())
        if not isinstance(resolved_level, int):
            resolved_level = logging.INFO
    use_json = settings.log_json if json_logs is None else json_logs

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=resolved_level)
    # RQ logs through the stdlib; keep its verbosity aligned with ours.
    logging.getLogger("rq.worker").setLevel(resolved_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if use_json
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _LOGGING_CONFIGURED = True


def get_logger(name: str | None = None):
    """Return a structlog logger ensuring the configuration is ready."""

    configure_logging()
    return structlog.get_logger(name)


@contextmanager
def job_context(**values: Any) -> Iterator[None]:
    """Bind job-related context variables for the duration of the block."""

    bound = {key: value for key, value in values.items() if value is not None}
    if not bound:
        yield
        return
    configure_logging()
    bind_contextvars(**bound)
    try:
        yield
    finally:
        unbind_contextvars(*bound.keys())


def reset_context() -> None:
    """Remove all bound context variables, used at worker bootstrap."""

    configure_logging()
    clear_contextvars()


__all__ = ["configure_logging", "get_logger", "job_context", "reset_context"]
