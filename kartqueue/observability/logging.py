"""Structured logging for queue, dispatch and trigger events."""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Optional

import structlog

from kartqueue.enterprise.config.settings import LoggingSettings

_QUIET_LOGGERS = ("aio_pika", "aiormq", "paho", "grpc", "uvicorn.access")


def _processors(json_output: bool) -> list[structlog.types.Processor]:
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.dict_tracebacks if json_output else structlog.processors.format_exc_info,
        renderer,
    ]


def configure_logging(settings: LoggingSettings, environment: Optional[str] = None) -> None:
    """Route stdlib and structlog output to stdout at the configured level."""

    level = logging.getLevelName(settings.level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=_processors(settings.json),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.clear_contextvars()
    if environment:
        structlog.contextvars.bind_contextvars(environment=environment)


@contextmanager
def event_context(**context: Any) -> Iterator[None]:
    """Bind ``context`` to every log line emitted while handling one event."""

    with structlog.contextvars.bound_contextvars(**context):
        yield
