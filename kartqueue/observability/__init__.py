"""Observability utilities for structured logging, metrics, and tracing."""

from .logging import configure_logging, event_context
from .metrics import metrics_registry, record_notification
from .tracing import configure_tracer, get_tracer

__all__ = [
    "configure_logging",
    "configure_tracer",
    "event_context",
    "get_tracer",
    "metrics_registry",
    "record_notification",
]
