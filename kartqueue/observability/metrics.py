"""Prometheus metrics utilities."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram

metrics_registry = CollectorRegistry()

REQUEST_COUNTER = Counter(
    "kartqueue_api_requests_total",
    "Total number of API requests handled",
    registry=metrics_registry,
)

ORDERS_ENQUEUED_COUNTER = Counter(
    "kartqueue_orders_enqueued_total",
    "Orders admitted to a case queue",
    registry=metrics_registry,
)

CAS_CONFLICT_COUNTER = Counter(
    "kartqueue_cas_conflicts_total",
    "Optimistic writes rejected because the record changed since it was read",
    registry=metrics_registry,
)

QUEUE_CONTENTION_COUNTER = Counter(
    "kartqueue_queue_contention_total",
    "Queue writes that exhausted their retry budget",
    registry=metrics_registry,
)

TRANSACTION_ATTEMPTS = Histogram(
    "kartqueue_transaction_attempts",
    "Attempts needed to commit an optimistic transaction",
    buckets=(1, 2, 3, 5, 8, 13, 25),
    registry=metrics_registry,
)

FULFILLMENT_COUNTER = Counter(
    "kartqueue_orders_fulfilled_total",
    "Orders granted their case",
    registry=metrics_registry,
)

DISPATCH_COUNTER = Counter(
    "kartqueue_orders_dispatched_total",
    "Orders assigned to a kart",
    registry=metrics_registry,
)

DISPATCH_FAILURE_COUNTER = Counter(
    "kartqueue_dispatch_failures_total",
    "Fulfilled orders for which no kart was available",
    registry=metrics_registry,
)

TRIGGER_FAILURE_COUNTER = Counter(
    "kartqueue_trigger_failures_total",
    "Trigger deliveries whose handler raised",
    labelnames=("source",),
    registry=metrics_registry,
)

NOTIFICATION_COUNTER = Counter(
    "kartqueue_notifications_total",
    "Push notifications handed off, by outcome",
    labelnames=("outcome",),
    registry=metrics_registry,
)


def record_notification(outcome: str) -> None:
    """Count a notification hand-off (``sent``, ``failed`` or ``skipped``)."""

    NOTIFICATION_COUNTER.labels(outcome=outcome).inc()
