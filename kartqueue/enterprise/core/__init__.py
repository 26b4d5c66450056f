"""Core domain package for the kart dispatch platform."""

from .errors import (
    InvalidLocation,
    InvalidTransition,
    KartQueueError,
    NoUnitAvailable,
    NotificationDeliveryFailure,
    ProfileIncomplete,
    QueueContention,
    StoreError,
    Unauthenticated,
    UnknownCase,
    UnknownKart,
    UnknownOrder,
)
from .models import (
    Case,
    CaseOrderRef,
    CaseQueue,
    GridCell,
    HistoryEntry,
    HistoryEventType,
    Kart,
    KartAssignment,
    NotificationPayload,
    Order,
    OrderStatus,
    QueueEntry,
    UserProfile,
)

__all__ = [
    "Case",
    "CaseOrderRef",
    "CaseQueue",
    "GridCell",
    "HistoryEntry",
    "HistoryEventType",
    "Kart",
    "KartAssignment",
    "NotificationPayload",
    "Order",
    "OrderStatus",
    "QueueEntry",
    "UserProfile",
    "KartQueueError",
    "Unauthenticated",
    "QueueContention",
    "NoUnitAvailable",
    "NotificationDeliveryFailure",
    "InvalidTransition",
    "UnknownCase",
    "UnknownKart",
    "UnknownOrder",
    "ProfileIncomplete",
    "InvalidLocation",
    "StoreError",
]
