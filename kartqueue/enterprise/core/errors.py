"""Error kinds raised by the queueing and dispatch core."""

from __future__ import annotations

from typing import Optional


class KartQueueError(Exception):
    """Base class for all domain errors."""


class Unauthenticated(KartQueueError):
    """Missing or invalid credential on a reservation request."""


class QueueContention(KartQueueError):
    """An optimistic write exhausted its retry budget. Safe to retry."""

    def __init__(self, key: str, attempts: int) -> None:
        super().__init__(f"Gave up writing {key!r} after {attempts} conflicting attempts")
        self.key = key
        self.attempts = attempts


class NoUnitAvailable(KartQueueError):
    """Dispatch found no kart to carry the order."""

    def __init__(self, order_id: str, location: Optional[str] = None) -> None:
        super().__init__(f"No kart available for order {order_id!r} at {location!r}")
        self.order_id = order_id
        self.location = location


class NotificationDeliveryFailure(KartQueueError):
    """The push hand-off failed. Always logged, never propagated past the emitter."""


class InvalidTransition(KartQueueError):
    """An order was asked to move to a state that does not follow its current one."""

    def __init__(self, order_id: str, current: str, target: str) -> None:
        super().__init__(f"Order {order_id!r} cannot move from {current} to {target}")
        self.order_id = order_id
        self.current = current
        self.target = target


class UnknownCase(KartQueueError):
    def __init__(self, case_id: str) -> None:
        super().__init__(f"Unknown case {case_id!r}")
        self.case_id = case_id


class UnknownKart(KartQueueError):
    def __init__(self, kart_id: str) -> None:
        super().__init__(f"Unknown kart {kart_id!r}")
        self.kart_id = kart_id


class UnknownOrder(KartQueueError):
    def __init__(self, order_id: str) -> None:
        super().__init__(f"Unknown order {order_id!r}")
        self.order_id = order_id


class ProfileIncomplete(KartQueueError):
    """The user has no registered pickup location."""


class InvalidLocation(KartQueueError, ValueError):
    """A sector name that does not exist on the configured grid."""


class StoreError(KartQueueError):
    """Non-conflict failure of the document store (connectivity, permissions, ...)."""
