"""High-level orchestration of the reservation and dispatch domain."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import structlog

from kartqueue.enterprise.config.settings import AppSettings, get_settings
from kartqueue.enterprise.core import Case, KartQueueError
from kartqueue.observability.metrics import TRIGGER_FAILURE_COUNTER
from kartqueue.persistence.store import DocumentStore
from kartqueue.services.catalog import CatalogService
from kartqueue.services.dispatcher import KartDispatcher
from kartqueue.services.lifecycle import FulfillmentResult, OrderLifecycle
from kartqueue.services.notifications import NotificationEmitter, PushPort, RecordingPushGateway
from kartqueue.services.orders import ReservationService
from kartqueue.services.queue import Admission, ReservationQueueManager
from kartqueue.services.triggers import TriggerEvent, TriggerRouter
from kartqueue.services.users import UserDirectory

logger = structlog.get_logger(__name__)


@dataclass
class CheckoutResult:
    admissions: List[Admission]
    fulfillments: List[FulfillmentResult]


class DispatchPlatform:
    """Wires the services together and plays the change feed for in-process callers.

    Writes that would fire a trigger in a deployment with a store change feed
    (a new queue entry, a case release) deliver the matching
    :class:`TriggerEvent` here right after they commit.
    """

    def __init__(
        self,
        store: DocumentStore,
        push: Optional[PushPort] = None,
        settings: Optional[AppSettings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.push = push or RecordingPushGateway()

        self.catalog = CatalogService(store, self.settings.grid)
        self.users = UserDirectory(store, self.settings.grid)
        self.queue = ReservationQueueManager(store, self.settings.queue)
        self.dispatcher = KartDispatcher(store, self.settings.grid)
        self.notifier = NotificationEmitter(store, self.push, self.settings.notifications)
        self.reservations = ReservationService(store, self.queue, self.catalog, self.users, self.notifier)
        self.lifecycle = OrderLifecycle(
            store,
            self.queue,
            self.dispatcher,
            self.users,
            self.notifier,
            self.settings.queue,
        )
        self.triggers = TriggerRouter(self.lifecycle)

    async def place_order(self, user_id: str) -> CheckoutResult:
        admissions = await self.reservations.place_order(user_id)
        return CheckoutResult(admissions=admissions, fulfillments=await self._queue_changed(admissions))

    async def reserve(self, case_id: str, user_id: str, pickup_location: Optional[str] = None) -> CheckoutResult:
        admission = await self.reservations.reserve(case_id, user_id, pickup_location)
        return CheckoutResult(admissions=[admission], fulfillments=await self._queue_changed([admission]))

    async def _queue_changed(self, admissions: List[Admission]) -> List[FulfillmentResult]:
        """Deliver the queue-changed trigger for each committed admission.

        The trigger is its own at-least-once handler: a failure there is logged
        and never turns a committed admission into a failed request.
        """

        fulfillments = []
        for admission in admissions:
            try:
                snapshot = await self.queue.snapshot(admission.case_id)
                result = await self.triggers.deliver(TriggerEvent.queue_changed(admission.case_id, snapshot))
            except KartQueueError as exc:
                TRIGGER_FAILURE_COUNTER.labels(source="in_process").inc()
                logger.error(
                    "queue_trigger_failed",
                    case_id=admission.case_id,
                    order_id=admission.order_id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                continue
            if result is not None:
                fulfillments.append(result)
        return fulfillments

    async def release_case(self, case_id: str, location: Optional[str] = None) -> tuple[Case, Optional[FulfillmentResult]]:
        case = await self.catalog.release_case(case_id, location)
        result = await self.triggers.deliver(TriggerEvent.availability_changed(case_id, True))
        return case, result

    async def deliver(self, event: TriggerEvent) -> Optional[FulfillmentResult]:
        return await self.triggers.deliver(event)
