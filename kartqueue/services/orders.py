"""Reservation requests: turning a user's cart into queue admissions."""

from __future__ import annotations

from typing import List, Optional

import structlog

from kartqueue.enterprise.core import (
    Case,
    HistoryEntry,
    HistoryEventType,
    Order,
    ProfileIncomplete,
    StoreError,
)
from kartqueue.persistence.store import DocumentStore
from kartqueue.services.catalog import CatalogService
from kartqueue.services.keys import order_key
from kartqueue.services.notifications import NotificationEmitter
from kartqueue.services.queue import Admission, ReservationQueueManager
from kartqueue.services.users import UserDirectory

logger = structlog.get_logger(__name__)


def admission_message(position: int) -> str:
    if position > 1:
        return f"Order Created! You are #{position} in the queue"
    return "Order Created! Your order is being processed now"


class ReservationService:
    """Admits users into case queues and records the side effects of admission."""

    def __init__(
        self,
        store: DocumentStore,
        queue: ReservationQueueManager,
        catalog: CatalogService,
        users: UserDirectory,
        notifier: NotificationEmitter,
    ) -> None:
        self.store = store
        self.queue = queue
        self.catalog = catalog
        self.users = users
        self.notifier = notifier

    async def place_order(self, user_id: str) -> List[Admission]:
        """Reserve every case in the user's cart for their registered pickup location.

        Every cart case is checked before anything is queued. If an enqueue
        fails part way, the admissions already committed keep their positions
        and their cart entries are gone, so retrying only queues the rest.
        """

        profile = await self.users.profile(user_id)
        if not profile.pickup_location:
            raise ProfileIncomplete(f"User {user_id!r} has no pickup location")

        case_ids = await self.users.cart(user_id)
        cases = [await self.catalog.get_case(case_id) for case_id in case_ids]

        admissions = []
        for case in cases:
            admissions.append(await self._admit(case, user_id, profile.pickup_location))
        logger.info("cart_checked_out", user_id=user_id, orders=len(admissions))
        return admissions

    async def reserve(self, case_id: str, user_id: str, pickup_location: Optional[str] = None) -> Admission:
        """Queue a single case, falling back to the profile's pickup location."""

        case = await self.catalog.get_case(case_id)
        if pickup_location is None:
            pickup_location = (await self.users.profile(user_id)).pickup_location
            if not pickup_location:
                raise ProfileIncomplete(f"User {user_id!r} has no pickup location")
        else:
            pickup_location = self.catalog.normalize_sector(pickup_location)
        return await self._admit(case, user_id, pickup_location)

    async def _admit(self, case: Case, user_id: str, pickup_location: str) -> Admission:
        admission = await self.queue.enqueue(case.id, user_id, pickup_location)
        try:
            await self._record_admission(case, admission)
        except StoreError as exc:
            logger.error(
                "admission_side_effects_failed",
                case_id=case.id,
                order_id=admission.order_id,
                error=str(exc),
            )
        return admission

    async def _record_admission(self, case: Case, admission: Admission) -> None:
        entry = admission.entry
        order = Order(
            order_id=entry.order_id,
            case_id=case.id,
            user_id=entry.user_id,
            pickup_location=entry.pickup_location,
            queue_position=admission.position,
            queued_at=entry.enqueued_at,
        )
        # Create-only: a fulfillment that raced ahead of us already wrote a newer record.
        created = await self.store.compare_and_set(order_key(entry.user_id, order.order_id), 0, order.to_document())
        if not created:
            logger.info("order_record_exists", order_id=order.order_id)

        await self.users.append_history(
            entry.user_id,
            HistoryEntry(
                info=admission_message(admission.position),
                case_id=case.id,
                event_type=HistoryEventType.ORDER_QUEUED,
                order_id=order.order_id,
                queue_position=admission.position,
            ),
        )
        await self.notifier.order_queued(entry.user_id, case, admission.position)
        await self.users.remove_from_cart(entry.user_id, case.id)
