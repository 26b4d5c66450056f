"""Order lifecycle: fulfillment of queue heads, dispatch, and the kart/user follow-ups.

An order moves ``queued -> fulfilled -> dispatched -> completed -> scanned``
and never back. The case's ``isAvailable`` flag is the fulfillment lock: it is
flipped to ``False`` with a compare-and-swap before the queue is touched, so a
re-delivered trigger finds the case unavailable and does nothing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import structlog

from kartqueue.enterprise.config.settings import QueueSettings, get_settings
from kartqueue.enterprise.core import (
    Case,
    CaseOrderRef,
    HistoryEntry,
    HistoryEventType,
    InvalidTransition,
    KartAssignment,
    NoUnitAvailable,
    Order,
    OrderStatus,
    QueueEntry,
    UnknownOrder,
)
from kartqueue.enterprise.core.models import utcnow
from kartqueue.observability.metrics import DISPATCH_FAILURE_COUNTER, FULFILLMENT_COUNTER
from kartqueue.observability.tracing import get_tracer
from kartqueue.persistence.store import ABORT, DocumentStore, run_transaction
from kartqueue.services.dispatcher import KartDispatcher
from kartqueue.services.keys import case_key, case_orders_key, kart_queue_key, order_key
from kartqueue.services.notifications import NotificationEmitter
from kartqueue.services.queue import ReservationQueueManager
from kartqueue.services.users import UserDirectory

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)


@dataclass
class FulfillmentResult:
    """Outcome of serving one queue head."""

    order: Order
    case: Case
    kart_id: Optional[str] = None
    dispatch_error: Optional[str] = None

    @property
    def dispatched(self) -> bool:
        return self.kart_id is not None


def _order_from_entry(case_id: str, entry: QueueEntry) -> Order:
    return Order(
        order_id=entry.order_id,
        case_id=case_id,
        user_id=entry.user_id,
        pickup_location=entry.pickup_location,
        queued_at=entry.enqueued_at,
    )


class OrderLifecycle:
    def __init__(
        self,
        store: DocumentStore,
        queue: ReservationQueueManager,
        dispatcher: KartDispatcher,
        users: UserDirectory,
        notifier: NotificationEmitter,
        settings: Optional[QueueSettings] = None,
    ) -> None:
        self.store = store
        self.queue = queue
        self.dispatcher = dispatcher
        self.users = users
        self.notifier = notifier
        self.settings = settings or get_settings().queue

    async def fulfill_next(self, case_id: str) -> Optional[FulfillmentResult]:
        """Grant the case to the head of its queue if the case is free.

        The queue head is only trusted once the case claim has committed;
        anything read before the claim may already have been served by a
        concurrent handler. Returns ``None`` when nothing was fulfilled: the
        case is unknown or unavailable, its queue is empty, or another handler
        claimed it first.
        """

        with tracer.start_as_current_span("lifecycle.fulfill_next") as span:
            span.set_attribute("kartqueue.case_id", case_id)

            for _ in range(self.settings.max_attempts):
                case = await self._available_case(case_id)
                if case is None:
                    return None
                if await self.queue.head(case_id) is None:
                    logger.debug("fulfill_skipped_empty", case_id=case_id)
                    return None

                if not await self._claim_case(case_id):
                    logger.info("fulfill_skipped_claimed", case_id=case_id)
                    return None

                head = await self._claimed_head(case_id)
                if head is not None:
                    span.set_attribute("kartqueue.order_id", head.order_id)
                    case = Case.from_document(await self.store.value(case_key(case_id)))
                    return await self._fulfill(case, head)

                # Nothing left to serve; hand the claim back, then look again in
                # case an entry arrived while its trigger saw the case claimed.
                await self._release_claim(case_id)
                logger.info("fulfill_claim_released", case_id=case_id)
                if await self.queue.head(case_id) is None:
                    return None

        logger.warning("fulfill_attempts_exhausted", case_id=case_id)
        return None

    async def _available_case(self, case_id: str) -> Optional[Case]:
        document = await self.store.value(case_key(case_id))
        if document is None:
            logger.warning("fulfill_unknown_case", case_id=case_id)
            return None
        case = Case.from_document(document)
        if not case.is_available:
            logger.debug("fulfill_skipped_unavailable", case_id=case_id)
            return None
        return case

    async def _claimed_head(self, case_id: str) -> Optional[QueueEntry]:
        """Return the first still-queued head, popping heads already past ``queued``.

        Only called while holding the case claim.
        """

        for _ in range(self.settings.max_attempts):
            head = await self.queue.head(case_id)
            if head is None:
                return None
            order = await self._load_order(case_id, head)
            if order.status is OrderStatus.QUEUED:
                return head
            # Left behind by a fulfillment that flipped the case but never popped.
            logger.warning(
                "stale_queue_head_recovered",
                case_id=case_id,
                order_id=order.order_id,
                status=order.status.value,
            )
            await self.queue.pop_and_shift(case_id, expected_order_id=head.order_id)
        return None

    async def _load_order(self, case_id: str, entry: QueueEntry) -> Order:
        document = await self.store.value(order_key(entry.user_id, entry.order_id))
        if document is None:
            return _order_from_entry(case_id, entry)
        return Order.from_document(document)

    async def _claim_case(self, case_id: str) -> bool:
        return await self._flip_availability(case_id, claimed=True)

    async def _release_claim(self, case_id: str) -> bool:
        return await self._flip_availability(case_id, claimed=False)

    async def _flip_availability(self, case_id: str, claimed: bool) -> bool:
        """CAS ``isAvailable`` from ``claimed`` to ``not claimed``; aborts if already flipped."""

        def flip(current: Any) -> Any:
            if not current or current.get("isAvailable", True) is not claimed:
                return ABORT
            current["isAvailable"] = not claimed
            return current

        result = await run_transaction(
            self.store,
            case_key(case_id),
            flip,
            max_attempts=self.settings.max_attempts,
            backoff_seconds=self.settings.backoff_seconds,
        )
        return result.committed

    async def _fulfill(self, case: Case, head: QueueEntry) -> FulfillmentResult:
        now = utcnow()
        order = await self._update_order(
            head.user_id,
            head.order_id,
            target=OrderStatus.FULFILLED,
            default=_order_from_entry(case.id, head),
            at=now,
            kart_received_order=False,
            completed_by_kart=False,
            scanned_by_user=False,
        )
        await self.store.set(
            case_orders_key(case.id, order.order_id),
            CaseOrderRef(user_id=order.user_id, fulfilled_at=now).to_document(),
        )
        FULFILLMENT_COUNTER.inc()
        logger.info("order_fulfilled", case_id=case.id, order_id=order.order_id, user_id=order.user_id)
        await self._history(order, HistoryEventType.ORDER_FULFILLED, f"Your order for {case.name} has been fulfilled!")
        await self.notifier.order_fulfilled(order.user_id, case)

        popped = await self.queue.pop_and_shift(case.id, expected_order_id=order.order_id)
        if popped is None:
            logger.warning("queue_head_moved", case_id=case.id, order_id=order.order_id)

        try:
            record = await self.dispatcher.dispatch(order, case.last_location)
        except NoUnitAvailable as exc:
            DISPATCH_FAILURE_COUNTER.inc()
            logger.error("dispatch_failed", case_id=case.id, order_id=order.order_id, error=str(exc))
            order = await self._update_order(order.user_id, order.order_id, dispatch_error=str(exc))
            await self._history(
                order,
                HistoryEventType.DISPATCH_FAILED,
                "No kart is available right now; your order is waiting for one.",
            )
            return FulfillmentResult(order=order, case=case, dispatch_error=str(exc))

        order = await self._update_order(
            order.user_id,
            order.order_id,
            target=OrderStatus.DISPATCHED,
            at=record.assigned_at,
            kart_id=record.kart_id,
            dispatch_error=None,
        )
        await self._history(
            order,
            HistoryEventType.ORDER_DISPATCHED,
            "Your order has been sent to a kart for processing",
            kart_id=record.kart_id,
        )
        await self.notifier.order_dispatched(order.user_id, case, record.kart_id)
        return FulfillmentResult(order=order, case=case, kart_id=record.kart_id)

    async def _update_order(
        self,
        user_id: str,
        order_id: str,
        *,
        target: Optional[OrderStatus] = None,
        require: Optional[OrderStatus] = None,
        default: Optional[Order] = None,
        at: Optional[datetime] = None,
        **fields: Any,
    ) -> Order:
        """Apply a transition and field updates to the order record in one transaction."""

        updated: Optional[Order] = None

        def apply(current: Any) -> Any:
            nonlocal updated
            if current is None:
                if default is None:
                    raise UnknownOrder(order_id)
                order = default.model_copy(deep=True)
            else:
                order = Order.from_document(current)
            if require is not None and order.status is not require:
                raise InvalidTransition(order_id, order.status.value, require.value)
            if target is not None:
                order.advance(target, at)
            for name, value in fields.items():
                setattr(order, name, value)
            updated = order
            return order.to_document()

        await run_transaction(
            self.store,
            order_key(user_id, order_id),
            apply,
            max_attempts=self.settings.max_attempts,
            backoff_seconds=self.settings.backoff_seconds,
        )
        assert updated is not None
        return updated

    async def _history(
        self,
        order: Order,
        event_type: HistoryEventType,
        info: str,
        kart_id: Optional[str] = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            info=info,
            case_id=order.case_id,
            event_type=event_type,
            order_id=order.order_id,
            kart_id=kart_id,
        )
        return await self.users.append_history(order.user_id, entry)

    async def _assignment(self, kart_id: str, order_id: str) -> KartAssignment:
        document = await self.store.value(kart_queue_key(kart_id, order_id))
        if document is None:
            raise UnknownOrder(order_id)
        return KartAssignment.from_document(document)

    async def mark_received_by_kart(self, kart_id: str, order_id: str) -> Order:
        """The assigned kart has loaded the case."""

        assignment = await self._assignment(kart_id, order_id)
        with tracer.start_as_current_span("lifecycle.received"):
            order = await self._update_order(
                assignment.user_id,
                order_id,
                require=OrderStatus.DISPATCHED,
                kart_received_order=True,
            )
        logger.info("order_received_by_kart", kart_id=kart_id, order_id=order_id)
        await self._history(order, HistoryEventType.ORDER_RECEIVED, f"Kart {kart_id} has picked up your order", kart_id)
        return order

    async def mark_completed_by_kart(self, kart_id: str, order_id: str) -> Order:
        """The assigned kart has delivered the case to the pickup location."""

        assignment = await self._assignment(kart_id, order_id)
        with tracer.start_as_current_span("lifecycle.completed"):
            order = await self._update_order(
                assignment.user_id,
                order_id,
                target=OrderStatus.COMPLETED,
                kart_received_order=True,
                completed_by_kart=True,
            )
        logger.info("order_completed_by_kart", kart_id=kart_id, order_id=order_id)
        await self._history(
            order,
            HistoryEventType.ORDER_COMPLETED,
            f"Your order has arrived at {order.pickup_location}",
            kart_id,
        )
        return order

    async def mark_scanned(self, user_id: str, order_id: str) -> Order:
        """The requesting user has scanned the delivered case. Terminal."""

        with tracer.start_as_current_span("lifecycle.scanned"):
            order = await self._update_order(
                user_id,
                order_id,
                target=OrderStatus.SCANNED,
                scanned_by_user=True,
            )

        def flag(current: Any) -> Any:
            if current is None:
                return ABORT
            current["scanned"] = True
            return current

        await run_transaction(self.store, case_orders_key(order.case_id, order_id), flag)
        logger.info("order_scanned", user_id=user_id, order_id=order_id)
        await self._history(order, HistoryEventType.ORDER_SCANNED, "You have picked up your order. Enjoy!")
        return order
