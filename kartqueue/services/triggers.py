"""Change-event routing into the order lifecycle.

The store's change feed (or the in-process callers that emulate it) delivers
a :class:`TriggerEvent` whenever a case's availability flips or its queue
changes. Delivery is at-least-once; the lifecycle's fulfillment lock makes
duplicate deliveries harmless.
"""

from __future__ import annotations

import enum
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from kartqueue.enterprise.core import CaseQueue
from kartqueue.enterprise.core.models import new_push_key
from kartqueue.observability.logging import event_context
from kartqueue.services.lifecycle import FulfillmentResult, OrderLifecycle
from kartqueue.services.messaging import MessageBus, MessageEnvelope

logger = structlog.get_logger(__name__)


class TriggerKind(str, enum.Enum):
    CASE_AVAILABILITY_CHANGED = "case_availability_changed"
    CASE_QUEUE_CHANGED = "case_queue_changed"


class TriggerEvent(BaseModel):
    kind: TriggerKind
    case_id: str
    is_available: Optional[bool] = None
    queue: Optional[Dict[str, Any]] = Field(
        default=None,
        description="New queue contents keyed by position; omitted when unknown.",
    )
    event_id: str = Field(default_factory=new_push_key)

    @classmethod
    def availability_changed(cls, case_id: str, is_available: bool) -> "TriggerEvent":
        return cls(kind=TriggerKind.CASE_AVAILABILITY_CHANGED, case_id=case_id, is_available=is_available)

    @classmethod
    def queue_changed(cls, case_id: str, queue: Optional[CaseQueue] = None) -> "TriggerEvent":
        contents = None
        if queue is not None:
            contents = {str(position): entry.to_document() for position, entry in queue.queue.items()}
        return cls(kind=TriggerKind.CASE_QUEUE_CHANGED, case_id=case_id, queue=contents)


Handler = Callable[[TriggerEvent], Awaitable[Optional[FulfillmentResult]]]


class TriggerRouter:
    """Routes change events to the lifecycle by kind."""

    def __init__(self, lifecycle: OrderLifecycle) -> None:
        self.lifecycle = lifecycle
        self._handlers: Dict[TriggerKind, Handler] = {
            TriggerKind.CASE_AVAILABILITY_CHANGED: self._on_availability_changed,
            TriggerKind.CASE_QUEUE_CHANGED: self._on_queue_changed,
        }

    async def deliver(self, event: TriggerEvent) -> Optional[FulfillmentResult]:
        with event_context(event_id=event.event_id, case_id=event.case_id, trigger=event.kind.value):
            handler = self._handlers[event.kind]
            result = await handler(event)
            logger.info("trigger_handled", fulfilled=result is not None)
            return result

    async def _on_availability_changed(self, event: TriggerEvent) -> Optional[FulfillmentResult]:
        if event.is_available is False:
            return None
        return await self.lifecycle.fulfill_next(event.case_id)

    async def _on_queue_changed(self, event: TriggerEvent) -> Optional[FulfillmentResult]:
        if event.queue is not None and not event.queue:
            return None
        return await self.lifecycle.fulfill_next(event.case_id)

    async def handle_message(self, payload: dict) -> None:
        """Bus subscriber entry point."""

        try:
            event = TriggerEvent.model_validate(payload)
        except ValidationError as exc:
            logger.warning("trigger_payload_invalid", errors=exc.errors(include_url=False))
            return
        await self.deliver(event)

    async def bind(self, bus: MessageBus, topic: str) -> None:
        await bus.subscribe(topic, self.handle_message)


async def publish_trigger(bus: MessageBus, topic: str, event: TriggerEvent) -> None:
    await bus.publish(MessageEnvelope(topic=topic, payload=event.model_dump(mode="json")))
