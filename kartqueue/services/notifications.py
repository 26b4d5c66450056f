"""User-facing push notifications for lifecycle transitions.

The emitter only composes payloads and hands them to a :class:`PushPort`.
Delivery belongs to an external push service; a failed hand-off is logged
and counted but never blocks or rolls back the transition that caused it.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import List, Optional

import structlog

from kartqueue.enterprise.config.settings import NotificationSettings, get_settings
from kartqueue.enterprise.core import Case, NotificationDeliveryFailure, NotificationPayload, UserProfile
from kartqueue.observability.metrics import record_notification
from kartqueue.persistence.store import DocumentStore
from kartqueue.services.keys import user_key
from kartqueue.services.messaging import MessageBus, MessageEnvelope

logger = structlog.get_logger(__name__)


class PushPort(ABC):
    """Abstract interface for push notification dispatch adapters."""

    @abstractmethod
    async def send(self, device_token: str, payload: NotificationPayload) -> dict:
        """Send a push notification.

        Returns:
            dict with keys: message_id, status ("sent" or "failed"), error (optional)
        """
        ...


class RecordingPushGateway(PushPort):
    """Push adapter that records notifications in memory."""

    def __init__(self) -> None:
        self.sent: List[dict] = []
        self.should_succeed = True
        self.failure_reason = "Push delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Push delivery failed") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    async def send(self, device_token: str, payload: NotificationPayload) -> dict:
        if not self.should_succeed:
            return {"message_id": None, "status": "failed", "error": self.failure_reason}

        message_id = f"push-{uuid.uuid4().hex[:12]}"
        self.sent.append({"message_id": message_id, "device_token": device_token, **payload.model_dump()})
        return {"message_id": message_id, "status": "sent"}

    def reset(self) -> None:
        self.sent.clear()
        self.should_succeed = True
        self.failure_reason = "Push delivery failed"


class BusPushGateway(PushPort):
    """Publishes notifications on the message bus for the external push worker."""

    def __init__(self, bus: MessageBus, topic: str) -> None:
        self.bus = bus
        self.topic = topic

    async def send(self, device_token: str, payload: NotificationPayload) -> dict:
        message_id = f"push-{uuid.uuid4().hex[:12]}"
        await self.bus.publish(
            MessageEnvelope(
                topic=self.topic,
                payload={
                    "message_id": message_id,
                    "device_token": device_token,
                    "notification": payload.model_dump(exclude_none=True),
                },
            )
        )
        return {"message_id": message_id, "status": "sent"}


def queued_payload(case: Case, position: int, icon: Optional[str] = None) -> NotificationPayload:
    if position > 1:
        body = f"You are #{position} in line for {case.name}."
    else:
        body = f"Your order for {case.name} is being processed now."
    return NotificationPayload(title="Order placed", body=body, icon=icon)


def fulfilled_payload(case: Case, icon: Optional[str] = None) -> NotificationPayload:
    return NotificationPayload(
        title="Order fulfilled",
        body=f"{case.name} has been reserved for you.",
        icon=icon,
    )


def dispatched_payload(case: Case, kart_id: str, icon: Optional[str] = None) -> NotificationPayload:
    return NotificationPayload(
        title="On its way",
        body=f"{case.name} has been sent to kart {kart_id} for delivery.",
        icon=icon,
    )


class NotificationEmitter:
    """Looks up the user's device token and hands payloads to the push port."""

    def __init__(
        self,
        store: DocumentStore,
        push: PushPort,
        settings: Optional[NotificationSettings] = None,
    ) -> None:
        self.store = store
        self.push = push
        self.settings = settings or get_settings().notifications

    async def emit(self, user_id: str, payload: NotificationPayload) -> bool:
        """Return ``True`` when the push service accepted the notification."""

        if not self.settings.enabled:
            return False
        if payload.icon is None and self.settings.icon:
            payload = payload.model_copy(update={"icon": self.settings.icon})

        try:
            document = await self.store.value(user_key(user_id))
            token = UserProfile.from_document(document).device_token if document else None
            if not token:
                record_notification("skipped")
                return False

            result = await self.push.send(token, payload)
            if result.get("status") != "sent":
                raise NotificationDeliveryFailure(result.get("error") or "Unknown push error")
        except Exception as exc:
            record_notification("failed")
            logger.warning("notification_failed", user_id=user_id, title=payload.title, error=str(exc))
            return False

        record_notification("sent")
        return True

    async def order_queued(self, user_id: str, case: Case, position: int) -> bool:
        return await self.emit(user_id, queued_payload(case, position))

    async def order_fulfilled(self, user_id: str, case: Case) -> bool:
        return await self.emit(user_id, fulfilled_payload(case))

    async def order_dispatched(self, user_id: str, case: Case, kart_id: str) -> bool:
        return await self.emit(user_id, dispatched_payload(case, kart_id))
