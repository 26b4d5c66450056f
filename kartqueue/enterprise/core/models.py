"""Domain models for the kart dispatch platform.

Every persisted entity is a :class:`StoreDocument`: a pydantic model that
serialises to the camelCase JSON layout kept in the document store
(``isAvailable``, ``queueCount``, ``kartReceivedOrder``, ...). The models are
framework-agnostic so they can be reused by services, APIs and persistence.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt
from pydantic.alias_generators import to_camel

from .errors import InvalidTransition


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_push_key() -> str:
    """Unique identifier for orders and history entries."""

    return str(uuid.uuid4())


class GridCell(BaseModel):
    """Discrete coordinate of a sector within the grid."""

    model_config = ConfigDict(frozen=True)

    x: NonNegativeInt = Field(..., description="X coordinate (column index).")
    y: NonNegativeInt = Field(..., description="Y coordinate (row index).")

    @classmethod
    def from_tuple(cls, position: Sequence[int]) -> "GridCell":
        return cls(x=int(position[0]), y=int(position[1]))

    def to_tuple(self) -> tuple[int, int]:
        return (self.x, self.y)


class StoreDocument(BaseModel):
    """Base for models persisted in the document store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, data: Mapping[str, Any]):
        return cls.model_validate(dict(data))


class Case(StoreDocument):
    """A scarce physical item that one user at a time can reserve."""

    id: str
    name: str
    is_available: bool = True
    last_location: str = Field(..., description="Sector name the case was last seen in.")
    description: Optional[str] = None
    image_url: Optional[str] = None


class QueueEntry(StoreDocument):
    """One user's pending claim on a case."""

    order_id: str = Field(default_factory=new_push_key)
    user_id: str
    pickup_location: str
    enqueued_at: datetime = Field(default_factory=utcnow)


class CaseQueue(StoreDocument):
    """FIFO admission queue of a case, keyed by contiguous 1-based position."""

    queue: Dict[int, QueueEntry] = Field(default_factory=dict)
    queue_count: NonNegativeInt = 0

    @property
    def head(self) -> Optional[QueueEntry]:
        return self.queue.get(1)

    def append(self, entry: QueueEntry) -> int:
        position = self.queue_count + 1
        self.queue[position] = entry
        self.queue_count = position
        return position

    def pop_front(self) -> Optional[QueueEntry]:
        """Remove position 1 and shift every later entry down by one."""

        if self.queue_count == 0:
            return None
        head = self.queue[1]
        for position in range(1, self.queue_count):
            self.queue[position] = self.queue[position + 1]
        del self.queue[self.queue_count]
        self.queue_count -= 1
        return head

    def entries(self) -> List[QueueEntry]:
        return [self.queue[position] for position in sorted(self.queue)]

    def position_of(self, order_id: str) -> Optional[int]:
        for position, entry in self.queue.items():
            if entry.order_id == order_id:
                return position
        return None

    def is_contiguous(self) -> bool:
        return set(self.queue) == set(range(1, self.queue_count + 1))


class OrderStatus(str, enum.Enum):
    """Lifecycle states for an order."""

    QUEUED = "queued"
    FULFILLED = "fulfilled"
    DISPATCHED = "dispatched"
    COMPLETED = "completed"
    SCANNED = "scanned"


ORDER_TRANSITIONS: Dict[OrderStatus, OrderStatus] = {
    OrderStatus.QUEUED: OrderStatus.FULFILLED,
    OrderStatus.FULFILLED: OrderStatus.DISPATCHED,
    OrderStatus.DISPATCHED: OrderStatus.COMPLETED,
    OrderStatus.COMPLETED: OrderStatus.SCANNED,
}


class Order(StoreDocument):
    """A user's claim on a case, from admission to the final scan."""

    order_id: str
    case_id: str
    user_id: str
    pickup_location: str
    status: OrderStatus = OrderStatus.QUEUED
    queue_position: Optional[PositiveInt] = None
    queued_at: datetime = Field(default_factory=utcnow)
    fulfilled_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    scanned_at: Optional[datetime] = None
    kart_id: Optional[str] = None
    kart_received_order: bool = False
    completed_by_kart: bool = False
    scanned_by_user: bool = False
    dispatch_error: Optional[str] = None

    @property
    def outstanding(self) -> bool:
        """``True`` while the order holds its case but has not been completed."""

        return self.status in {OrderStatus.FULFILLED, OrderStatus.DISPATCHED}

    def can_advance_to(self, target: OrderStatus) -> bool:
        return ORDER_TRANSITIONS.get(self.status) == target

    def advance(self, target: OrderStatus, at: Optional[datetime] = None) -> None:
        if not self.can_advance_to(target):
            raise InvalidTransition(self.order_id, self.status.value, target.value)
        self.status = target
        setattr(self, f"{target.value}_at", at or utcnow())


class CaseOrderRef(StoreDocument):
    """Index entry of a fulfilled order under its case."""

    user_id: str
    fulfilled_at: datetime = Field(default_factory=utcnow)
    scanned: bool = False


class Kart(StoreDocument):
    """Mobile delivery unit; only its location is read by the dispatcher."""

    id: str
    current_location: str
    name: Optional[str] = None


class KartAssignment(StoreDocument):
    """Entry of a kart's work queue."""

    order_id: str
    user_id: str
    case_id: str
    pickup_location: str
    assigned_at: datetime = Field(default_factory=utcnow)


class UserProfile(StoreDocument):
    user_id: str
    device_token: Optional[str] = None
    pickup_location: Optional[str] = None


class HistoryEventType(str, enum.Enum):
    ORDER_QUEUED = "order_queued"
    ORDER_FULFILLED = "order_fulfilled"
    ORDER_DISPATCHED = "order_dispatched"
    DISPATCH_FAILED = "dispatch_failed"
    ORDER_RECEIVED = "order_received"
    ORDER_COMPLETED = "order_completed"
    ORDER_SCANNED = "order_scanned"


class HistoryEntry(StoreDocument):
    """Append-only record of a lifecycle-visible transition."""

    entry_id: str = Field(default_factory=new_push_key)
    timestamp: datetime = Field(default_factory=utcnow)
    info: str
    case_id: str
    event_type: HistoryEventType
    order_id: Optional[str] = None
    queue_position: Optional[PositiveInt] = None
    kart_id: Optional[str] = None


class NotificationPayload(BaseModel):
    """Message handed to the external push-delivery service."""

    title: str
    body: str
    icon: Optional[str] = None
