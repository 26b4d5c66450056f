"""Pydantic schemas for case and kart endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from kartqueue.enterprise.core import Case, CaseQueue, Kart, KartAssignment

from .orders import FulfillmentSchema


class CaseCreateSchema(BaseModel):
    id: str
    name: str
    last_location: str
    is_available: bool = True
    description: Optional[str] = None
    image_url: Optional[str] = None

    def to_domain(self) -> Case:
        return Case(**self.model_dump())


class CaseSchema(CaseCreateSchema):
    @classmethod
    def from_domain(cls, case: Case) -> "CaseSchema":
        return cls(**case.model_dump())


class QueueEntrySchema(BaseModel):
    position: int
    order_id: str
    user_id: str
    pickup_location: str
    enqueued_at: datetime


class CaseQueueSchema(BaseModel):
    case_id: str
    queue_count: int
    entries: List[QueueEntrySchema]

    @classmethod
    def from_queue(cls, case_id: str, queue: CaseQueue) -> "CaseQueueSchema":
        return cls(
            case_id=case_id,
            queue_count=queue.queue_count,
            entries=[
                QueueEntrySchema(
                    position=position,
                    order_id=entry.order_id,
                    user_id=entry.user_id,
                    pickup_location=entry.pickup_location,
                    enqueued_at=entry.enqueued_at,
                )
                for position, entry in sorted(queue.queue.items())
            ],
        )


class ReleaseSchema(BaseModel):
    location: Optional[str] = None


class ReleaseResultSchema(BaseModel):
    case: CaseSchema
    fulfilled: Optional[FulfillmentSchema]


class KartSchema(BaseModel):
    id: str
    current_location: str
    name: Optional[str] = None

    def to_domain(self) -> Kart:
        return Kart(**self.model_dump())

    @classmethod
    def from_domain(cls, kart: Kart) -> "KartSchema":
        return cls(**kart.model_dump())


class KartMoveSchema(BaseModel):
    location: str


class KartAssignmentSchema(BaseModel):
    order_id: str
    user_id: str
    case_id: str
    pickup_location: str
    assigned_at: datetime

    @classmethod
    def from_domain(cls, assignment: KartAssignment) -> "KartAssignmentSchema":
        return cls(**assignment.model_dump())
