"""Pydantic schemas for order, cart and user history endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from kartqueue.enterprise.core import HistoryEntry, Order, UserProfile
from kartqueue.services import Admission, FulfillmentResult


class AdmissionSchema(BaseModel):
    order_id: str
    case_id: str
    position: int
    pickup_location: str

    @classmethod
    def from_admission(cls, admission: Admission) -> "AdmissionSchema":
        return cls(
            order_id=admission.order_id,
            case_id=admission.case_id,
            position=admission.position,
            pickup_location=admission.entry.pickup_location,
        )


class FulfillmentSchema(BaseModel):
    order_id: str
    case_id: str
    user_id: str
    status: str
    kart_id: Optional[str]
    dispatch_error: Optional[str]

    @classmethod
    def from_result(cls, result: FulfillmentResult) -> "FulfillmentSchema":
        return cls(
            order_id=result.order.order_id,
            case_id=result.case.id,
            user_id=result.order.user_id,
            status=result.order.status.value,
            kart_id=result.kart_id,
            dispatch_error=result.dispatch_error,
        )


class OrderPlacedSchema(BaseModel):
    type: str = "success"
    message: str = "Added order to queue"
    orders: List[AdmissionSchema]
    fulfilled: List[FulfillmentSchema] = []


class OrderSchema(BaseModel):
    order_id: str
    case_id: str
    user_id: str
    pickup_location: str
    status: str
    queue_position: Optional[int]
    queued_at: datetime
    fulfilled_at: Optional[datetime]
    dispatched_at: Optional[datetime]
    completed_at: Optional[datetime]
    scanned_at: Optional[datetime]
    kart_id: Optional[str]
    kart_received_order: bool
    completed_by_kart: bool
    scanned_by_user: bool
    dispatch_error: Optional[str]

    @classmethod
    def from_domain(cls, order: Order) -> "OrderSchema":
        return cls(**order.model_dump(mode="json"))


class HistoryEntrySchema(BaseModel):
    entry_id: str
    timestamp: datetime
    info: str
    case_id: str
    event_type: str
    order_id: Optional[str]
    queue_position: Optional[int]
    kart_id: Optional[str]

    @classmethod
    def from_domain(cls, entry: HistoryEntry) -> "HistoryEntrySchema":
        return cls(**entry.model_dump(mode="json"))


class ProfileUpdateSchema(BaseModel):
    device_token: Optional[str] = None
    pickup_location: Optional[str] = None


class ProfileSchema(BaseModel):
    user_id: str
    device_token: Optional[str]
    pickup_location: Optional[str]

    @classmethod
    def from_domain(cls, profile: UserProfile) -> "ProfileSchema":
        return cls(
            user_id=profile.user_id,
            device_token=profile.device_token,
            pickup_location=profile.pickup_location,
        )


class CartSchema(BaseModel):
    user_id: str
    case_ids: List[str]
