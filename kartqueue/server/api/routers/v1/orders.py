"""Reservation requests and order scanning."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from kartqueue.server.api.errors import domain_errors
from kartqueue.server.api.schemas.orders import (
    AdmissionSchema,
    FulfillmentSchema,
    OrderPlacedSchema,
    OrderSchema,
)
from kartqueue.server.dependencies import get_current_user, get_platform
from kartqueue.services import DispatchPlatform

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderPlacedSchema, status_code=status.HTTP_202_ACCEPTED)
async def place_order(
    user_id: str = Depends(get_current_user),
    platform: DispatchPlatform = Depends(get_platform),
) -> OrderPlacedSchema:
    """Queue every case in the caller's cart."""

    with domain_errors():
        result = await platform.place_order(user_id)
    return OrderPlacedSchema(
        orders=[AdmissionSchema.from_admission(admission) for admission in result.admissions],
        fulfilled=[FulfillmentSchema.from_result(item) for item in result.fulfillments],
    )


@router.post("/{order_id}/scan", response_model=OrderSchema)
async def scan_order(
    order_id: str,
    user_id: str = Depends(get_current_user),
    platform: DispatchPlatform = Depends(get_platform),
) -> OrderSchema:
    with domain_errors():
        order = await platform.lifecycle.mark_scanned(user_id, order_id)
    return OrderSchema.from_domain(order)
