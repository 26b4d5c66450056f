"""Kart registration and the kart-side order acknowledgements."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from kartqueue.server.api.errors import domain_errors
from kartqueue.server.api.schemas.catalog import KartAssignmentSchema, KartMoveSchema, KartSchema
from kartqueue.server.api.schemas.orders import OrderSchema
from kartqueue.server.dependencies import get_platform
from kartqueue.services import DispatchPlatform

router = APIRouter(prefix="/karts", tags=["karts"])


@router.get("", response_model=List[KartSchema])
async def list_karts(platform: DispatchPlatform = Depends(get_platform)) -> List[KartSchema]:
    return [KartSchema.from_domain(kart) for kart in await platform.catalog.karts()]


@router.post("", response_model=KartSchema, status_code=status.HTTP_201_CREATED)
async def register_kart(payload: KartSchema, platform: DispatchPlatform = Depends(get_platform)) -> KartSchema:
    with domain_errors():
        kart = await platform.catalog.register_kart(payload.to_domain())
    return KartSchema.from_domain(kart)


@router.put("/{kart_id}/location", response_model=KartSchema)
async def move_kart(
    kart_id: str,
    payload: KartMoveSchema,
    platform: DispatchPlatform = Depends(get_platform),
) -> KartSchema:
    with domain_errors():
        kart = await platform.catalog.move_kart(kart_id, payload.location)
    return KartSchema.from_domain(kart)


@router.get("/{kart_id}/queue", response_model=List[KartAssignmentSchema])
async def kart_queue(kart_id: str, platform: DispatchPlatform = Depends(get_platform)) -> List[KartAssignmentSchema]:
    with domain_errors():
        await platform.catalog.get_kart(kart_id)
    assignments = await platform.dispatcher.work_queue(kart_id)
    return [KartAssignmentSchema.from_domain(assignment) for assignment in assignments]


@router.post("/{kart_id}/orders/{order_id}/received", response_model=OrderSchema)
async def order_received(
    kart_id: str,
    order_id: str,
    platform: DispatchPlatform = Depends(get_platform),
) -> OrderSchema:
    with domain_errors():
        order = await platform.lifecycle.mark_received_by_kart(kart_id, order_id)
    return OrderSchema.from_domain(order)


@router.post("/{kart_id}/orders/{order_id}/completed", response_model=OrderSchema)
async def order_completed(
    kart_id: str,
    order_id: str,
    platform: DispatchPlatform = Depends(get_platform),
) -> OrderSchema:
    with domain_errors():
        order = await platform.lifecycle.mark_completed_by_kart(kart_id, order_id)
    return OrderSchema.from_domain(order)
