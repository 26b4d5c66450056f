"""Webhook receiving store change events."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from kartqueue.server.api.errors import domain_errors
from kartqueue.server.api.schemas.orders import FulfillmentSchema
from kartqueue.server.dependencies import get_platform
from kartqueue.services import DispatchPlatform, TriggerEvent

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=Optional[FulfillmentSchema])
async def deliver_event(
    event: TriggerEvent,
    platform: DispatchPlatform = Depends(get_platform),
) -> Optional[FulfillmentSchema]:
    with domain_errors():
        result = await platform.deliver(event)
    return FulfillmentSchema.from_result(result) if result else None
