"""Case registration, queue inspection and release."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from kartqueue.server.api.errors import domain_errors
from kartqueue.server.api.schemas.catalog import (
    CaseCreateSchema,
    CaseQueueSchema,
    CaseSchema,
    ReleaseResultSchema,
    ReleaseSchema,
)
from kartqueue.server.api.schemas.orders import FulfillmentSchema
from kartqueue.server.dependencies import get_platform
from kartqueue.services import DispatchPlatform

router = APIRouter(prefix="/cases", tags=["cases"])


@router.get("", response_model=List[CaseSchema])
async def list_cases(platform: DispatchPlatform = Depends(get_platform)) -> List[CaseSchema]:
    return [CaseSchema.from_domain(case) for case in await platform.catalog.cases()]


@router.post("", response_model=CaseSchema, status_code=status.HTTP_201_CREATED)
async def register_case(
    payload: CaseCreateSchema,
    platform: DispatchPlatform = Depends(get_platform),
) -> CaseSchema:
    with domain_errors():
        case = await platform.catalog.register_case(payload.to_domain())
    return CaseSchema.from_domain(case)


@router.get("/{case_id}", response_model=CaseSchema)
async def get_case(case_id: str, platform: DispatchPlatform = Depends(get_platform)) -> CaseSchema:
    with domain_errors():
        case = await platform.catalog.get_case(case_id)
    return CaseSchema.from_domain(case)


@router.get("/{case_id}/queue", response_model=CaseQueueSchema)
async def get_case_queue(case_id: str, platform: DispatchPlatform = Depends(get_platform)) -> CaseQueueSchema:
    with domain_errors():
        await platform.catalog.get_case(case_id)
    return CaseQueueSchema.from_queue(case_id, await platform.queue.snapshot(case_id))


@router.post("/{case_id}/release", response_model=ReleaseResultSchema)
async def release_case(
    case_id: str,
    payload: ReleaseSchema | None = None,
    platform: DispatchPlatform = Depends(get_platform),
) -> ReleaseResultSchema:
    """Mark the case available again and serve the next user in its queue."""

    location = payload.location if payload else None
    with domain_errors():
        case, result = await platform.release_case(case_id, location)
    return ReleaseResultSchema(
        case=CaseSchema.from_domain(case),
        fulfilled=FulfillmentSchema.from_result(result) if result else None,
    )
