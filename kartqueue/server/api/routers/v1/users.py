"""Endpoints scoped to the authenticated user."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from kartqueue.server.api.errors import domain_errors
from kartqueue.server.api.schemas.orders import (
    CartSchema,
    HistoryEntrySchema,
    OrderSchema,
    ProfileSchema,
    ProfileUpdateSchema,
)
from kartqueue.server.dependencies import get_current_user, get_platform
from kartqueue.services import DispatchPlatform

router = APIRouter(prefix="/users/me", tags=["users"])


@router.get("", response_model=ProfileSchema)
async def get_profile(
    user_id: str = Depends(get_current_user),
    platform: DispatchPlatform = Depends(get_platform),
) -> ProfileSchema:
    return ProfileSchema.from_domain(await platform.users.profile(user_id))


@router.put("", response_model=ProfileSchema)
async def update_profile(
    payload: ProfileUpdateSchema,
    user_id: str = Depends(get_current_user),
    platform: DispatchPlatform = Depends(get_platform),
) -> ProfileSchema:
    with domain_errors():
        profile = await platform.users.update_profile(
            user_id,
            device_token=payload.device_token,
            pickup_location=payload.pickup_location,
        )
    return ProfileSchema.from_domain(profile)


@router.get("/cart", response_model=CartSchema)
async def get_cart(
    user_id: str = Depends(get_current_user),
    platform: DispatchPlatform = Depends(get_platform),
) -> CartSchema:
    return CartSchema(user_id=user_id, case_ids=await platform.users.cart(user_id))


@router.put("/cart/{case_id}", response_model=CartSchema)
async def add_to_cart(
    case_id: str,
    user_id: str = Depends(get_current_user),
    platform: DispatchPlatform = Depends(get_platform),
) -> CartSchema:
    with domain_errors():
        await platform.catalog.get_case(case_id)
    await platform.users.add_to_cart(user_id, case_id)
    return CartSchema(user_id=user_id, case_ids=await platform.users.cart(user_id))


@router.delete("/cart/{case_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_from_cart(
    case_id: str,
    user_id: str = Depends(get_current_user),
    platform: DispatchPlatform = Depends(get_platform),
) -> None:
    await platform.users.remove_from_cart(user_id, case_id)


@router.get("/history", response_model=List[HistoryEntrySchema])
async def get_history(
    user_id: str = Depends(get_current_user),
    platform: DispatchPlatform = Depends(get_platform),
) -> List[HistoryEntrySchema]:
    entries = await platform.users.history(user_id)
    return [HistoryEntrySchema.from_domain(entry) for entry in entries]


@router.get("/orders", response_model=List[OrderSchema])
async def list_orders(
    user_id: str = Depends(get_current_user),
    platform: DispatchPlatform = Depends(get_platform),
) -> List[OrderSchema]:
    return [OrderSchema.from_domain(order) for order in await platform.users.orders(user_id)]


@router.get("/orders/{order_id}", response_model=OrderSchema)
async def get_order(
    order_id: str,
    user_id: str = Depends(get_current_user),
    platform: DispatchPlatform = Depends(get_platform),
) -> OrderSchema:
    with domain_errors():
        order = await platform.users.order(user_id, order_id)
    return OrderSchema.from_domain(order)
