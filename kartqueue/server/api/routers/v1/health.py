"""Liveness and readiness probes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from kartqueue.persistence.store import DocumentStore
from kartqueue.server.dependencies import get_store

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready")
async def ready(store: DocumentStore = Depends(get_store)) -> dict[str, str]:
    await store.get("health/ready")
    return {"status": "ready", "store": type(store).__name__}
