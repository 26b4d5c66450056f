"""Dependency providers for the API layer."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from kartqueue.enterprise.config.settings import AppSettings, get_settings
from kartqueue.enterprise.core import Unauthenticated
from kartqueue.persistence import InMemoryDocumentStore, SqlDocumentStore, get_sessionmaker, init_engine
from kartqueue.persistence.store import DocumentStore
from kartqueue.server.auth import TokenVerifier
from kartqueue.services import (
    BusPushGateway,
    DispatchPlatform,
    MessageBus,
    PushPort,
    RecordingPushGateway,
    build_message_bus,
)

__all__ = [
    "get_app_settings",
    "get_store",
    "get_message_bus",
    "get_push_gateway",
    "get_platform",
    "get_token_verifier",
    "get_current_user",
    "reset_platform",
]

_bearer = HTTPBearer(auto_error=False)


def get_app_settings() -> AppSettings:
    return get_settings()


@lru_cache(maxsize=1)
def get_store() -> DocumentStore:
    """Return the shared document store selected by ``database.enabled``."""

    settings = get_settings()
    if settings.database.enabled:
        init_engine(settings)
        return SqlDocumentStore(get_sessionmaker())
    return InMemoryDocumentStore()


@lru_cache(maxsize=1)
def get_message_bus() -> MessageBus:
    return build_message_bus(get_settings().messaging, client_id="kartqueue-api")


@lru_cache(maxsize=1)
def get_push_gateway() -> PushPort:
    settings = get_settings()
    if settings.messaging.backend.lower() == "memory":
        return RecordingPushGateway()
    return BusPushGateway(get_message_bus(), settings.messaging.topic_push)


@lru_cache(maxsize=1)
def get_platform() -> DispatchPlatform:
    """Return the shared :class:`DispatchPlatform` instance."""

    return DispatchPlatform(get_store(), get_push_gateway(), get_settings())


@lru_cache(maxsize=1)
def get_token_verifier() -> TokenVerifier:
    return TokenVerifier(get_settings().auth.tokens)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> str:
    """Resolve the bearer token of the request to a user id."""

    try:
        return verifier.verify(credentials.credentials if credentials else None)
    except Unauthenticated as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


def reset_platform() -> None:
    """Drop every cached provider (useful for tests)."""

    for provider in (get_platform, get_push_gateway, get_message_bus, get_store, get_token_verifier):
        provider.cache_clear()
