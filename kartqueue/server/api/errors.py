"""Translation of domain errors into HTTP responses."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, Type

from fastapi import HTTPException, status

from kartqueue.enterprise.core import (
    InvalidLocation,
    InvalidTransition,
    KartQueueError,
    ProfileIncomplete,
    QueueContention,
    Unauthenticated,
    UnknownCase,
    UnknownKart,
    UnknownOrder,
)

_STATUS_BY_ERROR: Dict[Type[KartQueueError], int] = {
    Unauthenticated: status.HTTP_401_UNAUTHORIZED,
    UnknownCase: status.HTTP_404_NOT_FOUND,
    UnknownKart: status.HTTP_404_NOT_FOUND,
    UnknownOrder: status.HTTP_404_NOT_FOUND,
    InvalidTransition: status.HTTP_409_CONFLICT,
    ProfileIncomplete: status.HTTP_409_CONFLICT,
    InvalidLocation: status.HTTP_422_UNPROCESSABLE_ENTITY,
    QueueContention: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@contextmanager
def domain_errors() -> Iterator[None]:
    """Re-raise known domain errors as :class:`HTTPException`; others propagate."""

    try:
        yield
    except KartQueueError as exc:
        code = _STATUS_BY_ERROR.get(type(exc))
        if code is None:
            raise
        headers = {"Retry-After": "1"} if isinstance(exc, QueueContention) else None
        raise HTTPException(status_code=code, detail=str(exc), headers=headers) from exc
