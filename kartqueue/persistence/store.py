"""Versioned document store and the optimistic transaction helper.

Every key holds one JSON document and a version counter. A key that was
never written reads as version ``0`` with no value; deletes leave a tombstone
so a version number is never reused for the same key. ``compare_and_set`` is
the only primitive with ordering guarantees: it writes only if the key is
still at the version the caller read.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import structlog

from kartqueue.enterprise.core import QueueContention, StoreError
from kartqueue.observability.metrics import CAS_CONFLICT_COUNTER, TRANSACTION_ATTEMPTS

logger = structlog.get_logger(__name__)

_UNCONDITIONAL_WRITE_ATTEMPTS = 100


@dataclass(frozen=True)
class Snapshot:
    key: str
    value: Any
    version: int

    @property
    def exists(self) -> bool:
        return self.value is not None


class _Abort:
    def __repr__(self) -> str:
        return "ABORT"


ABORT: Any = _Abort()
"""Returned by a transaction mutation to leave the key untouched."""


Mutation = Callable[[Any], Any]


@dataclass(frozen=True)
class TransactionResult:
    committed: bool
    snapshot: Snapshot
    attempts: int


class DocumentStore(ABC):
    """Key/value document store with per-key compare-and-swap."""

    @abstractmethod
    async def get(self, key: str) -> Snapshot:
        raise NotImplementedError

    @abstractmethod
    async def compare_and_set(self, key: str, expected_version: int, value: Any) -> bool:
        """Write ``value`` (``None`` deletes) if ``key`` is still at ``expected_version``."""

        raise NotImplementedError

    @abstractmethod
    async def children(self, prefix: str) -> Dict[str, Any]:
        """Return live documents directly below ``prefix``, keyed by their last path segment."""

        raise NotImplementedError

    async def set(self, key: str, value: Any) -> None:
        await self._write(key, value)

    async def delete(self, key: str) -> None:
        await self._write(key, None)

    async def _write(self, key: str, value: Any) -> None:
        for _ in range(_UNCONDITIONAL_WRITE_ATTEMPTS):
            current = await self.get(key)
            if await self.compare_and_set(key, current.version, value):
                return
        raise StoreError(f"Unconditional write to {key!r} kept losing to concurrent writers")

    async def value(self, key: str) -> Any:
        return (await self.get(key)).value


async def run_transaction(
    store: DocumentStore,
    key: str,
    mutate: Mutation,
    *,
    max_attempts: int = 25,
    backoff_seconds: float = 0.0,
) -> TransactionResult:
    """Optimistically apply ``mutate`` to the document at ``key``.

    ``mutate`` receives a private copy of the current value (``None`` when the
    key is absent) and returns the new value, ``None`` to delete, or
    :data:`ABORT` to stop without writing. It may run several times and must
    not have side effects beyond its return value. When every attempt loses the
    race :class:`QueueContention` is raised; no attempt is ever partially
    visible.
    """

    for attempt in range(1, max_attempts + 1):
        current = await store.get(key)
        proposed = mutate(copy.deepcopy(current.value))
        if proposed is ABORT:
            return TransactionResult(committed=False, snapshot=current, attempts=attempt)

        if await store.compare_and_set(key, current.version, proposed):
            TRANSACTION_ATTEMPTS.observe(attempt)
            return TransactionResult(
                committed=True,
                snapshot=Snapshot(key=key, value=proposed, version=current.version + 1),
                attempts=attempt,
            )

        CAS_CONFLICT_COUNTER.inc()
        logger.debug("transaction_conflict", key=key, attempt=attempt)
        if backoff_seconds:
            await asyncio.sleep(backoff_seconds * attempt)

    logger.warning("transaction_exhausted", key=key, attempts=max_attempts)
    raise QueueContention(key, max_attempts)


def child_key(prefix: str, key: str) -> Optional[str]:
    """Return the direct child segment of ``key`` below ``prefix``, if any."""

    head = f"{prefix}/"
    if not key.startswith(head):
        return None
    rest = key[len(head):]
    if not rest or "/" in rest:
        return None
    return rest
