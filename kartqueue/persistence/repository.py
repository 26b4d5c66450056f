"""SQL-backed document store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kartqueue.enterprise.core import StoreError

from .models import DocumentRecord
from .store import DocumentStore, Snapshot, child_key

_documents = DocumentRecord.__table__


class SqlDocumentStore(DocumentStore):
    """Document store on a single ``documents`` table.

    Conditional writes are a single ``UPDATE ... WHERE version = :expected``
    (or an ``INSERT`` guarded by the primary key for a key that has never been
    written), so the database provides the compare-and-swap.
    """

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def get(self, key: str) -> Snapshot:
        try:
            async with self._sessionmaker() as session:
                record = await session.get(DocumentRecord, key)
        except SQLAlchemyError as exc:
            raise StoreError(f"Reading {key!r} failed: {exc}") from exc
        if record is None:
            return Snapshot(key=key, value=None, version=0)
        return Snapshot(key=key, value=record.payload, version=record.version)

    async def compare_and_set(self, key: str, expected_version: int, value: Any) -> bool:
        now = datetime.now(timezone.utc)
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    if expected_version == 0:
                        if value is None:
                            return True
                        session.add(DocumentRecord(key=key, version=1, payload=value, updated_at=now))
                        return True
                    stmt = (
                        update(_documents)
                        .where(_documents.c.key == key, _documents.c.version == expected_version)
                        .values(version=expected_version + 1, payload=value, updated_at=now)
                    )
                    result = await session.execute(stmt)
                    return result.rowcount == 1
        except IntegrityError:
            # Another writer created the key first.
            return False
        except SQLAlchemyError as exc:
            raise StoreError(f"Writing {key!r} failed: {exc}") from exc

    async def children(self, prefix: str) -> Dict[str, Any]:
        stmt = (
            select(DocumentRecord)
            .where(DocumentRecord.key.like(f"{prefix}/%"), DocumentRecord.payload.is_not(None))
            .order_by(DocumentRecord.key)
        )
        try:
            async with self._sessionmaker() as session:
                records = list((await session.execute(stmt)).scalars())
        except SQLAlchemyError as exc:
            raise StoreError(f"Listing {prefix!r} failed: {exc}") from exc

        result: Dict[str, Any] = {}
        for record in records:
            name = child_key(prefix, record.key)
            if name is not None and record.payload is not None:
                result[name] = record.payload
        return result
