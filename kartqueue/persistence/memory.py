"""In-memory document store used when persistent storage is unavailable."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass
from typing import Any, Dict

from .store import DocumentStore, Snapshot, child_key


@dataclass
class InMemoryDocument:
    value: Any
    version: int


class InMemoryDocumentStore(DocumentStore):
    """Keeps documents in process memory.

    Reads yield to the event loop before returning, so coroutines that read
    the same key interleave the way they would against a networked store.
    """

    def __init__(self) -> None:
        self.documents: Dict[str, InMemoryDocument] = {}

    async def get(self, key: str) -> Snapshot:
        document = self.documents.get(key)
        if document is None:
            snapshot = Snapshot(key=key, value=None, version=0)
        else:
            snapshot = Snapshot(key=key, value=copy.deepcopy(document.value), version=document.version)
        await asyncio.sleep(0)
        return snapshot

    async def compare_and_set(self, key: str, expected_version: int, value: Any) -> bool:
        document = self.documents.get(key)
        current_version = document.version if document else 0
        if current_version != expected_version:
            return False
        if document is None and value is None:
            return True
        self.documents[key] = InMemoryDocument(value=copy.deepcopy(value), version=current_version + 1)
        return True

    async def children(self, prefix: str) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for key in sorted(self.documents):
            name = child_key(prefix, key)
            document = self.documents[key]
            if name is None or document.value is None:
                continue
            result[name] = copy.deepcopy(document.value)
        return result

    def reset(self) -> None:
        self.documents.clear()
