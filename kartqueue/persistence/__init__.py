"""Document store persistence: in-memory and async SQLAlchemy backends."""

from .database import create_schema, dispose_engine, get_sessionmaker, init_engine, metadata
from .memory import InMemoryDocumentStore
from .repository import SqlDocumentStore
from .store import ABORT, DocumentStore, Snapshot, TransactionResult, run_transaction

__all__ = [
    "init_engine",
    "dispose_engine",
    "get_sessionmaker",
    "create_schema",
    "metadata",
    "ABORT",
    "DocumentStore",
    "Snapshot",
    "TransactionResult",
    "run_transaction",
    "InMemoryDocumentStore",
    "SqlDocumentStore",
]
