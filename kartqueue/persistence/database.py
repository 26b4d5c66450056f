"""Process-wide async engine backing the SQL document store."""

from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from kartqueue.enterprise.config.settings import AppSettings, DatabaseSettings, get_settings


class Base(DeclarativeBase):
    pass


metadata = Base.metadata

_engine: Optional[AsyncEngine] = None
_sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(db: DatabaseSettings) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": db.echo}
    # SQLite drivers run without a sized connection pool.
    if make_url(str(db.url)).get_backend_name() != "sqlite":
        options.update(pool_size=db.pool_size, max_overflow=db.max_overflow, pool_pre_ping=True)
    return options


def init_engine(settings: Optional[AppSettings] = None) -> AsyncEngine:
    """Create the engine on first use; later calls return the same one."""

    global _engine, _sessionmaker
    if _engine is None:
        db = (settings or get_settings()).database
        if not db.enabled:
            raise RuntimeError("database.enabled is false; the SQL document store is unavailable")
        _engine = create_async_engine(str(db.url), **_engine_options(db))
        _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        init_engine()
    assert _sessionmaker is not None
    return _sessionmaker


async def create_schema(engine: Optional[AsyncEngine] = None) -> None:
    """Create the document table if it does not exist yet."""

    from . import models  # noqa: F401  registers the tables on ``metadata``

    async with (engine or init_engine()).begin() as connection:
        await connection.run_sync(metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _sessionmaker
    engine, _engine, _sessionmaker = _engine, None, None
    if engine is not None:
        await engine.dispose()
