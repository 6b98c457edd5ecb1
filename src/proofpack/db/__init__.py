"""Async database access for Proof Pack.

A process holds one engine, created lazily from the database settings. The
API opens one session per request through get_async_session() and commits
explicitly; the worker builds its own engine from get_database_url().
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from proofpack.core.config import DatabaseSettings

ASYNC_DRIVER_PREFIX = "postgresql+psycopg://"

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def to_async_url(url: str) -> str:
    """Rewrite a plain PostgreSQL URL to use the psycopg async driver."""
    for prefix in ("postgresql://", "postgres://"):
        if url.startswith(prefix):
            return ASYNC_DRIVER_PREFIX + url[len(prefix) :]
    return url


def get_database_url() -> str:
    from proofpack.core.settings import get_settings

    return to_async_url(str(get_settings().database.url))


def create_engine_from_settings(
    database: DatabaseSettings, application_name: str = "proofpack-api"
) -> AsyncEngine:
    """Engine with the configured pool limits.

    Connections are checked before use so that a database restart costs a
    reconnect instead of a failed request.
    """
    return create_async_engine(
        to_async_url(str(database.url)),
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
        pool_timeout=database.pool_timeout,
        pool_pre_ping=True,
        echo=database.echo,
        connect_args={"application_name": application_name},
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _engine, _session_factory

    if _session_factory is None:
        from proofpack.core.settings import get_settings

        _engine = create_engine_from_settings(get_settings().database)
        _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Open a session. Nothing is committed unless the caller commits.

    Usage:
        async with get_async_session() as session:
            pack = await session.get(ProofPack, proof_pack_id)
            await session.commit()
    """
    async with get_session_factory()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def close_engine() -> None:
    """Dispose of the engine during application shutdown."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None
