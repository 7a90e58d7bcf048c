"""
Async engine and session handling for the profile store.

One engine per process, created by ``init_database`` (API lifespan, CLI,
test fixtures) and disposed by ``close_database``.
"""

import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import DatabaseConfig, settings
from .exceptions import ConfigurationError, DatabaseError


logger = structlog.get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


async def init_database(database_url: Optional[str] = None) -> None:
    """Create the engine; ``database_url`` overrides the configured URL."""
    global _engine, _session_factory

    url = database_url or DatabaseConfig.get_database_url(async_driver=True)
    if _engine is not None:
        await close_database()

    _engine = create_async_engine(url, echo=settings.debug, **DatabaseConfig.get_engine_config(url))
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)
    logger.info("Profile database ready", backend=_engine.dialect.name)


async def close_database() -> None:
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Profile database closed")
    _engine = None
    _session_factory = None


def _require_engine() -> AsyncEngine:
    if _engine is None:
        raise ConfigurationError("Database not initialized; call init_database() first")
    return _engine


@asynccontextmanager
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Session committed when the block exits cleanly, rolled back otherwise.

    A failing commit surfaces as DatabaseError.
    """
    _require_engine()
    async with _session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        try:
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError("Failed to commit profile changes", {"error": str(e)}) from e


class DatabaseManager:
    """Schema management and health for the profile database."""

    @staticmethod
    async def create_tables() -> None:
        from subsidy_admin.models import Base

        async with _require_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Profile tables created", tables=sorted(Base.metadata.tables))

    @staticmethod
    async def drop_tables() -> None:
        from subsidy_admin.models import Base

        logger.warning("Dropping profile tables")
        async with _require_engine().begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @staticmethod
    async def health_check() -> Dict[str, Any]:
        """Round-trip a trivial query; never raises."""
        if _engine is None:
            return {"healthy": False, "error": "not initialized"}
        started = time.perf_counter()
        try:
            async with _engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.error("Database health check failed", error=str(e))
            return {"healthy": False, "backend": _engine.dialect.name, "error": str(e)}
        return {
            "healthy": True,
            "backend": _engine.dialect.name,
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        }
