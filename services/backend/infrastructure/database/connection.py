"""Async engine and session makers for the report database"""
import asyncio
from typing import Optional

import structlog
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine
from sqlalchemy.orm import sessionmaker

from config import get_settings

logger = structlog.get_logger()

_engine: Optional[AsyncEngine] = None
_async_session_maker: Optional[sessionmaker] = None


def _get_database_url() -> str:
    """Configured database URL, rewritten to the asyncpg driver for Postgres"""
    url = get_settings().database_url

    if not url:
        raise RuntimeError(
            "DATABASE_URL is not configured; set it in the environment or .env"
        )

    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://") and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return url


def get_engine() -> AsyncEngine:
    """Process-wide engine, created on first use"""
    global _engine

    if _engine is None:
        settings = get_settings()
        url = _get_database_url()

        kwargs = {"echo": settings.database_echo, "pool_pre_ping": True}
        if url.startswith("postgresql+asyncpg://"):
            # statement_cache_size=0 is required behind pgbouncer poolers
            connect_args = {
                "statement_cache_size": 0,
                "server_settings": {"application_name": "zapalert-backend"},
            }
            if settings.database_ssl:
                connect_args["ssl"] = "require"
            kwargs.update(pool_size=5, max_overflow=10, connect_args=connect_args)

        _engine = create_async_engine(url, **kwargs)

    return _engine


def get_session_maker() -> sessionmaker:
    """Session maker bound to the process-wide engine"""
    global _async_session_maker

    if _async_session_maker is None:
        _async_session_maker = make_session_maker(get_engine())

    return _async_session_maker


def make_session_maker(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Create tables if they do not exist, retrying while the database comes up"""
    # Register table metadata
    from domain.models import Report, ReportActionRecord  # noqa: F401

    engine = engine or get_engine()
    max_retries = 5
    retry_delay = 2  # seconds

    for attempt in range(1, max_retries + 1):
        try:
            logger.info("database_connecting", attempt=attempt, max_retries=max_retries)
            async with engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            logger.info("database_initialized")
            return
        except Exception as e:
            if attempt < max_retries:
                logger.warning("database_connection_failed", attempt=attempt, error=str(e), retry_in=retry_delay)
                await asyncio.sleep(retry_delay)
                retry_delay *= 2  # Exponential backoff
            else:
                logger.error("database_unavailable", attempts=max_retries, error=str(e))
                raise


async def dispose_engine() -> None:
    global _engine, _async_session_maker

    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _async_session_maker = None

