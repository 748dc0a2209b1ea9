# crm_intake/db/session.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from crm_intake.core.config import Settings
from crm_intake.core.logging import get_structlog_logger
from crm_intake.db.base import Base

logger = get_structlog_logger(__name__)


def create_database_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine. The caller owns it and must dispose it."""
    connect_args: Dict[str, Any] = {}
    if settings.database_url.startswith("postgresql+asyncpg"):
        connect_args = {
            "command_timeout": 60,
            "server_settings": {
                "application_name": "crm_intake",
                "statement_timeout": str(settings.database_statement_timeout_ms),
            },
        }

    if settings.is_testing:
        # NullPool keeps test event loops from sharing pooled connections
        engine = create_async_engine(
            settings.database_url,
            poolclass=NullPool,
            echo=settings.debug,
            connect_args=connect_args,
        )
    else:
        engine = create_async_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_recycle=settings.database_pool_recycle,
            pool_pre_ping=True,
            echo=settings.debug,
            connect_args=connect_args,
        )

    logger.info(
        "database.engine.created",
        url=settings.safe_database_url(),
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        testing=settings.is_testing,
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create any missing tables. Existing tables are left untouched."""
    # Register model classes on Base.metadata
    import crm_intake.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database.schema_ready", tables=sorted(Base.metadata.tables))


async def health_check(engine: AsyncEngine) -> Dict[str, Any]:
    """Check database connectivity with a single round-trip."""
    started = datetime.now(timezone.utc)
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT 1"))
            row = result.first()
    except Exception as e:
        logger.error("database.health_check_failed", error=str(e), error_type=type(e).__name__)
        return {
            "status": "unhealthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    elapsed_ms = (datetime.now(timezone.utc) - started).total_seconds() * 1000
    return {
        "status": "healthy" if row and row[0] == 1 else "unhealthy",
        "response_time_ms": f"{elapsed_ms:.2f}",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
