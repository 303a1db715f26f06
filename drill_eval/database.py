"""Database engine and session management.

Engines are created explicitly and handed to the service container; nothing
here connects at import time.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from drill_eval.config.settings import DatabaseConfig

# Import models so they are attached to Base.metadata before table creation
from drill_eval.models import Base  # noqa: F401 - ensures metadata is registered
from drill_eval.models import evaluation_result  # noqa: F401

logger = logging.getLogger(__name__)


def create_engine(config: DatabaseConfig, *, debug: bool = False) -> AsyncEngine:
    """Create an async engine with environment-appropriate pooling."""

    engine_options: dict[str, Any] = {
        "echo": debug,
        "future": True,
        "pool_pre_ping": True,
    }

    if config.serverless or debug:
        # Disable pooling when working with serverless databases (or in debug).
        engine_options["poolclass"] = NullPool

    return create_async_engine(config.url, **engine_options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        expire_on_commit=False,
        class_=AsyncSession,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create database tables if they do not exist."""

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Ensured database tables in default schema.")


async def ping(engine: AsyncEngine) -> bool:
    """Return True when a trivial query succeeds."""

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        logger.warning("Database ping failed", exc_info=True)
        return False
    return True


async def dispose_engine(engine: AsyncEngine) -> None:
    """Dispose of the engine and release pooled connections."""

    await engine.dispose()
