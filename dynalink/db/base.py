"""Database base configuration for SQLAlchemy with SQLModel.

This module provides base database configuration for async SQLAlchemy with SQLModel.
It includes:
- Engine configuration
- Session factory construction
- Table creation for development and tests
- Health check functionality
"""

from typing import Dict, Optional
import asyncio
import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool
from sqlalchemy.sql import text
from sqlmodel import SQLModel

from dynalink.core.config import settings

logger = logging.getLogger(__name__)

# Mapping of environment to SQLAlchemy engine configurations
ENGINE_CONFIGS: Dict[str, Dict] = {
    "development": {
        "pool_size": settings.POSTGRES_POOL_SIZE,
        "max_overflow": settings.POSTGRES_POOL_MAX_OVERFLOW,
        "pool_timeout": settings.POSTGRES_POOL_TIMEOUT,
        "pool_recycle": settings.POSTGRES_POOL_RECYCLE,
        "pool_pre_ping": True,
    },
    "production": {
        "pool_size": settings.POSTGRES_POOL_SIZE,
        "max_overflow": settings.POSTGRES_POOL_MAX_OVERFLOW,
        "pool_timeout": settings.POSTGRES_POOL_TIMEOUT,
        "pool_recycle": settings.POSTGRES_POOL_RECYCLE,
        "pool_pre_ping": True,
    },
    "testing": {
        "poolclass": NullPool,  # Use NullPool for tests to avoid connection issues
    },
}


def get_engine_config(url: Optional[str] = None) -> Dict:
    """Get the appropriate engine configuration based on the environment.

    SQLite URLs always get ``NullPool`` since pool sizing does not apply.

    Args:
        url: Database URL the engine will be created for.

    Returns:
        Dict: Engine configuration parameters for the current environment.
    """
    if url and url.startswith("sqlite"):
        config = dict(ENGINE_CONFIGS["testing"])
    else:
        env = settings.ENVIRONMENT.value
        config = dict(ENGINE_CONFIGS.get(env, ENGINE_CONFIGS["development"]))
    config["echo"] = settings.DB_ECHO
    return config


def create_engine(url: Optional[str] = None) -> AsyncEngine:
    """Create and configure an async SQLAlchemy engine.

    Args:
        url: Database URL; defaults to ``settings.SQLALCHEMY_DATABASE_URI``.

    Returns:
        AsyncEngine: Configured SQLAlchemy async engine instance.
    """
    engine_url = str(url or settings.SQLALCHEMY_DATABASE_URI)
    engine_config = get_engine_config(engine_url)

    logger.info(f"Creating database engine for {engine_url.split('://', 1)[0]}")

    return create_async_engine(engine_url, **engine_config)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Build the async session factory bound to ``engine``."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables registered on the SQLModel metadata."""
    # Import models so their tables are registered
    from dynalink import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database tables created")


class DatabaseHealthCheck:
    """Health check functionality for the database connection."""

    @staticmethod
    async def check_connection(session_factory: async_sessionmaker) -> Dict:
        """Check database connectivity and return status.

        Args:
            session_factory: Session factory to open the probe session with

        Returns:
            Dict: Health check result containing status and latency information
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()
        status = "healthy"
        error_message = None
        latency_ms = 0

        try:
            async with session_factory() as session:
                await session.execute(text("SELECT 1"))
            latency_ms = int((loop.time() - start_time) * 1000)
        except Exception as e:
            status = "unhealthy"
            error_message = str(e)
            logger.error(f"Database health check failed: {e}")

        return {
            "status": status,
            "latency_ms": latency_ms,
            "error": error_message,
        }
