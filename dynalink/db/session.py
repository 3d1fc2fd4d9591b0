"""Session management for database operations.

This module provides utilities for handling SQLAlchemy async sessions
with proper lifecycle management, error handling, and transaction support.
It includes dependency injection patterns for FastAPI.
"""

from typing import AsyncGenerator, Callable, TypeVar
import logging
import inspect
from contextlib import asynccontextmanager
from functools import wraps

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

# Generic return type for function decorators
T = TypeVar("T")


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Sessions come from the factory the application built at startup.

    Yields:
        AsyncSession: A SQLAlchemy async session object.

    Example:
        ```python
        @router.get("/links/{code}")
        async def get_link(code: str, db: AsyncSession = Depends(get_db)):
            return await link_repository.get_by_code(db, code)
        ```
    """
    session_factory: async_sessionmaker = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
        except SQLAlchemyError:
            logger.exception("Database error occurred")
            await session.rollback()
            raise
        except Exception:
            await session.rollback()
            raise


def db_transaction(db_param_name: str = "db") -> Callable:
    """Decorator committing the session passed to the wrapped coroutine.

    The session is looked up by parameter name, so it may be passed
    positionally or as a keyword. Any exception rolls the session back
    and is re-raised.

    Args:
        db_param_name: Name of the session parameter

    Raises:
        ValueError: If the wrapped function has no such parameter, or the
            call does not pass a session for it
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        signature = inspect.signature(func)
        if db_param_name not in signature.parameters:
            raise ValueError(f"'{func.__name__}' has no parameter named '{db_param_name}'")

        @wraps(func)
        async def wrapper(*args, **kwargs):
            db = signature.bind_partial(*args, **kwargs).arguments.get(db_param_name)
            if not isinstance(db, AsyncSession):
                raise ValueError(f"No database session passed to '{func.__name__}'")

            try:
                result = await func(*args, **kwargs)
                await db.commit()
                return result
            except Exception as e:
                await db.rollback()
                logger.warning(f"Transaction rolled back in '{func.__name__}': {type(e).__name__}")
                raise

        return wrapper
    return decorator


class SessionManager:
    """Session manager for database work outside the request cycle."""

    @staticmethod
    @asynccontextmanager
    async def transaction_context(
        session_factory: async_sessionmaker,
    ) -> AsyncGenerator[AsyncSession, None]:
        """Context manager for a database session with transaction support.

        Automatically commits on successful completion or rolls back on error.

        Args:
            session_factory: Factory the session is opened from

        Yields:
            AsyncSession: SQLAlchemy async session

        Example:
            ```python
            async with SessionManager.transaction_context(factory) as session:
                await scan_repository.record_scan(session, data)
            ```
        """
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Transaction failed: {e}")
                raise
