"""Shared repository plumbing for the dynalink service.

Repositories wrap one SQLModel table each. They flush but never commit;
the caller owns the transaction.
"""

from typing import Any, Dict, Generic, Optional, Type, TypeVar, Union
import logging

from pydantic import BaseModel
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import SQLModel

T = TypeVar("T", bound=SQLModel)
CreateSchemaType = TypeVar("CreateSchemaType", bound=BaseModel)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """A database operation failed."""
    pass


class DuplicateEntityError(RepositoryError):
    """A row with the same unique value already exists."""

    def __init__(self, model_type: Type[SQLModel], field_name: str, value: Any):
        self.model_type = model_type
        self.field_name = field_name
        self.value = value
        model_name = getattr(model_type, "__name__", "Entity")
        super().__init__(f"{model_name} with {field_name}={value} already exists")


class BaseRepository(Generic[T, CreateSchemaType]):
    """
    Lookup, insert and counting for a single table.

    Type parameters:
        T: The table model
        CreateSchemaType: Schema accepted by ``create``
    """

    def __init__(self, model_type: Type[T]):
        self.model_type = model_type

    @property
    def model_name(self) -> str:
        return self.model_type.__name__

    async def get_by_id(self, db: AsyncSession, id: Any) -> Optional[T]:
        """
        Load a row by primary key.

        Returns:
            The row, or None if there is none

        Raises:
            RepositoryError: On database errors
        """
        try:
            return await db.get(self.model_type, id)
        except SQLAlchemyError as e:
            logger.error(f"Loading {self.model_name} {id} failed: {e}")
            raise RepositoryError(f"Database error loading {self.model_name} {id}: {e}") from e

    async def create(self, db: AsyncSession, data: Union[CreateSchemaType, Dict[str, Any]]) -> T:
        """
        Insert a row and flush it so constraint violations surface here.

        Args:
            db: Database session
            data: Column values as a schema instance or a dict

        Returns:
            The inserted row, refreshed from the database

        Raises:
            IntegrityError: On a constraint violation, after rolling back
            RepositoryError: On other database errors
        """
        values = data.model_dump(exclude_unset=True) if isinstance(data, BaseModel) else data
        entity = self.model_type(**values)
        try:
            db.add(entity)
            await db.flush()
            await db.refresh(entity)
            return entity
        except IntegrityError:
            await db.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error(f"Inserting {self.model_name} failed: {e}")
            await db.rollback()
            raise RepositoryError(f"Database error inserting {self.model_name}: {e}") from e

    async def count(self, db: AsyncSession, **filters) -> int:
        """
        Count rows whose columns equal the given values.

        Raises:
            RepositoryError: On database errors
        """
        conditions = [getattr(self.model_type, field) == value for field, value in filters.items()]
        try:
            result = await db.execute(
                select(func.count()).select_from(self.model_type).where(*conditions)
            )
            return result.scalar_one()
        except SQLAlchemyError as e:
            logger.error(f"Counting {self.model_name} rows failed: {e}")
            raise RepositoryError(f"Database error counting {self.model_name}: {e}") from e

    async def exists(self, db: AsyncSession, **filters) -> bool:
        """
        Check whether any row matches the given column values.

        Raises:
            ValueError: If called without filters
            RepositoryError: On database errors
        """
        if not filters:
            raise ValueError("No conditions provided for exists check")
        return await self.count(db, **filters) > 0
