"""Link Repository for the dynalink service.

This module provides the LinkRepository class for database operations related to Link models.
"""

from typing import Optional, Union, Dict, Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from dynalink.core.timeutils import utcnow
from dynalink.models.link import Link, LinkCreate
from dynalink.repositories.base import BaseRepository, RepositoryError, DuplicateEntityError


class LinkRepository(BaseRepository[Link, LinkCreate]):
    """
    Repository for Link model database operations.

    The repository never touches the resolution cache; keeping the cache in
    step with the store is the service layer's job.
    """

    def __init__(self):
        """Initialize the repository with the Link model type."""
        super().__init__(Link)

    async def create_link(
        self,
        db: AsyncSession,
        data: Union[LinkCreate, Dict[str, Any]]
    ) -> Link:
        """
        Create a new link record.

        Args:
            db: Database session
            data: Link data (either as a LinkCreate model or dictionary)

        Returns:
            The created Link entity

        Raises:
            DuplicateEntityError: If the code or alias already exists
            RepositoryError: On other database errors
        """
        if isinstance(data, LinkCreate):
            code = data.code
        else:
            code = data.get("code")

        if code and await self.code_exists(db, code):
            raise DuplicateEntityError(self.model_type, "code", code)

        try:
            return await self.create(db, data)
        except IntegrityError as e:
            # Two writers raced for the same code; the unique constraint decides
            raise DuplicateEntityError(self.model_type, "code", code) from e

    async def get_by_code(self, db: AsyncSession, code: str) -> Optional[Link]:
        """
        Find a link by its code.

        Expired links are returned as well; callers decide what expiry means.

        Args:
            db: Database session
            code: The short code to look up

        Returns:
            The Link if found, None otherwise

        Raises:
            RepositoryError: On database errors
        """
        return await self.get_by_id(db, code)

    async def update_destination(
        self,
        db: AsyncSession,
        code: str,
        destination: str
    ) -> Optional[Link]:
        """
        Replace the destination of a link in a single UPDATE statement.

        Args:
            db: Database session
            code: The short code to update
            destination: New destination URI

        Returns:
            The updated Link if found, None otherwise

        Raises:
            RepositoryError: On database errors
        """
        try:
            stmt = (
                update(self.model_type)
                .where(self.model_type.code == code)
                .values(destination=destination, updated_at=utcnow())
                .returning(self.model_type)
                .execution_options(populate_existing=True)
            )
            result = await db.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error updating destination for {code}: {e}") from e

    async def code_exists(self, db: AsyncSession, code: str) -> bool:
        """
        Check if a code (generated or alias) is already taken.

        Args:
            db: Database session
            code: The code to check

        Returns:
            True if the code exists, False otherwise

        Raises:
            RepositoryError: On database errors
        """
        return await self.exists(db, code=code)
