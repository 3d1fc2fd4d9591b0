"""Scan Repository for usage tracking in the dynalink service.

This module provides the ScanRepository class for appending scan events and
for the aggregate reads behind the usage snapshot.
"""

from datetime import datetime
from typing import List, Optional, Dict, Any, Union, Tuple

from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from dynalink.models.scan import ScanEvent, ScanEventCreate
from dynalink.repositories.base import BaseRepository, RepositoryError


class ScanRepository(BaseRepository[ScanEvent, ScanEventCreate]):
    """
    Repository for ScanEvent model database operations.

    Scan events are append-only; every other method here is a read used by
    the usage aggregator.
    """

    def __init__(self):
        """Initialize the repository with the ScanEvent model type."""
        super().__init__(ScanEvent)

    async def record_scan(
        self,
        db: AsyncSession,
        data: Union[ScanEventCreate, Dict[str, Any]]
    ) -> ScanEvent:
        """
        Append a scan event.

        Called from a background task after the redirect has been answered.

        Args:
            db: Database session
            data: Scan event data (either as a ScanEventCreate model or dictionary)

        Returns:
            The created ScanEvent entity

        Raises:
            RepositoryError: On database errors
        """
        try:
            return await self.create(db, data)
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error recording scan: {e}") from e

    async def count_for_code(
        self,
        db: AsyncSession,
        code: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> int:
        """
        Count scans for a code, optionally within ``[start, end)``.

        Raises:
            RepositoryError: On database errors
        """
        try:
            query = select(func.count()).select_from(self.model_type).where(self.model_type.code == code)
            if start is not None:
                query = query.where(self.model_type.occurred_at >= start)
            if end is not None:
                query = query.where(self.model_type.occurred_at < end)
            result = await db.execute(query)
            return result.scalar_one()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error counting scans for {code}: {e}") from e

    async def get_occurrences(
        self,
        db: AsyncSession,
        code: str,
        start: datetime,
        end: datetime
    ) -> List[datetime]:
        """
        Get the timestamps of all scans for a code within ``[start, end)``.

        Raises:
            RepositoryError: On database errors
        """
        try:
            query = (
                select(self.model_type.occurred_at)
                .where(
                    self.model_type.code == code,
                    self.model_type.occurred_at >= start,
                    self.model_type.occurred_at < end,
                )
            )
            result = await db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error retrieving scan times for {code}: {e}") from e

    async def get_top_values(
        self,
        db: AsyncSession,
        code: str,
        field_name: str,
        limit: int = 10
    ) -> List[Tuple[str, int]]:
        """
        Get the most frequent non-blank values of a scan field.

        Ties are broken by the value that was seen first.

        Args:
            db: Database session
            code: The short code
            field_name: Column to group by, e.g. ``country`` or ``city``
            limit: Maximum number of groups

        Returns:
            List of ``(value, count)`` tuples, most frequent first

        Raises:
            RepositoryError: On database errors
        """
        column = getattr(self.model_type, field_name)
        scan_count = func.count(self.model_type.id).label("scan_count")
        try:
            query = (
                select(column, scan_count)
                .where(
                    self.model_type.code == code,
                    column.is_not(None),
                    func.trim(column) != "",
                )
                .group_by(column)
                .order_by(desc(scan_count), func.min(self.model_type.id))
                .limit(limit)
            )
            result = await db.execute(query)
            return [(value, count) for value, count in result.all()]
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error aggregating {field_name} for {code}: {e}") from e

    async def get_user_agent_counts(self, db: AsyncSession, code: str) -> List[Tuple[Optional[str], int]]:
        """
        Get scan counts grouped by raw user agent string.

        Raises:
            RepositoryError: On database errors
        """
        try:
            query = (
                select(self.model_type.user_agent, func.count(self.model_type.id))
                .where(self.model_type.code == code)
                .group_by(self.model_type.user_agent)
            )
            result = await db.execute(query)
            return [(user_agent, count) for user_agent, count in result.all()]
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error aggregating user agents for {code}: {e}") from e

    async def get_recent(self, db: AsyncSession, code: str, limit: int = 10) -> List[ScanEvent]:
        """
        Get the most recent scans for a code, newest first.

        Raises:
            RepositoryError: On database errors
        """
        try:
            query = (
                select(self.model_type)
                .where(self.model_type.code == code)
                .order_by(desc(self.model_type.occurred_at), desc(self.model_type.id))
                .limit(limit)
            )
            result = await db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error retrieving recent scans for {code}: {e}") from e
