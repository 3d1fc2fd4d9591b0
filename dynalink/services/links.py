"""Link management service for the dynalink service.

This module contains the LinkService class which implements business logic
for link creation with collision handling, link lookup and destination
updates with synchronous cache invalidation.
"""

import logging
from datetime import datetime
from functools import partial
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dynalink.cache.resolution_cache import ResolutionCache, compute_cache_ttl
from dynalink.core import metrics
from dynalink.core.config import settings
from dynalink.core.incident_log import STALE_CACHE_RISK, report_incident
from dynalink.core.timeutils import utcnow
from dynalink.db.session import db_transaction
from dynalink.models.link import Link
from dynalink.repositories.base import RepositoryError, DuplicateEntityError
from dynalink.repositories.link_repository import LinkRepository
from dynalink.services.background import BackgroundTaskRunner
from dynalink.services.codegen import generate_code
from dynalink.services.exceptions import (
    AliasAlreadyExistsError,
    CacheUnavailableError,
    CodeGenerationError,
    LinkNotFoundError,
    StoreUnavailableError,
)
from dynalink.services.validation import (
    normalize_alias,
    validate_destination,
    validate_expiry,
)

logger = logging.getLogger(__name__)


class LinkService:
    """
    Service for link business logic.

    The store is the source of truth. The cache is primed after creation
    without waiting, and invalidated after a destination change before the
    change is acknowledged.
    """

    def __init__(
        self,
        link_repository: LinkRepository,
        cache: ResolutionCache,
        task_runner: BackgroundTaskRunner,
        code_generator: Optional[Callable[[], str]] = None,
        max_attempts: Optional[int] = None,
    ):
        """
        Initialize the link service.

        Args:
            link_repository: Repository for link data access
            cache: Resolution cache to prime and invalidate
            task_runner: Runner for fire-and-forget side effects
            code_generator: Callable returning a fresh code; defaults to the
                configured length and alphabet
            max_attempts: Bound on code generation attempts
        """
        self.link_repository = link_repository
        self.cache = cache
        self.task_runner = task_runner
        self.code_generator = code_generator or partial(
            generate_code, settings.CODE_LENGTH, settings.CODE_ALPHABET
        )
        self.max_attempts = max_attempts or settings.CODE_GENERATION_MAX_ATTEMPTS

    @db_transaction()
    async def _insert_link(
        self,
        db: AsyncSession,
        code: str,
        destination: str,
        alias: Optional[str],
        expires_at: Optional[datetime],
    ) -> Link:
        return await self.link_repository.create_link(
            db,
            {
                "code": code,
                "destination": destination,
                "alias": alias,
                "expires_at": expires_at,
            },
        )

    async def create_link(
        self,
        db: AsyncSession,
        destination: str,
        alias: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Link:
        """
        Create a link with a generated code or the requested alias.

        Args:
            db: Database session
            destination: Absolute URI to redirect to
            alias: Optional caller-chosen code
            expires_at: Optional expiry, strictly in the future

        Returns:
            Link: The created link

        Raises:
            LinkValidationError: If any input is invalid
            AliasAlreadyExistsError: If the alias is already in use
            CodeGenerationError: If no unused code was found within the attempt limit
            StoreUnavailableError: If the store failed
        """
        destination = validate_destination(destination)
        alias = normalize_alias(alias)
        expires_at = validate_expiry(expires_at)

        link = None
        for attempt in range(1, self.max_attempts + 1):
            code = alias or self.code_generator()
            try:
                link = await self._insert_link(db, code, destination, alias, expires_at)
                break
            except DuplicateEntityError:
                if alias:
                    raise AliasAlreadyExistsError(f"Alias '{alias}' is already in use")
                metrics.codegen_collisions.add(1)
                logger.warning(f"Generated code collision on attempt {attempt}/{self.max_attempts}")
            except RepositoryError as e:
                logger.error(f"Error creating link: {e}")
                raise StoreUnavailableError("Failed to create link") from e

        if link is None:
            logger.error(f"Failed to generate an unused code after {self.max_attempts} attempts")
            raise CodeGenerationError("Failed to generate code")

        logger.info(f"Created link {link.code}")
        self._prime_cache(link)
        return link

    def _prime_cache(self, link: Link) -> None:
        now = utcnow()
        ttl = compute_cache_ttl(link.expires_at, now, self.cache.default_ttl)
        if ttl is None:
            return
        self.task_runner.submit(
            self.cache.set(link.code, link.destination, ttl, now=now, version=link.updated_at),
            name="prime_cache",
            code=link.code,
        )

    async def get_link(self, db: AsyncSession, code: str) -> Link:
        """
        Get a link by code, expired or not.

        Raises:
            LinkNotFoundError: If no link with this code exists
            StoreUnavailableError: If the store failed
        """
        try:
            link = await self.link_repository.get_by_code(db, code)
        except RepositoryError as e:
            logger.error(f"Error retrieving link {code}: {e}")
            raise StoreUnavailableError(f"Failed to retrieve link '{code}'") from e
        if link is None:
            raise LinkNotFoundError(f"Link with code '{code}' not found")
        return link

    @db_transaction()
    async def _write_destination(self, db: AsyncSession, code: str, destination: str) -> Optional[Link]:
        return await self.link_repository.update_destination(db, code, destination)

    async def update_destination(self, db: AsyncSession, code: str, destination: str) -> Link:
        """
        Change where a code points.

        The store write is committed first. The cache entry is then removed
        before returning, so the next resolution reads the new destination.
        If the cache cannot be reached the update still succeeds and the
        stale entry is reported.

        Args:
            db: Database session
            code: Code of the link to update
            destination: New absolute URI

        Returns:
            Link: The updated link

        Raises:
            InvalidDestinationError: If the destination is invalid
            LinkNotFoundError: If no link with this code exists
            StoreUnavailableError: If the store failed
        """
        destination = validate_destination(destination)

        try:
            link = await self._write_destination(db, code, destination)
        except RepositoryError as e:
            logger.error(f"Error updating link {code}: {e}")
            raise StoreUnavailableError(f"Failed to update link '{code}'") from e

        if link is None:
            raise LinkNotFoundError(f"Link with code '{code}' not found")

        try:
            await self.cache.invalidate(code, version=link.updated_at)
        except CacheUnavailableError as e:
            logger.error(f"Cache invalidation failed for {code}; stale redirects possible until TTL lapses: {e}")
            metrics.cache_invalidation_failures.add(1)
            report_incident(STALE_CACHE_RISK, code, e, destination=destination)

        logger.info(f"Updated destination for {code}")
        return link
