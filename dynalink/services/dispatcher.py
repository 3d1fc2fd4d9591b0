"""Redirect resolution for short codes.

This module contains the RedirectDispatcher, which answers "where does this
code point right now": cache first, store on miss, expiry enforced on the
store record, and cache population plus scan recording scheduled in the
background.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dynalink.cache.resolution_cache import ResolutionCache, compute_cache_ttl
from dynalink.core import metrics
from dynalink.core.config import settings
from dynalink.core.timeutils import utcnow
from dynalink.db.session import SessionManager
from dynalink.models.link import Link
from dynalink.models.scan import (
    CITY_MAX_LENGTH,
    COUNTRY_MAX_LENGTH,
    REFERRER_MAX_LENGTH,
    USER_AGENT_MAX_LENGTH,
)
from dynalink.repositories.base import RepositoryError
from dynalink.repositories.link_repository import LinkRepository
from dynalink.repositories.scan_repository import ScanRepository
from dynalink.services.background import BackgroundTaskRunner
from dynalink.services.exceptions import CacheUnavailableError, StoreUnavailableError

logger = logging.getLogger(__name__)


class ResolutionOutcome(str, enum.Enum):
    REDIRECT = "redirect"
    NOT_FOUND = "not_found"
    GONE = "gone"


@dataclass
class Resolution:
    """Result of resolving a code."""
    outcome: ResolutionOutcome
    destination: Optional[str] = None
    cache_hit: bool = False


def _clip(value: Optional[str], limit: int) -> Optional[str]:
    return value[:limit] if value is not None else None


@dataclass
class ScanContext:
    """Client metadata recorded with a scan, cut to the column widths."""
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None

    def __post_init__(self):
        self.user_agent = _clip(self.user_agent, USER_AGENT_MAX_LENGTH)
        self.referrer = _clip(self.referrer, REFERRER_MAX_LENGTH)
        self.country = _clip(self.country, COUNTRY_MAX_LENGTH)
        self.city = _clip(self.city, CITY_MAX_LENGTH)


class RedirectDispatcher:
    """
    Resolves codes to destinations.

    Cache failures degrade to store reads. Store failures and timeouts fail
    the resolution with StoreUnavailableError. Side effects never change
    the outcome.
    """

    def __init__(
        self,
        link_repository: LinkRepository,
        scan_repository: ScanRepository,
        cache: ResolutionCache,
        task_runner: BackgroundTaskRunner,
        session_factory: async_sessionmaker,
        store_timeout: Optional[float] = None,
    ):
        self.link_repository = link_repository
        self.scan_repository = scan_repository
        self.cache = cache
        self.task_runner = task_runner
        self.session_factory = session_factory
        self.store_timeout = store_timeout or settings.STORE_TIMEOUT_SECONDS

    async def resolve(
        self,
        db: AsyncSession,
        code: str,
        client: Optional[ScanContext] = None,
        record_scan: bool = True,
        now: Optional[datetime] = None,
    ) -> Resolution:
        """
        Resolve ``code`` to its current destination.

        Args:
            db: Database session for the store lookup
            code: The short code
            client: Client metadata for the scan event
            record_scan: Whether a successful resolution records a scan
            now: Current time, naive UTC

        Returns:
            Resolution: The outcome and, for redirects, the destination

        Raises:
            StoreUnavailableError: If the store failed or timed out
        """
        destination = await self._cache_lookup(code)
        if destination is not None:
            metrics.cache_hits.add(1)
            if record_scan:
                self._schedule_scan(code, client)
            return self._finish(Resolution(ResolutionOutcome.REDIRECT, destination, cache_hit=True))

        metrics.cache_misses.add(1)
        link = await self._store_lookup(db, code)

        if link is None:
            return self._finish(Resolution(ResolutionOutcome.NOT_FOUND))

        now = now or utcnow()
        if link.is_expired(now):
            self.task_runner.submit(self.cache.invalidate(code), name="invalidate_expired", code=code)
            return self._finish(Resolution(ResolutionOutcome.GONE))

        ttl = compute_cache_ttl(link.expires_at, now, self.cache.default_ttl)
        if ttl is not None:
            self.task_runner.submit(
                self.cache.set(code, link.destination, ttl, now=now, version=link.updated_at),
                name="populate_cache",
                code=code,
            )
        if record_scan:
            self._schedule_scan(code, client)
        return self._finish(Resolution(ResolutionOutcome.REDIRECT, link.destination))

    async def _cache_lookup(self, code: str) -> Optional[str]:
        try:
            return await self.cache.get(code)
        except CacheUnavailableError as e:
            logger.warning(f"Cache unavailable, reading store for {code}: {e}")
            return None

    async def _store_lookup(self, db: AsyncSession, code: str) -> Optional[Link]:
        try:
            return await asyncio.wait_for(
                self.link_repository.get_by_code(db, code),
                timeout=self.store_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Store lookup timed out for {code}")
            raise StoreUnavailableError(f"Store lookup timed out for '{code}'") from e
        except RepositoryError as e:
            logger.error(f"Store lookup failed for {code}: {e}")
            raise StoreUnavailableError(f"Store lookup failed for '{code}'") from e

    def _schedule_scan(self, code: str, client: Optional[ScanContext]) -> None:
        self.task_runner.submit(
            self.record_scan(code, client or ScanContext()),
            name="record_scan",
            code=code,
        )

    async def record_scan(self, code: str, client: ScanContext, occurred_at: Optional[datetime] = None) -> None:
        """Append a scan event in its own session and transaction."""
        async with SessionManager.transaction_context(self.session_factory) as session:
            await self.scan_repository.record_scan(
                session,
                {
                    "code": code,
                    "occurred_at": occurred_at or utcnow(),
                    "user_agent": client.user_agent,
                    "referrer": client.referrer,
                    "country": client.country,
                    "city": client.city,
                },
            )

    @staticmethod
    def _finish(resolution: Resolution) -> Resolution:
        metrics.redirects.add(1, {"outcome": resolution.outcome.value, "cache_hit": resolution.cache_hit})
        return resolution
