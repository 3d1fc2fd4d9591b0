"""Usage aggregation service for the dynalink service.

This module contains the UsageAggregator, which computes a dashboard
snapshot for one code from its raw scan events on every request.
"""

import logging
import re
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from dynalink.core.config import settings
from dynalink.core.timeutils import last_days, start_of_day, utcnow
from dynalink.repositories.base import RepositoryError
from dynalink.repositories.link_repository import LinkRepository
from dynalink.repositories.scan_repository import ScanRepository
from dynalink.services.exceptions import LinkNotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)

DEVICE_CLASSES = ("mobile", "desktop", "tablet", "unknown")

# Checked before the mobile patterns; tablet user agents also say "mobile" or "android"
TABLET_PATTERN = re.compile(r"ipad|tablet|kindle|silk|playbook|android(?!.*mobile)", re.IGNORECASE)
MOBILE_PATTERN = re.compile(
    r"mobile|iphone|ipod|android|blackberry|opera mini|iemobile|windows phone",
    re.IGNORECASE,
)


def classify_device(user_agent: Optional[str]) -> str:
    """
    Classify a user agent string as mobile, desktop, tablet or unknown.

    Args:
        user_agent: Raw User-Agent header value

    Returns:
        str: One of ``DEVICE_CLASSES``
    """
    if user_agent is None or not user_agent.strip():
        return "unknown"
    if TABLET_PATTERN.search(user_agent):
        return "tablet"
    if MOBILE_PATTERN.search(user_agent):
        return "mobile"
    return "desktop"


class UsageAggregator:
    """
    Service computing usage snapshots.

    Counts and top lists are aggregated in SQL. The 7-day series is filtered
    by the store to its window and bucketed per UTC day here.
    """

    def __init__(
        self,
        link_repository: LinkRepository,
        scan_repository: ScanRepository,
        top_n: Optional[int] = None,
        recent_n: Optional[int] = None,
        days: Optional[int] = None,
    ):
        self.link_repository = link_repository
        self.scan_repository = scan_repository
        self.top_n = top_n or settings.ANALYTICS_TOP_N
        self.recent_n = recent_n or settings.ANALYTICS_RECENT_N
        self.days = days or settings.ANALYTICS_DAYS

    async def get_snapshot(self, db: AsyncSession, code: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Compute the usage snapshot for a code.

        Args:
            db: Database session
            code: The short code
            now: Current time, naive UTC

        Returns:
            Dict: The usage snapshot

        Raises:
            LinkNotFoundError: If no link with this code exists
            StoreUnavailableError: If the store failed
        """
        now = now or utcnow()
        try:
            link = await self.link_repository.get_by_code(db, code)
            if link is None:
                raise LinkNotFoundError(f"Link with code '{code}' not found")

            today = start_of_day(now)
            tomorrow = today + timedelta(days=1)

            total_count = await self.scan_repository.count_for_code(db, code)
            count_today = await self.scan_repository.count_for_code(db, code, today, tomorrow)
            time_series = await self._time_series(db, code, now)
            devices = await self._devices(db, code)
            top_countries = await self.scan_repository.get_top_values(db, code, "country", self.top_n)
            top_cities = await self.scan_repository.get_top_values(db, code, "city", self.top_n)
            recent = await self.scan_repository.get_recent(db, code, self.recent_n)
        except RepositoryError as e:
            logger.error(f"Error aggregating usage for {code}: {e}")
            raise StoreUnavailableError(f"Failed to aggregate usage for '{code}'") from e

        return {
            "code": link.code,
            "destination": link.destination,
            "created_at": link.created_at,
            "total_count": total_count,
            "count_today": count_today,
            "devices": devices,
            "top_countries": [{"country": value, "count": count} for value, count in top_countries],
            "top_cities": [{"city": value, "count": count} for value, count in top_cities],
            "time_series": time_series,
            "recent_events": [
                {
                    "occurred_at": event.occurred_at,
                    "country": event.country,
                    "city": event.city,
                    "device": classify_device(event.user_agent),
                    "referrer": event.referrer,
                }
                for event in recent
            ],
        }

    async def _time_series(self, db: AsyncSession, code: str, now: datetime):
        days = last_days(now, self.days)
        window_end = days[-1] + timedelta(days=1)
        occurrences = await self.scan_repository.get_occurrences(db, code, days[0], window_end)

        buckets = Counter(start_of_day(occurred_at) for occurred_at in occurrences)
        return [
            {"date": day.date().isoformat(), "count": buckets.get(day, 0)}
            for day in days
        ]

    async def _devices(self, db: AsyncSession, code: str) -> Dict[str, int]:
        devices = dict.fromkeys(DEVICE_CLASSES, 0)
        for user_agent, count in await self.scan_repository.get_user_agent_counts(db, code):
            devices[classify_device(user_agent)] += count
        return devices
