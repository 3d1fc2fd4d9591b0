"""
Resolution cache for short codes.

Maps ``code`` to its destination in Redis so redirects can skip the store.
The store is authoritative; an entry never outlives the link's expiry.

Entries are written with an absolute expiry (``PXAT``) computed when the
link was read, so a write that lands late still dies on time. A destination
change leaves a fence holding the link's new version; writes carrying an
older version are dropped, so a populate that read the old destination
cannot re-cache it after the invalidation.
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from redis.exceptions import RedisError

from dynalink.core import metrics
from dynalink.core.timeutils import to_epoch_ms, utcnow
from dynalink.services.exceptions import CacheUnavailableError

logger = logging.getLogger(__name__)

# KEYS: entry, fence. ARGV: destination, version ms, expiry ms epoch
POPULATE_SCRIPT = """
local fence = redis.call("GET", KEYS[2])
if fence and tonumber(fence) > tonumber(ARGV[2]) then
    return 0
end
redis.call("SET", KEYS[1], ARGV[1], "PXAT", ARGV[3])
return 1
"""

# KEYS: entry, fence. ARGV: version ms, fence lifetime ms
INVALIDATE_SCRIPT = """
redis.call("SET", KEYS[2], ARGV[1], "PX", ARGV[2])
return redis.call("DEL", KEYS[1])
"""


def compute_cache_ttl(
    expires_at: Optional[datetime],
    now: datetime,
    default_ttl: int,
) -> Optional[int]:
    """
    Compute how long a cache entry for a link may live.

    Args:
        expires_at: The link's expiry, or None if it never expires
        now: Current time, naive UTC
        default_ttl: Upper bound in seconds

    Returns:
        TTL in whole seconds, or None when less than one second remains and
        the entry must not be written
    """
    if expires_at is None:
        return default_ttl
    remaining = math.floor((expires_at - now).total_seconds())
    if remaining < 1:
        return None
    return min(default_ttl, remaining)


class ResolutionCache:
    """
    Redis-backed ``code -> destination`` cache.

    Every call is bounded by ``timeout``; Redis errors and timeouts surface
    as CacheUnavailableError so callers can decide how to degrade.
    """

    def __init__(self, client, default_ttl: int, timeout: float, key_prefix: str = "r:"):
        """
        Args:
            client: redis.asyncio client with ``decode_responses=True``
            default_ttl: TTL in seconds for links without expiry
            timeout: Per-call timeout in seconds
            key_prefix: Prefix of every cache key
        """
        self.client = client
        self.default_ttl = default_ttl
        self.timeout = timeout
        self.key_prefix = key_prefix

    def key(self, code: str) -> str:
        return f"{self.key_prefix}{code}"

    def fence_key(self, code: str) -> str:
        return f"{self.key_prefix}v:{code}"

    async def _call(self, operation: str, code: str, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            metrics.cache_errors.add(1, {"operation": operation})
            raise CacheUnavailableError(f"Cache {operation} timed out for {code}") from e
        except (RedisError, OSError) as e:
            metrics.cache_errors.add(1, {"operation": operation})
            raise CacheUnavailableError(f"Cache {operation} failed for {code}: {e}") from e

    async def get(self, code: str) -> Optional[str]:
        """
        Look up the cached destination for ``code``.

        Raises:
            CacheUnavailableError: If Redis failed or timed out
        """
        return await self._call("get", code, self.client.get(self.key(code)))

    async def set(
        self,
        code: str,
        destination: str,
        ttl: Optional[int] = None,
        now: Optional[datetime] = None,
        version: Optional[datetime] = None,
    ) -> bool:
        """
        Cache ``destination`` for ``code`` until ``now + ttl``.

        Args:
            code: The short code
            destination: Destination read from the store
            ttl: Lifetime in seconds, counted from ``now``
            now: When the link was read, naive UTC
            version: The link's ``updated_at`` at that read

        Returns:
            True if the entry was written, False if it was skipped or a newer
            destination change fenced it off

        Raises:
            CacheUnavailableError: If Redis failed or timed out
        """
        ttl = self.default_ttl if ttl is None else ttl
        if ttl < 1:
            return False
        expires_ms = to_epoch_ms((now or utcnow()) + timedelta(seconds=ttl))
        version_ms = to_epoch_ms(version) if version is not None else 0
        written = await self._call(
            "set",
            code,
            self.client.eval(
                POPULATE_SCRIPT, 2, self.key(code), self.fence_key(code),
                destination, version_ms, expires_ms,
            ),
        )
        if not written:
            logger.debug(f"Skipped caching {code}; a newer destination change fenced it")
            return False
        logger.debug(f"Cached {code} until {expires_ms}")
        return True

    async def invalidate(self, code: str, version: Optional[datetime] = None) -> None:
        """
        Remove any cached destination for ``code``.

        With ``version``, also fence off writes of older versions for one
        default TTL.

        Raises:
            CacheUnavailableError: If Redis failed or timed out
        """
        if version is None:
            await self._call("invalidate", code, self.client.delete(self.key(code)))
        else:
            await self._call(
                "invalidate",
                code,
                self.client.eval(
                    INVALIDATE_SCRIPT, 2, self.key(code), self.fence_key(code),
                    to_epoch_ms(version), self.default_ttl * 1000,
                ),
            )
        logger.debug(f"Invalidated cache entry for {code}")


class NullResolutionCache(ResolutionCache):
    """Cache that never stores anything, used when caching is disabled."""

    def __init__(self, default_ttl: int = 0):
        super().__init__(client=None, default_ttl=default_ttl, timeout=0)

    async def get(self, code: str) -> Optional[str]:
        return None

    async def set(self, code, destination, ttl=None, now=None, version=None) -> bool:
        return False

    async def invalidate(self, code: str, version: Optional[datetime] = None) -> None:
        return None
