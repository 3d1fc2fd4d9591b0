"""Caching layer for short code resolution."""

from dynalink.cache.resolution_cache import (
    ResolutionCache,
    NullResolutionCache,
    compute_cache_ttl,
)

__all__ = ["ResolutionCache", "NullResolutionCache", "compute_cache_ttl"]
