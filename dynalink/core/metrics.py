"""Application counters.

Instruments are created from the global meter provider, so they are no-ops
until telemetry is enabled.
"""

from dynalink.core.telemetry import get_meter

meter = get_meter("dynalink")

cache_hits = meter.create_counter(
    name="dynalink.cache.hits",
    description="Resolutions served from the cache",
    unit="1",
)

cache_misses = meter.create_counter(
    name="dynalink.cache.misses",
    description="Resolutions that fell through to the store",
    unit="1",
)

cache_errors = meter.create_counter(
    name="dynalink.cache.errors",
    description="Cache operations that failed or timed out",
    unit="1",
)

cache_invalidation_failures = meter.create_counter(
    name="dynalink.cache.invalidation_failures",
    description="Destination updates whose cache entry could not be removed",
    unit="1",
)

redirects = meter.create_counter(
    name="dynalink.redirects",
    description="Resolutions by outcome",
    unit="1",
)

background_failures = meter.create_counter(
    name="dynalink.background.failures",
    description="Fire-and-forget side effects that raised",
    unit="1",
)

codegen_collisions = meter.create_counter(
    name="dynalink.codegen.collisions",
    description="Generated codes that already existed",
    unit="1",
)
