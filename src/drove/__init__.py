"""drove — Batched, cached async loading of key-addressed data.

Collects the individual loads made during one tick into a single batch call,
shares one future per key, and optionally keeps values in a second,
external cache tier.

Quick start (zero deps, pure asyncio):

    from drove import DataLoader

    async def load_users(ids: list[int]) -> list[User]:
        rows = await db.fetch_users(ids)
        return [rows.get(i) for i in ids]

    loader = DataLoader(load_users)
    alice, bob = loader.load(1), loader.load(2)
    await loader.dispatch()           # one call: load_users([1, 2])

With a Redis value cache shared across processes:

    from drove import DataLoaderOptions, RedisValueCache

    cache = RedisValueCache.from_url("redis://localhost:6379/0", prefix="users:", ttl=300)
    loader = DataLoader(load_users, DataLoaderOptions(value_cache=cache))
"""

from __future__ import annotations

from typing import Any

from drove._logging import set_tracer

# Promise caches
from drove.cache_map import (
    CacheEntry,
    CacheMap,
    CacheStats,
    LRUCacheMap,
    SimpleCacheMap,
    TTLCacheMap,
)

# Errors & results
from drove.errors import BatchContractError, CacheMiss, DroveError

# Key derivation
from drove.hashing import make_cache_key, quick_hash, structural_key

# Core
from drove.loader import DataLoader, QueuedLoad
from drove.options import DataLoaderOptions
from drove.registry import DataLoaderRegistry
from drove.result import Result

# Statistics
from drove.stats import (
    LoaderStats,
    NoOpStatisticsCollector,
    SimpleStatisticsCollector,
    StatisticsCollector,
)

# Value caches (RedisValueCache needs the `redis` extra at runtime)
from drove.value_cache import (
    MemoryValueCache,
    NoOpValueCache,
    RedisValueCache,
    ValueCache,
)


def configure(*, tracer: Any = None) -> None:
    """Configure drove with optional integrations.

    Args:
        tracer: OpenTelemetry-compatible tracer for span creation.
                Should support tracer.start_as_current_span(name, attributes={}).
    """
    if tracer is not None:
        set_tracer(tracer)


__version__ = "0.1.0"

__all__ = [
    # Configuration
    "configure",
    # Core
    "DataLoader",
    "DataLoaderOptions",
    "DataLoaderRegistry",
    "QueuedLoad",
    # Results & errors
    "BatchContractError",
    "CacheMiss",
    "DroveError",
    "Result",
    # Promise caches
    "CacheEntry",
    "CacheMap",
    "CacheStats",
    "LRUCacheMap",
    "SimpleCacheMap",
    "TTLCacheMap",
    # Value caches
    "MemoryValueCache",
    "NoOpValueCache",
    "RedisValueCache",
    "ValueCache",
    # Statistics
    "LoaderStats",
    "NoOpStatisticsCollector",
    "SimpleStatisticsCollector",
    "StatisticsCollector",
    # Keys
    "make_cache_key",
    "quick_hash",
    "structural_key",
]
