"""Construction-time configuration for a DataLoader."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable

    from drove.cache_map import CacheMap
    from drove.stats import StatisticsCollector
    from drove.value_cache import ValueCache


@dataclass(slots=True)
class DataLoaderOptions:
    """Options recognized by DataLoader.

    Attributes:
        batching_enabled: Queue loads until dispatch(). When False every
            load() immediately calls the batch function with a single key.
        caching_enabled: Memoize futures in the promise cache (and consult
            the value cache). When False every load() gets a fresh future.
        max_batch_size: Upper bound on keys per batch function call. A
            dispatch with more queued keys makes several calls. None = no cap.
        cache_key_fn: Maps a load key to its cache identity. Needed when load
            keys are unhashable or several keys name the same entity; see
            drove.hashing.structural_key. None = the key itself.
        cache_map: Promise cache to use. None = a new SimpleCacheMap.
        value_cache: Second cache tier. None = NoOpValueCache.
        statistics_collector: Receives load/batch/cache events.
            None = a new SimpleStatisticsCollector.
    """

    batching_enabled: bool = True
    caching_enabled: bool = True
    max_batch_size: int | None = None
    cache_key_fn: Callable[[Any], Hashable] | None = None
    cache_map: CacheMap | None = None
    value_cache: ValueCache | None = None
    statistics_collector: StatisticsCollector | None = None

    def __post_init__(self) -> None:
        if self.max_batch_size is not None and self.max_batch_size < 1:
            raise ValueError(f"max_batch_size must be >= 1 or None, got {self.max_batch_size}")
        if self.cache_key_fn is not None and not callable(self.cache_key_fn):
            raise TypeError("cache_key_fn must be callable")


__all__ = ["DataLoaderOptions"]
