"""Loader statistics.

A DataLoader reports what it does to a StatisticsCollector. The default
SimpleStatisticsCollector keeps thread-safe counters; plug in your own to
forward events to a metrics system:

    class PrometheusCollector(SimpleStatisticsCollector):
        def increment_batch_load_count(self, n: int) -> None:
            super().increment_batch_load_count(n)
            BATCH_KEYS.inc(n)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from threading import Lock
from typing import Any


@dataclass(slots=True)
class LoaderStats:
    """Counters for monitoring batching and caching effectiveness."""

    loads: int = 0  # load() calls, including each key of load_many()
    cache_hits: int = 0  # Served from the promise cache
    value_cache_hits: int = 0  # Served from the value cache at dispatch
    batch_invocations: int = 0  # Calls made to the batch function
    batch_loads: int = 0  # Keys sent to the batch function
    load_errors: int = 0  # Keys that failed individually
    batch_errors: int = 0  # Batch calls that failed as a whole

    @property
    def cache_hit_rate(self) -> float:
        """Percentage of loads served from either cache tier."""
        return ((self.cache_hits + self.value_cache_hits) / self.loads * 100) if self.loads else 0.0

    @property
    def avg_batch_size(self) -> float:
        return (self.batch_loads / self.batch_invocations) if self.batch_invocations else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "loads": self.loads,
            "cache_hits": self.cache_hits,
            "value_cache_hits": self.value_cache_hits,
            "batch_invocations": self.batch_invocations,
            "batch_loads": self.batch_loads,
            "load_errors": self.load_errors,
            "batch_errors": self.batch_errors,
            "cache_hit_rate": f"{self.cache_hit_rate:.1f}%",
            "avg_batch_size": f"{self.avg_batch_size:.1f}",
        }

    def __add__(self, other: LoaderStats) -> LoaderStats:
        return LoaderStats(
            loads=self.loads + other.loads,
            cache_hits=self.cache_hits + other.cache_hits,
            value_cache_hits=self.value_cache_hits + other.value_cache_hits,
            batch_invocations=self.batch_invocations + other.batch_invocations,
            batch_loads=self.batch_loads + other.batch_loads,
            load_errors=self.load_errors + other.load_errors,
            batch_errors=self.batch_errors + other.batch_errors,
        )


class StatisticsCollector(ABC):
    """Observer notified by a DataLoader as it works."""

    @abstractmethod
    def increment_load_count(self) -> None: ...

    @abstractmethod
    def increment_cache_hit_count(self) -> None: ...

    @abstractmethod
    def increment_value_cache_hit_count(self, n: int) -> None: ...

    @abstractmethod
    def increment_batch_load_count(self, n: int) -> None:
        """Record one batch function call for `n` keys."""

    @abstractmethod
    def increment_load_error_count(self) -> None: ...

    @abstractmethod
    def increment_batch_error_count(self) -> None: ...

    @abstractmethod
    def get_statistics(self) -> LoaderStats:
        """Return a snapshot of the counters."""


class SimpleStatisticsCollector(StatisticsCollector):
    """Thread-safe counters. The default collector."""

    def __init__(self) -> None:
        self._stats = LoaderStats()
        self._lock = Lock()

    def increment_load_count(self) -> None:
        with self._lock:
            self._stats.loads += 1

    def increment_cache_hit_count(self) -> None:
        with self._lock:
            self._stats.cache_hits += 1

    def increment_value_cache_hit_count(self, n: int) -> None:
        with self._lock:
            self._stats.value_cache_hits += n

    def increment_batch_load_count(self, n: int) -> None:
        with self._lock:
            self._stats.batch_invocations += 1
            self._stats.batch_loads += n

    def increment_load_error_count(self) -> None:
        with self._lock:
            self._stats.load_errors += 1

    def increment_batch_error_count(self) -> None:
        with self._lock:
            self._stats.batch_errors += 1

    def get_statistics(self) -> LoaderStats:
        with self._lock:
            return replace(self._stats)


class NoOpStatisticsCollector(StatisticsCollector):
    """Discards everything; get_statistics() always returns zeros."""

    def increment_load_count(self) -> None:
        pass

    def increment_cache_hit_count(self) -> None:
        pass

    def increment_value_cache_hit_count(self, n: int) -> None:
        pass

    def increment_batch_load_count(self, n: int) -> None:
        pass

    def increment_load_error_count(self) -> None:
        pass

    def increment_batch_error_count(self) -> None:
        pass

    def get_statistics(self) -> LoaderStats:
        return LoaderStats()


__all__ = [
    "LoaderStats",
    "NoOpStatisticsCollector",
    "SimpleStatisticsCollector",
    "StatisticsCollector",
]
