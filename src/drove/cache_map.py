"""Promise caches: the first, in-process cache tier.

A CacheMap maps a cache identity to the asyncio.Future a DataLoader handed
out for it. It only stores and forgets futures; it never resolves or rejects
them. Eviction policy is the map's business, the loader only relies on the
operations below.

    loader = DataLoader(load_users)                                  # SimpleCacheMap
    loader = DataLoader(load_users, DataLoaderOptions(cache_map=LRUCacheMap(10_000)))
    loader = DataLoader(load_users, DataLoaderOptions(cache_map=TTLCacheMap(ttl=30)))
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Hashable
from dataclasses import dataclass, field
from threading import RLock
from time import monotonic
from typing import Any, Generic, TypeVar

T = TypeVar("T")


# =============================================================================
# Cache Entry & Statistics
# =============================================================================


@dataclass(slots=True)
class CacheEntry(Generic[T]):
    """A cached value with optional TTL. Uses __slots__ for faster attribute access."""

    value: T
    created_at: float = field(default_factory=monotonic)
    ttl: float | None = None  # None = no expiration
    hits: int = 0
    _expires_at: float | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self._expires_at = (self.created_at + self.ttl) if self.ttl is not None else None

    def is_expired(self) -> bool:
        return (exp := self._expires_at) is not None and monotonic() >= exp

    def touch(self) -> None:
        """Record a cache hit."""
        self.hits += 1


@dataclass(slots=True)
class CacheStats:
    """Hit/miss counters for an in-process cache."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    evictions: int = 0
    expirations: int = 0

    @property
    def hit_rate(self) -> float:
        """Hit rate as a percentage."""
        total = self.hits + self.misses
        return (self.hits / total * 100) if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "hit_rate": f"{self.hit_rate:.1f}%",
        }


# =============================================================================
# CacheMap Interface
# =============================================================================


class CacheMap(ABC):
    """Interface of the promise cache. Implement for other eviction policies.

    Every operation must be individually atomic. The loader serializes
    check-then-set sequences itself.
    """

    @abstractmethod
    def contains(self, key: Hashable) -> bool: ...

    @abstractmethod
    def get(self, key: Hashable) -> asyncio.Future[Any] | None:
        """Return the future stored under `key`, or None if there is none."""

    @abstractmethod
    def set(self, key: Hashable, future: asyncio.Future[Any]) -> None: ...

    @abstractmethod
    def delete(self, key: Hashable) -> bool:
        """Remove `key`. Returns True if it was present."""

    @abstractmethod
    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""

    @property
    @abstractmethod
    def size(self) -> int: ...

    def __contains__(self, key: Hashable) -> bool:
        return self.contains(key)

    def __len__(self) -> int:
        return self.size


class SimpleCacheMap(CacheMap):
    """Unbounded insertion-ordered map with no eviction. The default."""

    def __init__(self) -> None:
        self._data: dict[Hashable, asyncio.Future[Any]] = {}

    def contains(self, key: Hashable) -> bool:
        return key in self._data

    def get(self, key: Hashable) -> asyncio.Future[Any] | None:
        return self._data.get(key)

    def set(self, key: Hashable, future: asyncio.Future[Any]) -> None:
        self._data[key] = future

    def delete(self, key: Hashable) -> bool:
        return self._data.pop(key, None) is not None

    def clear(self) -> int:
        count = len(self._data)
        self._data.clear()
        return count

    @property
    def size(self) -> int:
        return len(self._data)


class LRUCacheMap(CacheMap):
    """Size-bounded map that evicts the least recently used future.

    Uses OrderedDict for O(1) LRU tracking. Evicting an unresolved future
    does not cancel it; callers already holding it still get their value.
    """

    def __init__(self, maxsize: int):
        if maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self._data: OrderedDict[Hashable, asyncio.Future[Any]] = OrderedDict()
        self._lock = RLock()
        self.maxsize = maxsize
        self.stats = CacheStats()

    def contains(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._data

    def get(self, key: Hashable) -> asyncio.Future[Any] | None:
        with self._lock:
            try:
                self._data.move_to_end(key)
            except KeyError:
                self.stats.misses += 1
                return None
            self.stats.hits += 1
            return self._data[key]

    def set(self, key: Hashable, future: asyncio.Future[Any]) -> None:
        with self._lock:
            self._data.pop(key, None)
            while len(self._data) >= self.maxsize:
                self._data.popitem(last=False)
                self.stats.evictions += 1
            self._data[key] = future
            self.stats.sets += 1

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._data)
            self._data.clear()
            return count

    @property
    def size(self) -> int:
        return len(self._data)


class TTLCacheMap(CacheMap):
    """Map whose futures expire `ttl` seconds after they were stored.

    An expired entry behaves exactly like an absent one, so the next load
    for it goes back to the batch function. Optionally also size-bounded
    (oldest first).
    """

    def __init__(self, ttl: float, maxsize: int | None = None):
        if ttl <= 0:
            raise ValueError(f"ttl must be > 0, got {ttl}")
        if maxsize is not None and maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self._data: OrderedDict[Hashable, CacheEntry[asyncio.Future[Any]]] = OrderedDict()
        self._lock = RLock()
        self.ttl = ttl
        self.maxsize = maxsize
        self.stats = CacheStats()

    def _live_entry(self, key: Hashable) -> CacheEntry[asyncio.Future[Any]] | None:
        if (entry := self._data.get(key)) is None:
            return None
        if entry.is_expired():
            del self._data[key]
            self.stats.expirations += 1
            return None
        return entry

    def contains(self, key: Hashable) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def get(self, key: Hashable) -> asyncio.Future[Any] | None:
        with self._lock:
            if (entry := self._live_entry(key)) is None:
                self.stats.misses += 1
                return None
            entry.touch()
            self.stats.hits += 1
            return entry.value

    def set(self, key: Hashable, future: asyncio.Future[Any]) -> None:
        with self._lock:
            self._data.pop(key, None)
            if self.maxsize is not None:
                while len(self._data) >= self.maxsize:
                    self._data.popitem(last=False)
                    self.stats.evictions += 1
            self._data[key] = CacheEntry(value=future, ttl=self.ttl)
            self.stats.sets += 1

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._data)
            self._data.clear()
            return count

    def purge_expired(self) -> int:
        """Drop every expired entry now. Returns the number dropped."""
        with self._lock:
            expired = [k for k, entry in self._data.items() if entry.is_expired()]
            for k in expired:
                del self._data[k]
            self.stats.expirations += len(expired)
            return len(expired)

    @property
    def size(self) -> int:
        """Number of live entries. Expired entries are purged first."""
        with self._lock:
            self.purge_expired()
            return len(self._data)


__all__ = [
    "CacheEntry",
    "CacheMap",
    "CacheStats",
    "LRUCacheMap",
    "SimpleCacheMap",
    "TTLCacheMap",
]
