"""Value caches: the optional second cache tier.

A promise cache holds asyncio futures, which cannot leave the process. A
ValueCache holds the plain values behind them, in a store that may be remote
and may outlive the loader (Redis, a shared in-memory dict, ...).

When a load misses the promise cache, the loader asks the value cache before
calling the batch function, and writes freshly loaded values back after it.

Contract:
- A miss is reported as Result.miss(), never as a value, because None is a
  legitimate cached value.
- get_many / set_many default to concurrent fan-out over get / set;
  override them when the store has bulk primitives.
- Failures may be raised or returned as failed results. The loader treats a
  failed read as a miss and ignores failed writes.

Usage:

    cache = RedisValueCache.from_url("redis://localhost:6379/0", prefix="users:", ttl=300)
    loader = DataLoader(load_users, DataLoaderOptions(value_cache=cache))
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import OrderedDict
from collections.abc import Hashable, Sequence
from threading import RLock
from typing import TYPE_CHECKING, Any, Generic, TypeVar, cast

from drove._json import decode, encode
from drove._logging import get_logger
from drove.cache_map import CacheEntry, CacheStats
from drove.hashing import make_cache_key
from drove.result import Result

if TYPE_CHECKING:
    import redis.asyncio as redis_asyncio

log = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


# =============================================================================
# ValueCache Interface
# =============================================================================


class ValueCache(ABC, Generic[K, V]):
    """Asynchronous store of raw values keyed by cache identity."""

    @abstractmethod
    async def get(self, key: K) -> Result[V]:
        """Return Result.ok(value), or Result.miss(key) if nothing is stored."""

    async def get_many(self, keys: Sequence[K]) -> list[Result[V]]:
        """Return one result per key, in order."""
        outcomes = await asyncio.gather(*(self.get(k) for k in keys), return_exceptions=True)
        return [o if isinstance(o, Result) else Result.failed(o) for o in outcomes]

    @abstractmethod
    async def set(self, key: K, value: V) -> None: ...

    async def set_many(self, keys: Sequence[K], values: Sequence[V]) -> None:
        """Store values positionally. A failed individual write does not stop the others."""
        if len(keys) != len(values):
            raise ValueError(f"set_many() got {len(keys)} keys and {len(values)} values")
        outcomes = await asyncio.gather(*(self.set(k, v) for k, v in zip(keys, values)), return_exceptions=True)
        if failed := sum(1 for o in outcomes if isinstance(o, BaseException)):
            log.debug("Value cache set_many had failures", extra={"failed": failed, "total": len(keys)})

    @abstractmethod
    async def delete(self, key: K) -> None: ...

    @abstractmethod
    async def clear(self) -> None: ...


class NoOpValueCache(ValueCache[Any, Any]):
    """Always misses and discards writes. The default second tier.

    With it, the promise cache is the only cache a loader has.
    """

    async def get(self, key: Any) -> Result[Any]:
        return Result.miss(key)

    async def get_many(self, keys: Sequence[Any]) -> list[Result[Any]]:
        return [Result.miss(k) for k in keys]

    async def set(self, key: Any, value: Any) -> None:
        pass

    async def set_many(self, keys: Sequence[Any], values: Sequence[Any]) -> None:
        pass

    async def delete(self, key: Any) -> None:
        pass

    async def clear(self) -> None:
        pass


NOOP_VALUE_CACHE = NoOpValueCache()


# =============================================================================
# In-Memory Value Cache
# =============================================================================


class MemoryValueCache(ValueCache[K, V]):
    """Process-local value cache with optional TTL and LRU size bound.

    Useful to share values between short-lived loaders in one process,
    e.g. one loader per web request over a cache that lives for the app.
    """

    def __init__(self, maxsize: int | None = None, ttl: float | None = None):
        if maxsize is not None and maxsize < 1:
            raise ValueError(f"maxsize must be >= 1, got {maxsize}")
        self._data: OrderedDict[K, CacheEntry[V]] = OrderedDict()
        self._lock = RLock()
        self.maxsize = maxsize
        self.ttl = ttl
        self.stats = CacheStats()

    async def get(self, key: K) -> Result[V]:
        with self._lock:
            if (entry := self._data.get(key)) is None:
                self.stats.misses += 1
                return Result.miss(key)
            if entry.is_expired():
                del self._data[key]
                self.stats.misses += 1
                self.stats.expirations += 1
                return Result.miss(key)
            self._data.move_to_end(key)
            entry.touch()
            self.stats.hits += 1
            return Result.ok(entry.value)

    async def get_many(self, keys: Sequence[K]) -> list[Result[V]]:
        return [await self.get(k) for k in keys]

    async def set(self, key: K, value: V) -> None:
        with self._lock:
            self._data.pop(key, None)
            if self.maxsize is not None:
                while len(self._data) >= self.maxsize:
                    self._data.popitem(last=False)
                    self.stats.evictions += 1
            self._data[key] = CacheEntry(value=value, ttl=self.ttl)
            self.stats.sets += 1

    async def set_many(self, keys: Sequence[K], values: Sequence[V]) -> None:
        if len(keys) != len(values):
            raise ValueError(f"set_many() got {len(keys)} keys and {len(values)} values")
        for k, v in zip(keys, values):
            await self.set(k, v)

    async def delete(self, key: K) -> None:
        with self._lock:
            self._data.pop(key, None)

    async def clear(self) -> None:
        with self._lock:
            self._data.clear()

    @property
    def size(self) -> int:
        return len(self._data)


# =============================================================================
# Redis / Valkey Value Cache
# =============================================================================


class RedisValueCache(ValueCache[Any, Any]):
    """Redis-backed value cache for values shared across processes.

    Features:
        - Values serialized as JSON (orjson when installed), so None is
          stored as `null` and stays distinguishable from a missing key
        - Key prefixing for namespacing
        - MGET for bulk reads, a non-transactional pipeline for bulk writes
        - Fail-open reads: a Redis error is logged and reported as a failed
          result, which the loader treats as a miss

    Identities that are not str/int/float/bool are rendered with
    drove.hashing.make_cache_key, so composite identities work as long as
    their rendering is stable across processes.
    """

    def __init__(self, client: redis_asyncio.Redis, prefix: str = "drove:", ttl: int | None = None):
        """Initialize with an async Redis client, a key prefix and an optional TTL in seconds."""
        self._client, self._prefix, self.ttl = client, prefix, ttl

    @property
    def client(self) -> redis_asyncio.Redis:
        """Access the underlying client for advanced operations."""
        return self._client

    @classmethod
    def from_url(
        cls,
        url: str,
        prefix: str = "drove:",
        ttl: int | None = None,
        max_connections: int = 10,
        socket_timeout: float = 1.0,
        socket_connect_timeout: float = 1.0,
    ) -> RedisValueCache:
        """Create a RedisValueCache from a connection URL.

        Supports redis://, rediss:// and the valkey:// / valkeys:// aliases.
        The connection is opened lazily on first use.
        """
        import redis.asyncio as redis_asyncio

        normalized_url = url.replace("valkey://", "redis://").replace("valkeys://", "rediss://")
        client = redis_asyncio.from_url(
            normalized_url,
            max_connections=max_connections,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_connect_timeout,
            decode_responses=False,
        )
        log.info("Redis value cache configured", extra={"prefix": prefix, "max_connections": max_connections})
        return cls(client, prefix=prefix, ttl=ttl)

    def _make_key(self, key: Any) -> str:
        return self._prefix + make_cache_key(key)

    def _decode(self, key: Any, data: bytes | None) -> Result[Any]:
        if data is None:
            return Result.miss(key)
        try:
            return Result.ok(decode(data))
        except (TypeError, ValueError) as e:
            log.warning("Redis value cache held an undecodable value", extra={"key": str(key)[:50], "error": str(e)})
            return Result.failed(e)

    async def get(self, key: Any) -> Result[Any]:
        try:
            data = cast("bytes | None", await self._client.get(self._make_key(key)))
        except Exception as e:
            log.warning("Redis value cache get failed", extra={"key": str(key)[:50], "error": str(e)})
            return Result.failed(e)
        return self._decode(key, data)

    async def get_many(self, keys: Sequence[Any]) -> list[Result[Any]]:
        if not keys:
            return []
        try:
            rows = cast("list[bytes | None]", await self._client.mget([self._make_key(k) for k in keys]))
        except Exception as e:
            log.warning("Redis value cache mget failed", extra={"keys": len(keys), "error": str(e)})
            return [Result.failed(e) for _ in keys]
        return [self._decode(k, data) for k, data in zip(keys, rows)]

    async def set(self, key: Any, value: Any) -> None:
        try:
            await self._client.set(self._make_key(key), encode(value), ex=self.ttl)
        except Exception as e:
            log.warning("Redis value cache set failed", extra={"key": str(key)[:50], "error": str(e)})

    async def set_many(self, keys: Sequence[Any], values: Sequence[Any]) -> None:
        if len(keys) != len(values):
            raise ValueError(f"set_many() got {len(keys)} keys and {len(values)} values")
        if not keys:
            return
        try:
            async with self._client.pipeline(transaction=False) as pipe:
                for k, v in zip(keys, values):
                    pipe.set(self._make_key(k), encode(v), ex=self.ttl)
                await pipe.execute()
        except Exception as e:
            log.warning("Redis value cache set_many failed", extra={"keys": len(keys), "error": str(e)})

    async def delete(self, key: Any) -> None:
        try:
            await self._client.delete(self._make_key(key))
        except Exception as e:
            log.warning("Redis value cache delete failed", extra={"key": str(key)[:50], "error": str(e)})

    async def clear(self) -> None:
        """Delete every key under this cache's prefix (SCAN, then DEL in batches)."""
        try:
            batch: list[bytes] = []
            async for k in self._client.scan_iter(match=f"{self._prefix}*", count=100):
                batch.append(k)
                if len(batch) >= 100:
                    await self._client.delete(*batch)
                    batch.clear()
            if batch:
                await self._client.delete(*batch)
        except Exception as e:
            log.warning("Redis value cache clear failed", extra={"prefix": self._prefix, "error": str(e)})

    async def aclose(self) -> None:
        """Close the underlying client."""
        await self._client.aclose()


__all__ = [
    "NOOP_VALUE_CACHE",
    "MemoryValueCache",
    "NoOpValueCache",
    "RedisValueCache",
    "ValueCache",
]
