"""Batching and caching of key-addressed async loads.

Collects individual load(key) calls made during one logical tick and serves
them with a single call to a batch function, then memoizes the results so
repeated loads for the same key never hit the batch function again.

How It Works:

    load("a") ---+                                   +--> future("a") = "A"
    load("b") ---+--> dispatch() --> batch(["a","b"]) +--> future("b") = "B"
    load("a") ---+  (same future as the first load)

Key Features:
- Per-key dedup: loads for a cached identity share one future
- Order: keys reach the batch function in load order; values are mapped
  back positionally
- Two cache tiers: futures in a CacheMap, raw values in an optional
  ValueCache consulted before the batch function and filled after it
- Error fan-out: a failed batch fails every future in it and evicts them,
  so the next load retries instead of replaying the failure

Usage Examples:

    async def load_users(ids: list[int]) -> list[User]:
        rows = await db.fetch_users(ids)
        return [rows.get(i) for i in ids]

    loader = DataLoader(load_users)

    # 1. Queue loads, then dispatch them as one batch
    a, b = loader.load(1), loader.load(2)
    await loader.dispatch()
    user_1, user_2 = await a, await b

    # 2. Dispatch until nothing is queued (loads made by callbacks included)
    users = loader.load_many([3, 4, 5])
    await loader.adispatch_and_join()

    # 3. No batching: each load calls the batch function right away
    loader = DataLoader(load_users, DataLoaderOptions(batching_enabled=False))
    user = await loader.load(1)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from collections.abc import Mapping
from dataclasses import dataclass
from threading import RLock
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from drove._logging import get_logger, span
from drove.cache_map import SimpleCacheMap
from drove.errors import BatchContractError
from drove.options import DataLoaderOptions
from drove.result import Result
from drove.stats import SimpleStatisticsCollector
from drove.value_cache import NOOP_VALUE_CACHE, NoOpValueCache

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine, Hashable, Iterable

    from drove.cache_map import CacheMap
    from drove.stats import LoaderStats
    from drove.value_cache import ValueCache

log = get_logger(__name__)

K = TypeVar("K")
V = TypeVar("V")


# =============================================================================
# Queue Entries
# =============================================================================


@dataclass(slots=True, eq=False)
class QueuedLoad(Generic[V]):
    """A load waiting for dispatch: the key, its cache identity and its future."""

    key: Any
    cache_key: Hashable
    future: asyncio.Future[V]


# =============================================================================
# DataLoader
# =============================================================================


class DataLoader(Generic[K, V]):
    """Batches and caches loads for one batch function.

    The batch function receives a list of keys and returns, possibly
    asynchronously, either:
        - a sequence of the same length, in the same order, where an entry
          may be an exception or a failed Result to fail only that key
        - a mapping from key to value; absent keys load as None

    A loader binds to the event loop it is first used on (or `loop`). Keep
    one loader per unit of work, typically one per request, unless its
    promise cache is meant to be shared.

    Example:
        loader = DataLoader(load_users, DataLoaderOptions(max_batch_size=100))
        future = loader.load(42)
        await loader.dispatch()
        user = await future
    """

    def __init__(
        self,
        batch_load_fn: Callable[[list[K]], Any],
        options: DataLoaderOptions | None = None,
        *,
        name: str | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        """Initialize a data loader.

        Args:
            batch_load_fn: Batch function, sync or async, as described above.
            options: Loader configuration. None = DataLoaderOptions().
            name: Name used in logs, spans and registry stats. Defaults to the
                batch function's qualified name.
            loop: Event loop to create futures on. None = the running loop at
                first use. Pass a new, idle loop to drive the loader from
                synchronous code with dispatch_and_join().
        """
        if batch_load_fn is None or not callable(batch_load_fn):
            raise TypeError("batch_load_fn must be a callable")

        self._batch_load_fn = batch_load_fn
        self.options = opts = options if options is not None else DataLoaderOptions()
        self.name = name or getattr(batch_load_fn, "__qualname__", None) or type(batch_load_fn).__name__

        self._cache_map: CacheMap = opts.cache_map if opts.cache_map is not None else SimpleCacheMap()
        self._value_cache: ValueCache = opts.value_cache if opts.value_cache is not None else NOOP_VALUE_CACHE
        self._stats = opts.statistics_collector if opts.statistics_collector is not None else SimpleStatisticsCollector()

        # Insertion order is the order keys reach the batch function
        self._queue: list[QueuedLoad[V]] = []
        # Loads waiting for, or in, a value cache lookup
        self._lookup_queue: list[QueuedLoad[V]] = []
        self._lookups_in_flight = 0
        self._lookup_task: asyncio.Task[None] | None = None
        # Guards both queues and every check-then-set on the cache map
        self._lock = RLock()
        self._loop = loop
        self._tasks: set[asyncio.Task[Any]] = set()

    def __repr__(self) -> str:
        return f"<DataLoader {self.name!r} queued={len(self._queue)} cached={self._cache_map.size}>"

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def cache_map(self) -> CacheMap:
        return self._cache_map

    @property
    def value_cache(self) -> ValueCache:
        return self._value_cache

    @property
    def statistics(self) -> LoaderStats:
        """Snapshot of this loader's counters."""
        return self._stats.get_statistics()

    def get_cache_key(self, key: K) -> Hashable:
        """Return the cache identity for `key`."""
        fn = self.options.cache_key_fn
        return fn(key) if fn is not None else key  # type: ignore[return-value]

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _completed(self, value: Any) -> asyncio.Future[Any]:
        future = self._get_loop().create_future()
        future.set_result(value)
        return future

    def _uses_value_cache(self) -> bool:
        return self.options.caching_enabled and not isinstance(self._value_cache, NoOpValueCache)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = self._get_loop().create_task(coro, name=f"drove.{self.name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load(self, key: K) -> asyncio.Future[V]:
        """Request the value for `key`.

        Returns the cached future if the key's identity is already known.
        Otherwise returns a new future and:
            - with a value cache configured, looks the identity up first; a
              hit resolves the future without any batch call, a miss queues
              the key for the next dispatch()
            - without one, queues the key for the next dispatch()
            - with batching disabled, starts a single-key load right away

        The future is shared by every caller of the same identity. A caller
        that needs its own timeout should wrap it in asyncio.shield(); a
        cancelled future is dropped from the cache and the next load for its
        key starts over.

        Raises:
            ValueError: if `key` is None.
            Exception: whatever the cache-key function raises. Nothing is
                queued in that case.
        """
        if key is None:
            raise ValueError("load() key must not be None")
        cache_key = self.get_cache_key(key)
        opts = self.options

        with self._lock:
            loop = self._get_loop()
            self._stats.increment_load_count()

            if opts.caching_enabled and (cached := self._cache_map.get(cache_key)) is not None:
                if not cached.cancelled():
                    self._stats.increment_cache_hit_count()
                    return cached
                self._discard(cache_key, cached)

            future: asyncio.Future[V] = loop.create_future()
            future.add_done_callback(functools.partial(self._discard_if_cancelled, cache_key))
            entry = QueuedLoad(key=key, cache_key=cache_key, future=future)
            if not opts.batching_enabled:
                self._spawn(self._load_now(entry))
            elif self._uses_value_cache():
                self._lookup_queue.append(entry)
                if self._lookup_task is None or self._lookup_task.done():
                    self._lookup_task = self._spawn(self._run_lookups())
            else:
                self._queue.append(entry)

            if opts.caching_enabled:
                self._cache_map.set(cache_key, future)
            return future

    def load_many(self, keys: Iterable[K]) -> asyncio.Future[list[V]]:
        """Request several keys at once; resolves to their values in order.

        The keys are queued contiguously. The returned future fails with the
        first failure among them.
        """
        with self._lock:
            futures = [self.load(k) for k in keys]
            if not futures:
                return self._completed([])
            return asyncio.gather(*futures)

    # -------------------------------------------------------------------------
    # Dispatching
    # -------------------------------------------------------------------------

    def dispatch(self) -> asyncio.Future[list[Any]]:
        """Send everything queued so far to the batch function.

        The queue is drained immediately; loads made after this call go to
        the next dispatch. When value cache lookups are still running, the
        returned future first waits for them so that their misses join this
        batch.

        The returned future resolves, once every dispatched key is settled, to
        one outcome per key in queue order: its value, or the exception that
        failed it. It does not fail because a batch did. Keys served by the
        value cache never reach the queue and have no outcome here.
        """
        with self._lock:
            entries, self._queue = self._queue, []
            lookup = self._lookup_task if self._lookup_task is not None and not self._lookup_task.done() else None

        if not self.options.batching_enabled:
            return self._completed([])
        if lookup is not None:
            log.debug("Dispatch waiting for value cache lookups", extra={"loader": self.name, "batch_size": len(entries)})
            return self._spawn(self._dispatch_after(lookup, entries))
        if not entries:
            return self._completed([])

        log.debug("Dispatching load queue", extra={"loader": self.name, "batch_size": len(entries)})
        return self._spawn(self._load_entries(entries))

    def dispatch_depth(self) -> int:
        """Number of keys waiting for a batch: queued, or still in a value cache lookup."""
        with self._lock:
            return len(self._queue) + len(self._lookup_queue) + self._lookups_in_flight

    async def adispatch_and_join(self) -> list[Any]:
        """Dispatch repeatedly until nothing is queued.

        Loads queued while a batch resolves (dependent lookups) are picked up
        by the next round. Returns the outcomes of every round, in order, in
        the shape dispatch() produces: a value per loaded key, or the
        exception that failed it.
        """
        results = list(await self.dispatch())
        while self.dispatch_depth() > 0:
            results.extend(await self.dispatch())
        return results

    def dispatch_and_join(self) -> list[Any]:
        """Blocking form of adispatch_and_join() for synchronous callers.

        Runs the loader's loop until the queue drains when that loop is idle,
        or waits on it from this thread when it runs in another one.

        Returns:
            One outcome per dispatched key, in dispatch order. A key that
            failed contributes its exception instance rather than a value,
            so check with isinstance(outcome, BaseException) before use.

        Raises:
            RuntimeError: if called from the loader's own running loop,
                where blocking would deadlock. Await adispatch_and_join().
        """
        loop = self._loop
        if loop is None:
            # Never used: nothing can be queued
            return []

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            raise RuntimeError(
                "dispatch_and_join() would block the loader's own event loop; "
                "use `await loader.adispatch_and_join()` instead"
            )
        if loop.is_running():
            return asyncio.run_coroutine_threadsafe(self.adispatch_and_join(), loop).result()
        return loop.run_until_complete(self.adispatch_and_join())

    async def _dispatch_after(self, lookup: asyncio.Task[None], entries: list[QueuedLoad[V]]) -> list[Any]:
        """Wait for running value cache lookups, then load `entries` plus their misses."""
        try:
            await asyncio.wait([lookup])
        except asyncio.CancelledError:
            for entry in entries:
                entry.future.cancel()
            raise
        with self._lock:
            entries, self._queue = entries + self._queue, []
        if not entries:
            return []
        log.debug("Dispatching load queue", extra={"loader": self.name, "batch_size": len(entries)})
        return await self._load_entries(entries)

    async def _run_lookups(self) -> None:
        """Consult the value cache for loads that missed the promise cache.

        Loads made during the same tick share one get_many call. Hits resolve
        their futures here; misses join the load queue.
        """
        entries: list[QueuedLoad[V]] = []
        try:
            while True:
                with self._lock:
                    entries, self._lookup_queue = self._lookup_queue, []
                    self._lookups_in_flight = len(entries)
                    if not entries:
                        self._lookup_task = None
                        return
                misses = await self._lookup_value_cache(entries)
                with self._lock:
                    self._queue.extend(e for e in misses if not e.future.done())
                    self._lookups_in_flight = 0
        except asyncio.CancelledError:
            with self._lock:
                self._lookup_task = None
                self._lookups_in_flight = 0
            for entry in entries:
                entry.future.cancel()
            raise

    async def _load_now(self, entry: QueuedLoad[V]) -> None:
        """Load a single key outside the queue (batching disabled)."""
        entries = [entry]
        if self._uses_value_cache():
            try:
                entries = await self._lookup_value_cache(entries)
            except asyncio.CancelledError:
                entry.future.cancel()
                raise
        if entries:
            await self._load_entries(entries)

    async def _load_entries(self, entries: list[QueuedLoad[V]]) -> list[Any]:
        """Load drained entries, split into batches of at most max_batch_size."""
        size = self.options.max_batch_size
        if size is None or len(entries) <= size:
            return await self._load_batch(entries)

        chunks = [entries[i : i + size] for i in range(0, len(entries), size)]
        outcomes = await asyncio.gather(*(self._load_batch(chunk) for chunk in chunks))
        return [o for chunk in outcomes for o in chunk]

    async def _load_batch(self, entries: list[QueuedLoad[V]]) -> list[Any]:
        outcomes: list[Any] = [None] * len(entries)
        try:
            await self._fetch(entries, outcomes)
        except asyncio.CancelledError:
            for entry in entries:
                if not entry.future.done():
                    self._evict(entry.cache_key, entry.future)
                    entry.future.cancel()
            raise
        return outcomes

    async def _lookup_value_cache(self, entries: list[QueuedLoad[V]]) -> list[QueuedLoad[V]]:
        """Settle the entries the value cache can serve; return the rest."""
        pending = [e for e in entries if not e.future.done()]
        if not pending:
            return []

        keys = [e.cache_key for e in pending]
        try:
            cached = await self._value_cache.get_many(keys)
        except Exception as e:
            log.warning(
                "Value cache lookup failed, loading from batch function",
                extra={"loader": self.name, "batch_size": len(keys), "error": str(e)},
            )
            return pending
        if len(cached) != len(keys):
            log.warning(
                "Value cache returned the wrong number of results, ignoring them",
                extra={"loader": self.name, "expected": len(keys), "actual": len(cached)},
            )
            return pending

        misses: list[QueuedLoad[V]] = []
        for entry, result in zip(pending, cached):
            if isinstance(result, Result) and result.is_success:
                if not entry.future.done():
                    entry.future.set_result(result.value)
            else:
                misses.append(entry)

        if hits := len(pending) - len(misses):
            self._stats.increment_value_cache_hit_count(hits)
            log.debug("Value cache hits", extra={"loader": self.name, "hits": hits, "misses": len(misses)})
        return misses

    async def _fetch(self, entries: list[QueuedLoad[V]], outcomes: list[Any]) -> None:
        """Call the batch function for `entries` and settle their futures."""
        keys = [e.key for e in entries]
        self._stats.increment_batch_load_count(len(keys))

        try:
            with span("drove.batch_load", loader=self.name, batch_size=len(keys)):
                values = await self._call_batch_fn(keys)
        except Exception as e:
            self._stats.increment_batch_error_count()
            log.warning(
                "Batch load failed",
                extra={"loader": self.name, "batch_size": len(keys), "error": str(e)},
            )
            for i, entry in enumerate(entries):
                outcomes[i] = e
                self._fail(entry, e)
            return

        loaded_keys: list[Hashable] = []
        loaded_values: list[Any] = []
        for i, (entry, value) in enumerate(zip(entries, values)):
            error: BaseException | None = None
            if isinstance(value, Result):
                error, value = value.error, value.value
            elif isinstance(value, Exception):
                error = value

            if error is not None:
                outcomes[i] = error
                self._stats.increment_load_error_count()
                self._fail(entry, error)
                continue

            outcomes[i] = value
            if not entry.future.done():
                entry.future.set_result(value)
            loaded_keys.append(entry.cache_key)
            loaded_values.append(value)

        if failed := len(entries) - len(loaded_keys):
            log.debug("Batch load had per-key failures", extra={"loader": self.name, "failed": failed, "batch_size": len(keys)})

        await self._write_back(loaded_keys, loaded_values)

    async def _call_batch_fn(self, keys: list[K]) -> list[Any]:
        result = self._batch_load_fn(keys)
        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, Mapping):
            return [result.get(k) for k in keys]

        values = list(result)
        if len(values) != len(keys):
            raise BatchContractError(expected=len(keys), actual=len(values))
        return values

    async def _write_back(self, keys: list[Hashable], values: list[Any]) -> None:
        if not keys or not self._uses_value_cache():
            return
        try:
            await self._value_cache.set_many(keys, values)
        except Exception as e:
            log.warning(
                "Value cache write-back failed",
                extra={"loader": self.name, "batch_size": len(keys), "error": str(e)},
            )

    def _fail(self, entry: QueuedLoad[V], error: BaseException) -> None:
        self._evict(entry.cache_key, entry.future)
        if not entry.future.done():
            entry.future.set_exception(error)

    def _evict(self, cache_key: Hashable, future: asyncio.Future[Any]) -> None:
        """Drop `cache_key` from the promise cache if it still maps to `future`."""
        if not self.options.caching_enabled:
            return
        with self._lock:
            if self._cache_map.get(cache_key) is future:
                self._cache_map.delete(cache_key)

    def _discard(self, cache_key: Hashable, future: asyncio.Future[Any]) -> None:
        """Forget a cancelled future: evict it and take its load off both queues."""
        with self._lock:
            self._evict(cache_key, future)
            self._queue = [e for e in self._queue if e.future is not future]
            self._lookup_queue = [e for e in self._lookup_queue if e.future is not future]

    def _discard_if_cancelled(self, cache_key: Hashable, future: asyncio.Future[Any]) -> None:
        if future.cancelled():
            self._discard(cache_key, future)

    # -------------------------------------------------------------------------
    # Cache Management
    # -------------------------------------------------------------------------

    def clear(self, key: K) -> DataLoader[K, V]:
        """Forget the cached future for `key`; the next load queues it again.

        The value cache is left alone; use aclear() to drop both tiers.
        """
        cache_key = self.get_cache_key(key)
        with self._lock:
            self._cache_map.delete(cache_key)
        return self

    def clear_all(self) -> DataLoader[K, V]:
        """Forget every cached future."""
        with self._lock:
            self._cache_map.clear()
        return self

    async def aclear(self, key: K) -> DataLoader[K, V]:
        """Forget `key` in the promise cache and delete it from the value cache."""
        cache_key = self.get_cache_key(key)
        with self._lock:
            self._cache_map.delete(cache_key)
        try:
            await self._value_cache.delete(cache_key)
        except Exception as e:
            log.warning("Value cache delete failed", extra={"loader": self.name, "key": str(cache_key)[:50], "error": str(e)})
        return self

    async def aclear_all(self) -> DataLoader[K, V]:
        """Empty the promise cache and the value cache."""
        with self._lock:
            self._cache_map.clear()
        try:
            await self._value_cache.clear()
        except Exception as e:
            log.warning("Value cache clear failed", extra={"loader": self.name, "error": str(e)})
        return self

    def prime(self, key: K, value: V | Exception) -> DataLoader[K, V]:
        """Seed the promise cache with a known value, or an exception to fail with.

        Does nothing if `key` already has a cached future: the first write wins.
        """
        cache_key = self.get_cache_key(key)
        with self._lock:
            if not self._cache_map.contains(cache_key):
                future: asyncio.Future[V] = self._get_loop().create_future()
                if isinstance(value, Exception):
                    future.set_exception(value)
                else:
                    future.set_result(value)
                self._cache_map.set(cache_key, future)
        return self

    def prime_many(self, values: Mapping[K, V | Exception]) -> DataLoader[K, V]:
        """prime() every item of `values`."""
        with self._lock:
            for key, value in values.items():
                self.prime(key, value)
        return self


__all__ = ["DataLoader", "QueuedLoad"]
