"""A named set of loaders dispatched together.

Resolving one loader's batch often queues keys on another (users, then their
teams, then the teams' owners). A registry dispatches every loader it holds
and keeps going until all of them are idle:

    registry = DataLoaderRegistry()
    registry.register("users", DataLoader(load_users))
    registry.register("teams", DataLoader(load_teams))

    user = registry["users"].load(1)
    await registry.adispatch_all_and_join()
"""

from __future__ import annotations

import asyncio
from threading import RLock
from typing import TYPE_CHECKING, Any

from drove._logging import get_logger
from drove.stats import LoaderStats

if TYPE_CHECKING:
    from collections.abc import Iterator

    from drove.loader import DataLoader

log = get_logger(__name__)


class DataLoaderRegistry:
    """Holds loaders by name. Thread-safe for registration."""

    def __init__(self, loaders: dict[str, DataLoader[Any, Any]] | None = None):
        self._loaders: dict[str, DataLoader[Any, Any]] = dict(loaders or {})
        self._lock = RLock()

    def register(self, name: str, loader: DataLoader[Any, Any]) -> DataLoaderRegistry:
        """Add (or replace) a loader under `name`."""
        with self._lock:
            if name in self._loaders and self._loaders[name] is not loader:
                log.debug("Replacing registered loader", extra={"loader": name})
            self._loaders[name] = loader
        return self

    def unregister(self, name: str) -> DataLoader[Any, Any] | None:
        """Remove and return the loader under `name`, if any."""
        with self._lock:
            return self._loaders.pop(name, None)

    def get_loader(self, name: str) -> DataLoader[Any, Any] | None:
        with self._lock:
            return self._loaders.get(name)

    def __getitem__(self, name: str) -> DataLoader[Any, Any]:
        with self._lock:
            return self._loaders[name]

    def __contains__(self, name: object) -> bool:
        return name in self._loaders

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._loaders))

    def __len__(self) -> int:
        return len(self._loaders)

    @property
    def names(self) -> list[str]:
        with self._lock:
            return list(self._loaders)

    def _snapshot(self) -> list[tuple[str, DataLoader[Any, Any]]]:
        with self._lock:
            return list(self._loaders.items())

    def dispatch_depth(self) -> int:
        """Keys queued across every registered loader."""
        return sum(loader.dispatch_depth() for _, loader in self._snapshot())

    async def adispatch_all(self) -> dict[str, list[Any]]:
        """Dispatch every loader once; return each loader's outcomes by name.

        Every queue is drained before any batch function runs.
        """
        snapshot = self._snapshot()
        futures = [loader.dispatch() for _, loader in snapshot]
        outcomes = await asyncio.gather(*futures) if futures else []
        return {name: result for (name, _), result in zip(snapshot, outcomes)}

    async def adispatch_all_and_join(self) -> dict[str, list[Any]]:
        """Dispatch every loader until none has queued keys.

        Returns the accumulated outcomes per loader name.
        """
        results: dict[str, list[Any]] = {name: [] for name, _ in self._snapshot()}
        rounds = 0
        while True:
            for name, outcomes in (await self.adispatch_all()).items():
                results.setdefault(name, []).extend(outcomes)
            rounds += 1
            if self.dispatch_depth() == 0:
                break
        log.debug("Registry dispatch complete", extra={"rounds": rounds, "loaders": len(results)})
        return results

    def stats(self) -> dict[str, dict[str, Any]]:
        """Statistics per loader name, plus their sum under '_total'."""
        per_loader = {name: loader.statistics for name, loader in self._snapshot()}
        total = sum(per_loader.values(), LoaderStats())
        return {**{name: s.to_dict() for name, s in per_loader.items()}, "_total": total.to_dict()}


__all__ = ["DataLoaderRegistry"]
