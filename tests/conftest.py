"""Shared fixtures for drove tests."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest


class RecordingBatch:
    """Batch function that records every call it receives.

    Uppercases string keys by default; pass `fn` to compute values
    differently, or `error` to fail every call.
    """

    def __init__(self, fn: Any = None, error: BaseException | None = None, delay: float = 0.0):
        self.calls: list[list[Any]] = []
        self._fn = fn or (lambda k: k.upper() if isinstance(k, str) else k)
        self.error = error
        self.delay = delay

    async def __call__(self, keys: list[Any]) -> list[Any]:
        self.calls.append(list(keys))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [self._fn(k) for k in keys]

    @property
    def call_count(self) -> int:
        return len(self.calls)


@pytest.fixture
def batch() -> RecordingBatch:
    return RecordingBatch()
