"""Explicit success-or-failure results.

A Result carries either a value (which may legitimately be None) or the
exception that prevented it. Value caches use it to report misses without
overloading None, and batch functions may use it to fail individual keys:

    async def load_users(ids: list[int]) -> list[Result[User]]:
        rows = await db.fetch_users(ids)
        return [Result.ok(rows[i]) if i in rows else Result.failed(LookupError(i)) for i in ids]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from drove.errors import CacheMiss

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """A value, or the exception that stands in for it."""

    value: T | None = None
    error: BaseException | None = None

    @classmethod
    def ok(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failed(cls, error: BaseException) -> Result[T]:
        if error is None:
            raise ValueError("Result.failed() requires an exception")
        return cls(error=error)

    @classmethod
    def miss(cls, key: object = None) -> Result[T]:
        """A failed result signalling that a cache holds nothing for `key`."""
        return cls(error=CacheMiss(key))

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    @property
    def is_miss(self) -> bool:
        return isinstance(self.error, CacheMiss)

    def get(self) -> T:
        """Return the value, raising the stored exception on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def get_or(self, default: T) -> T:
        """Return the value, or `default` on failure."""
        return self.value if self.error is None else default  # type: ignore[return-value]


__all__ = ["Result"]
