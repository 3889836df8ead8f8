"""Exceptions raised by drove."""

from __future__ import annotations


class DroveError(Exception):
    """Base class for drove errors."""


class BatchContractError(DroveError):
    """A batch function returned a result that does not line up with its keys.

    Fails every load in the affected batch; the batch is not retried.
    """

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Batch function returned {actual} values for {expected} keys; "
            "the result MUST be the same size as the key list"
        )
        self.expected = expected
        self.actual = actual


class CacheMiss(DroveError, KeyError):
    """A value cache does not hold the requested key."""

    def __init__(self, key: object = None):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Cache miss for key {self.key!r}"


__all__ = ["BatchContractError", "CacheMiss", "DroveError"]
