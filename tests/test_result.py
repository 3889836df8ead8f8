"""Tests for drove.result and drove.errors."""

from __future__ import annotations

import pytest

from drove.errors import BatchContractError, CacheMiss, DroveError
from drove.result import Result


class TestResult:
    def test_ok(self):
        result = Result.ok(1)
        assert result.is_success
        assert not result.is_failure
        assert result.get() == 1

    def test_ok_none(self):
        result = Result.ok(None)
        assert result.is_success
        assert result.get() is None

    def test_failed(self):
        error = ValueError("nope")
        result = Result.failed(error)

        assert result.is_failure
        assert not result.is_miss
        with pytest.raises(ValueError, match="nope"):
            result.get()
        assert result.get_or("default") == "default"

    def test_failed_requires_exception(self):
        with pytest.raises(ValueError):
            Result.failed(None)  # type: ignore[arg-type]

    def test_miss(self):
        result = Result.miss("k")

        assert result.is_miss
        assert result.is_failure
        assert result.error.key == "k"
        with pytest.raises(KeyError):
            result.get()

    def test_frozen(self):
        with pytest.raises(AttributeError):
            Result.ok(1).value = 2  # type: ignore[misc]


class TestErrors:
    def test_batch_contract_error(self):
        error = BatchContractError(expected=3, actual=2)
        assert isinstance(error, DroveError)
        assert error.expected == 3
        assert error.actual == 2
        assert "2 values for 3 keys" in str(error)

    def test_cache_miss(self):
        error = CacheMiss("user:1")
        assert isinstance(error, KeyError)
        assert isinstance(error, DroveError)
        assert str(error) == "Cache miss for key 'user:1'"
