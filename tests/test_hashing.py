"""Tests for drove.hashing — byte hashing, structural keys, external store keys."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from drove.hashing import blake3_hash, make_cache_key, quick_hash, structural_key


# =============================================================================
# quick_hash / blake3_hash
# =============================================================================


class TestQuickHash:
    def test_returns_hex_string(self):
        result = quick_hash("hello")
        assert all(c in "0123456789abcdef" for c in result)

    def test_default_length_16(self):
        assert len(quick_hash("hello")) == 16

    def test_custom_length(self):
        assert len(quick_hash("hello", length=8)) == 8
        assert len(quick_hash("hello", length=9)) == 9
        assert len(quick_hash("hello", length=32)) == 32

    def test_deterministic(self):
        assert quick_hash("hello") == quick_hash("hello")

    def test_bytes_and_str_agree(self):
        assert quick_hash(b"hello") == quick_hash("hello")

    def test_different_inputs_different_hashes(self):
        assert quick_hash("hello") != quick_hash("world")


class TestBlake3Hash:
    def test_default_length(self):
        assert len(blake3_hash(b"data")) == 32

    def test_truncated(self):
        assert len(blake3_hash(b"data", 8)) == 8


# =============================================================================
# structural_key
# =============================================================================


@dataclass
class UserQuery:
    id: int
    fields: list[str]


class Plain:
    __hash__ = None  # type: ignore[assignment]

    def __init__(self, a):
        self.a = a


class TestStructuralKey:
    def test_simple_values_pass_through(self):
        for value in ("a", 1, 1.5, True, None, b"raw"):
            assert structural_key(value) == value

    def test_dict_order_does_not_matter(self):
        assert structural_key({"a": 1, "b": 2}) == structural_key({"b": 2, "a": 1})

    def test_result_is_hashable(self):
        key = structural_key({"ids": [1, 2], "tags": {"x", "y"}})
        assert hash(key) == hash(structural_key({"tags": {"y", "x"}, "ids": [1, 2]}))

    def test_list_and_tuple_stay_distinct(self):
        assert structural_key([1, 2]) != structural_key((1, 2))

    def test_list_order_matters(self):
        assert structural_key([1, 2]) != structural_key([2, 1])

    def test_set_order_does_not_matter(self):
        assert structural_key({3, 1, 2}) == structural_key(frozenset({2, 3, 1}))

    def test_dataclass(self):
        assert structural_key(UserQuery(1, ["name"])) == structural_key(UserQuery(1, ["name"]))
        assert structural_key(UserQuery(1, ["name"])) != structural_key(UserQuery(2, ["name"]))

    def test_pydantic_like_model(self):
        class Model:
            def __init__(self, **data):
                self.data = data

            def model_dump(self):
                return self.data

        assert structural_key(Model(a=1, b=[2])) == structural_key(Model(b=[2], a=1))

    def test_unhashable_object_uses_attributes(self):
        assert structural_key(Plain([1])) == structural_key(Plain([1]))

    def test_hashable_object_is_kept(self):
        marker = object()
        assert structural_key(marker) is marker

    def test_too_deep(self):
        value: list = []
        for _ in range(150):
            value = [value]
        with pytest.raises(TypeError, match="too deeply"):
            structural_key(value)


# =============================================================================
# make_cache_key
# =============================================================================


class TestMakeCacheKey:
    def test_str_values_are_readable(self):
        assert make_cache_key("user:1") == "user:1"

    def test_other_simple_values_are_tagged(self):
        assert make_cache_key(42) == "i:42"
        assert make_cache_key(1.5) == "f:1.5"
        assert make_cache_key(True) == "b:True"
        assert make_cache_key(None) == "n:"

    def test_same_text_different_types_do_not_collide(self):
        keys = {make_cache_key(1), make_cache_key("1"), make_cache_key(1.0), make_cache_key(True)}
        assert len(keys) == 4

    def test_namespace(self):
        assert make_cache_key(42, namespace="users") == "users:i:42"

    def test_composite_values_are_hashed(self):
        key = make_cache_key({"id": 1})
        assert key.startswith("#")
        assert key == make_cache_key({"id": 1})
        assert key != make_cache_key({"id": 2})

    def test_long_keys_are_hashed(self):
        key = make_cache_key("x" * 500)
        assert key.startswith("#")
        assert len(key) == 33

    def test_distinct_types_do_not_collide(self):
        assert make_cache_key(("a", 1)) != make_cache_key(["a", 1])
