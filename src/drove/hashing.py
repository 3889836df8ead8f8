"""Key derivation utilities.

Provides:
- structural_key: a ready-made cache-key function for composite load keys
  (dicts, lists, sets, dataclasses, pydantic models) that are not usable as
  dict keys on their own
- make_cache_key: a stable string form of a cache identity, used for keys in
  external stores
- quick_hash: short hex digests for long keys

Performance:
- Blake3 provides 3-5x faster byte hashing when installed.
  Falls back to SHA256 automatically.
"""

from __future__ import annotations

import dataclasses
import hashlib
from collections.abc import Hashable, Mapping
from typing import Any

try:
    import blake3 as _blake3_mod

    BLAKE3_AVAILABLE = True
    _blake3_hash = _blake3_mod.blake3
except ImportError:
    BLAKE3_AVAILABLE = False
    _blake3_hash = None  # type: ignore[assignment]

_SIMPLE_TYPES = (str, int, float, bool)
_TYPE_TAGS = {int: "i", float: "f", bool: "b"}

# Keys longer than this are hashed when rendered for an external store
_MAX_KEY_LENGTH = 200


# =============================================================================
# Byte Hashing
# =============================================================================


def blake3_hash(data: bytes, length: int = 32) -> bytes:
    """Hash bytes using Blake3 (or SHA256 fallback).

    Args:
        data: Bytes to hash
        length: Output length in bytes (default 32 = 256 bits)
    """
    if _blake3_hash is not None:
        return _blake3_hash(data).digest(length=length)
    digest = hashlib.sha256(data).digest()
    return digest[:length] if length < 32 else digest


def quick_hash(value: str | bytes, length: int = 16) -> str:
    """Hex digest of a string or bytes, truncated to `length` characters."""
    data: bytes = value.encode("utf-8") if type(value) is str else value  # type: ignore[assignment]
    return blake3_hash(data, (length + 1) >> 1).hex()[:length]


# =============================================================================
# Structural Keys
# =============================================================================


def structural_key(value: Any, _depth: int = 0) -> Hashable:
    """Convert a composite value into an equivalent hashable identity.

    Two values that compare equal produce equal keys, regardless of dict or
    set ordering. Containers are tagged so that a list and a tuple with the
    same items stay distinct. Use it as a cache-key function:

        DataLoader(load_users, DataLoaderOptions(cache_key_fn=structural_key))

    Raises:
        TypeError: if a leaf value is not hashable, or nesting is too deep.
    """
    if _depth > 100:
        raise TypeError("structural_key: value is nested too deeply")

    if value is None or type(value) in _SIMPLE_TYPES or type(value) is bytes:
        return value

    depth = _depth + 1

    if isinstance(value, Mapping):
        items = [(structural_key(k, depth), structural_key(v, depth)) for k, v in value.items()]
        return ("dict", tuple(sorted(items, key=lambda kv: repr(kv[0]))))

    if isinstance(value, list):
        return ("list", tuple(structural_key(v, depth) for v in value))

    if isinstance(value, tuple):
        return ("tuple", tuple(structural_key(v, depth) for v in value))

    if isinstance(value, set | frozenset):
        return ("set", tuple(sorted((structural_key(v, depth) for v in value), key=repr)))

    # Slow path: pydantic models, dataclasses, plain objects
    name = type(value).__qualname__
    if hasattr(value, "model_dump"):
        return (name, structural_key(value.model_dump(), depth))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return (name, structural_key(dataclasses.asdict(value), depth))

    try:
        hash(value)
    except TypeError:
        if hasattr(value, "__dict__"):
            return (name, structural_key(vars(value), depth))
        raise TypeError(f"structural_key: unhashable value of type {name}") from None
    return value


# =============================================================================
# External Store Keys
# =============================================================================


def make_cache_key(identity: Any, namespace: str = "") -> str:
    """Render a cache identity as a stable string for an external store.

    str identities render as themselves, so they stay readable in Redis.
    Other simple values carry a type tag (1 -> "i:1", 1.0 -> "f:1.0") so they
    never share a key with the str of the same text. Composite identities are
    rendered through structural_key and hashed. Long renderings are hashed as
    well.
    """
    if type(identity) is str:
        rendered = identity
    elif identity is None:
        rendered = "n:"
    elif (tag := _TYPE_TAGS.get(type(identity))) is not None:
        rendered = f"{tag}:{identity!r}"
    else:
        rendered = "#" + quick_hash(repr(structural_key(identity)), 32)

    if len(rendered) > _MAX_KEY_LENGTH:
        rendered = "#" + quick_hash(rendered, 32)
    return f"{namespace}:{rendered}" if namespace else rendered


__all__ = [
    "BLAKE3_AVAILABLE",
    "blake3_hash",
    "make_cache_key",
    "quick_hash",
    "structural_key",
]
