"""Value encoding for external value caches.

Values are stored as compact JSON, with orjson when it is installed and
stdlib json otherwise. `null` decodes back to None, which is what lets a
cached None be told apart from a missing key. Non-str dict keys are
stringified by both encoders.
"""

from __future__ import annotations

from typing import Any

try:
    import orjson

    ORJSON_AVAILABLE = True

    def encode(value: Any) -> bytes:
        return orjson.dumps(value, option=orjson.OPT_NON_STR_KEYS)

    def decode(data: bytes | str) -> Any:
        return orjson.loads(data)

except ImportError:
    import json as _json

    ORJSON_AVAILABLE = False

    def encode(value: Any) -> bytes:  # type: ignore[misc]
        return _json.dumps(value, separators=(",", ":")).encode("utf-8")

    def decode(data: bytes | str) -> Any:  # type: ignore[misc]
        return _json.loads(data)


__all__ = ["ORJSON_AVAILABLE", "decode", "encode"]
