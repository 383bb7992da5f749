"""Deterministic JSON serialization used as the manifest hash pre-image."""

from __future__ import annotations

import dataclasses
import hashlib
import json
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            raise ValueError("canonical JSON cannot encode NaN or infinity")
        return value
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, Enum):
        return _jsonable(value.value)
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            field.name: _jsonable(getattr(value, field.name))
            for field in dataclasses.fields(value)
        }
    raise TypeError(f"Object of type {type(value).__name__} is not canonical-JSON serializable")


def canonical_json(value: Any) -> str:
    """Serialize ``value`` with recursively sorted keys and no whitespace.

    Arrays keep their order; only object keys are reordered, so any two
    structurally equal graphs produce byte-identical output.
    """

    return json.dumps(
        _jsonable(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def content_hash(payload: str | bytes) -> str:
    data = payload.encode("utf-8") if isinstance(payload, str) else payload
    return "0x" + hashlib.sha256(data).hexdigest()


def canonical_hash(value: Any) -> str:
    return content_hash(canonical_json(value))


__all__ = ["canonical_hash", "canonical_json", "content_hash"]
