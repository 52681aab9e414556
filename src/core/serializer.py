"""Canonical serialization for deterministic opportunity payloads."""

from __future__ import annotations

import json
from decimal import Decimal
from enum import Enum
from typing import Any

from eth_utils.crypto import keccak


def _normalize(obj: Any) -> Any:
    if isinstance(obj, float):
        raise ValueError("Floating point values are not allowed")

    if isinstance(obj, Decimal):
        if not obj.is_finite():
            raise ValueError("Non-finite Decimal values are not allowed")
        return format(obj.normalize(), "f")

    if isinstance(obj, Enum):
        return _normalize(obj.value)

    if isinstance(obj, dict):
        normalized = {}
        for key, value in obj.items():
            if not isinstance(key, str):
                raise TypeError("All dictionary keys must be strings")
            normalized[key] = _normalize(value)
        return normalized

    if isinstance(obj, (list, tuple)):
        return [_normalize(item) for item in obj]

    if obj is None or isinstance(obj, (str, int, bool)):
        return obj

    raise TypeError(f"Unsupported type for serialization: {type(obj).__name__}")


class CanonicalSerializer:
    """
    Produces deterministic JSON for logging and fingerprinting.

    Rules:
    - Keys sorted alphabetically (recursive)
    - No whitespace
    - Decimals rendered as plain strings, floats rejected
    - Consistent unicode handling
    """

    @staticmethod
    def serialize(obj: Any) -> bytes:
        """Returns canonical bytes representation."""
        payload = json.dumps(
            _normalize(obj),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )
        return payload.encode("utf-8")

    @staticmethod
    def hash(obj: Any) -> bytes:
        """Returns keccak256 of canonical serialization."""
        return keccak(CanonicalSerializer.serialize(obj))
