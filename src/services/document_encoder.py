"""Conversion between plain Python records and Firestore typed field values.

Firestore's REST API wraps every value in a single-key object naming its type
(``stringValue``, ``integerValue``, ``mapValue`` ...). Integers travel as
decimal strings so large values survive JSON number rounding.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict

from src.errors import EncodingError

# Integers outside this range are sent as doubles.
MAX_SAFE_INTEGER = 2**53


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _parse_timestamp(raw: str) -> datetime:
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat only accepts up to microsecond precision
    head, sep, tail = text.partition(".")
    if sep:
        digits = ""
        rest = tail
        while rest and rest[0].isdigit():
            digits, rest = digits + rest[0], rest[1:]
        text = f"{head}.{digits[:6].ljust(6, '0')}{rest}"
    return datetime.fromisoformat(text)


def encode_value(value: Any, *, path: str = "value") -> Dict[str, Any]:
    """Encode a single Python value as a Firestore ``Value`` object."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, int):
        if -MAX_SAFE_INTEGER <= value <= MAX_SAFE_INTEGER:
            return {"integerValue": str(value)}
        try:
            return {"doubleValue": float(value)}
        except OverflowError as exc:
            raise EncodingError(f"Integer at {path} is too large to encode") from exc
    if isinstance(value, float):
        if value.is_integer() and -MAX_SAFE_INTEGER <= value <= MAX_SAFE_INTEGER:
            return {"integerValue": str(int(value))}
        return {"doubleValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": _format_timestamp(value)}
    if isinstance(value, (list, tuple)):
        return {
            "arrayValue": {
                "values": [
                    encode_value(item, path=f"{path}[{index}]")
                    for index, item in enumerate(value)
                ]
            }
        }
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value, prefix=path)}}
    raise EncodingError(
        f"Unsupported value type {type(value).__name__} at {path}"
    )


def encode_fields(record: Mapping[str, Any], *, prefix: str | None = None) -> Dict[str, Dict[str, Any]]:
    """Encode a keyed record into the ``fields`` object of a Firestore document."""
    fields: Dict[str, Dict[str, Any]] = {}
    for key, value in record.items():
        name = str(key)
        path = f"{prefix}.{name}" if prefix else name
        fields[name] = encode_value(value, path=path)
    return fields


def decode_value(wire: Mapping[str, Any]) -> Any:
    """Decode a Firestore ``Value`` object back into a Python value."""
    if "nullValue" in wire:
        return None
    if "booleanValue" in wire:
        return bool(wire["booleanValue"])
    if "stringValue" in wire:
        return wire["stringValue"]
    if "integerValue" in wire:
        return int(wire["integerValue"])
    if "doubleValue" in wire:
        return float(wire["doubleValue"])
    if "timestampValue" in wire:
        return _parse_timestamp(wire["timestampValue"])
    if "arrayValue" in wire:
        values = (wire["arrayValue"] or {}).get("values") or []
        return [decode_value(item) for item in values]
    if "mapValue" in wire:
        return decode_fields((wire["mapValue"] or {}).get("fields") or {})
    raise EncodingError(f"Unknown Firestore value type: {sorted(wire)}")


def decode_fields(fields: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
    return {name: decode_value(value) for name, value in fields.items()}


__all__ = [
    "MAX_SAFE_INTEGER",
    "encode_value",
    "encode_fields",
    "decode_value",
    "decode_fields",
]
