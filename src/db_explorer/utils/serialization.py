"""JSON serialization utilities using orjson.

orjson handles datetime/date/time (ISO strings), uuid.UUID and dataclasses
natively. The handler below covers what the two engines hand back beyond
that: Decimal from NUMERIC columns, bytes from BLOB/bytea, asyncpg's own
UUID and Range types, intervals, and network addresses.
"""

import base64
import datetime
import decimal
import ipaddress
from typing import Any

import orjson


def _decode_bytes(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return base64.b64encode(data).decode("ascii")


def _default_handler(obj: Any) -> Any:
    """
    Convert types orjson does not serialize natively.

    Raises:
        TypeError: If object cannot be serialized
    """
    # Keep NUMERIC precision by serializing as text
    if isinstance(obj, decimal.Decimal):
        return str(obj)

    if isinstance(obj, datetime.timedelta):
        return obj.total_seconds()

    # BLOB (SQLite) and bytea (PostgreSQL)
    if isinstance(obj, (bytes, bytearray, memoryview)):
        return _decode_bytes(bytes(obj))

    if isinstance(obj, (set, frozenset)):
        return list(obj)

    if isinstance(
        obj,
        (
            ipaddress.IPv4Address,
            ipaddress.IPv6Address,
            ipaddress.IPv4Network,
            ipaddress.IPv6Network,
            ipaddress.IPv4Interface,
            ipaddress.IPv6Interface,
        ),
    ):
        return str(obj)

    # asyncpg.Range
    if hasattr(obj, "lower_inc") and hasattr(obj, "upper_inc"):
        return {
            "lower": obj.lower,
            "upper": obj.upper,
            "lower_inc": obj.lower_inc,
            "upper_inc": obj.upper_inc,
        }

    # asyncpg's UUID is not a uuid.UUID subclass
    if hasattr(obj, "hex") and hasattr(obj, "urn"):
        return str(obj)

    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def convert_value_to_json_safe(value: Any) -> Any:
    """
    Convert a value to the form it will take once serialized to JSON.

    Round-trips through orjson so the result matches the final output. Values
    that still cannot be serialized are rendered with ``str()``.
    """
    try:
        return orjson.loads(orjson.dumps(value, default=_default_handler))
    except TypeError:
        return str(value)


def convert_row_to_json_safe(row: dict[str, Any]) -> dict[str, Any]:
    """Convert all values in a row dict to JSON-serializable formats."""
    return {key: convert_value_to_json_safe(value) for key, value in row.items()}


def convert_rows_to_json_safe(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert all rows to JSON-serializable format."""
    return [convert_row_to_json_safe(row) for row in rows]


def dumps(obj: Any, indent: bool = True) -> str:
    """
    Serialize object to JSON string using orjson.

    Pydantic models should be passed through ``model_dump()`` first.
    """
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(obj, default=_default_handler, option=option).decode("utf-8")
