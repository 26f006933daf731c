"""
Tagged JSON encoding for typed record values.

JSON has no date type, so dates and datetimes are wrapped in single-key
objects (``{"$date": "2024-01-31"}``) and unwrapped on read.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping

_DATE_TAG = "$date"
_DATETIME_TAG = "$datetime"


def encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return {_DATETIME_TAG: value.isoformat()}
    if isinstance(value, date):
        return {_DATE_TAG: value.isoformat()}
    if isinstance(value, Decimal):
        return float(value)
    return value


def decode_value(value: Any) -> Any:
    if isinstance(value, dict) and len(value) == 1:
        if _DATE_TAG in value:
            return date.fromisoformat(value[_DATE_TAG])
        if _DATETIME_TAG in value:
            return datetime.fromisoformat(value[_DATETIME_TAG])
    return value


def encode_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    return {name: encode_value(value) for name, value in fields.items()}


def decode_fields(fields: Mapping[str, Any] | None) -> dict[str, Any]:
    if not fields:
        return {}
    return {name: decode_value(value) for name, value in fields.items()}


def index_key(value: Any) -> str | None:
    """
    Normalise a field value into the string stored in the secondary index.

    Strings are trimmed and lower-cased, integral floats collapse to their
    integer form so ``1`` and ``1.0`` share a key, and dates use ISO format.
    Returns None for values that cannot be indexed.
    """

    value = decode_value(value)
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        if not math.isfinite(number):
            return None
        if number.is_integer():
            return str(int(number))
        return repr(number)
    key = str(value).strip().lower()
    return key[:255] if key else None
