"""
reporting/services/derived_fields.py

Computation of derived fields from validated record values.

A derived field is only produced when every input it needs was present
and successfully coerced; otherwise it is omitted from the record.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from typing import Any, Callable, Mapping

from reporting.schemas.registry import DatasetSchema


def _difference(left: Any, right: Any) -> float:
    return round(float(left) - float(right), 2)


def _month_start(year: Any, month: Any) -> date | None:
    try:
        return date(int(year), int(month), 1)
    except (TypeError, ValueError):
        return None


def _percent_of(part: Any, whole: Any) -> float | None:
    if not whole or float(whole) <= 0:
        return None
    return round(float(part) / float(whole) * 100, 2)


def _seconds_between(start: datetime, end: datetime) -> float | None:
    if (start.tzinfo is None) != (end.tzinfo is None):
        return None
    return (end - start).total_seconds()


def _days_between(start: date, end: date) -> int:
    start_day = start.date() if isinstance(start, datetime) else start
    end_day = end.date() if isinstance(end, datetime) else end
    return (end_day - start_day).days


DERIVATIONS: dict[str, Callable[..., Any]] = {
    "difference": _difference,
    "month_start": _month_start,
    "percent_of": _percent_of,
    "seconds_between": _seconds_between,
    "days_between": _days_between,
}


def compute_derived_fields(schema: DatasetSchema, fields: Mapping[str, Any]) -> dict[str, Any]:
    """
    Return the derived values for one record's validated fields.
    """

    derived: dict[str, Any] = {}
    for derived_field in schema.derived_fields:
        inputs = [fields.get(name) for name in derived_field.inputs]
        if any(value is None for value in inputs):
            continue
        value = DERIVATIONS[derived_field.rule](*inputs)
        if value is None:
            continue
        if isinstance(value, float) and not math.isfinite(value):
            continue
        derived[derived_field.name] = value
    return derived
