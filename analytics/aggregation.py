"""
analytics/aggregation.py

Group-by and time-bucket aggregation over records.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, Callable, Hashable, Sequence

from analytics.filters import FilterEngine, RecordPredicate
from reporting.schemas.query import AggregationSpec, TimeBucket
from reporting.schemas.registry import DatasetSchema
from storage.repositories.types import Record

logger = logging.getLogger(__name__)

UNKNOWN_GROUP = "Unknown"
ALL_GROUP = "all"


# ---------------------------------------------------------------------------
# Period helpers
# ---------------------------------------------------------------------------


def period_start(value: date, bucket: TimeBucket) -> date:
    """
    Start date of the period containing *value*. Weeks start on Monday.
    """

    if isinstance(value, datetime):
        value = value.date()
    if bucket == "day":
        return value
    if bucket == "week":
        return value - timedelta(days=value.weekday())
    if bucket == "month":
        return value.replace(day=1)
    if bucket == "quarter":
        return date(value.year, 3 * ((value.month - 1) // 3) + 1, 1)
    if bucket == "year":
        return date(value.year, 1, 1)
    raise ValueError(f"Unsupported time bucket: {bucket}")


def next_period(start: date, bucket: TimeBucket) -> date:
    if bucket == "day":
        return start + timedelta(days=1)
    if bucket == "week":
        return start + timedelta(days=7)
    if bucket == "year":
        return date(start.year + 1, 1, 1)
    months = 1 if bucket == "month" else 3
    month_index = start.month - 1 + months
    return date(start.year + month_index // 12, month_index % 12 + 1, 1)


def _numeric(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class AggregationEngine:
    """
    Groups records and reduces each group to a single number.

    Reducers never raise on empty input: ``avg`` and ``rate`` of an empty
    group are 0.0.
    """

    def __init__(self, *, filter_engine: FilterEngine | None = None) -> None:
        self._filter_engine = filter_engine or FilterEngine()

    def group_and_reduce(
        self,
        records: Sequence[Record],
        spec: AggregationSpec,
        schema: DatasetSchema | None = None,
    ) -> dict[Hashable, float]:
        """
        Return an ordered ``group key -> reduced value`` mapping.

        Time-bucket keys are period start dates in ascending order. Field
        keys keep first-appearance order, with missing values grouped under
        ``"Unknown"``. Without a grouping every record lands in ``"all"``.
        """

        groups = self._group(records, spec, schema)
        reducer = self._reducer(spec, schema)
        result: dict[Hashable, float] = {key: reducer(members) for key, members in groups.items()}

        if spec.time_bucket and spec.fill_missing_periods and result:
            result = self._fill_gaps(result, spec.time_bucket, empty_value=reducer([]))
        return result

    def reduce(
        self,
        records: Sequence[Record],
        spec: AggregationSpec,
        schema: DatasetSchema | None = None,
    ) -> float:
        """
        Apply the requested reducer to all records as one group.
        """

        return self._reducer(spec, schema)(list(records))

    # ------------------------------------------------------------------
    # Grouping
    # ------------------------------------------------------------------

    def _group(
        self,
        records: Sequence[Record],
        spec: AggregationSpec,
        schema: DatasetSchema | None,
    ) -> dict[Hashable, list[Record]]:
        groups: dict[Hashable, list[Record]] = {}

        if spec.time_bucket:
            date_field = spec.date_field or (schema.primary_date_field if schema is not None else None)
            if date_field is None:
                raise ValueError("Time-bucketed aggregation needs date_field when the dataset has no primary date.")
            undated = 0
            for record in records:
                value = record.fields.get(date_field)
                if not isinstance(value, date):
                    undated += 1
                    continue
                groups.setdefault(period_start(value, spec.time_bucket), []).append(record)
            if undated:
                logger.debug("Aggregation skipped %d record(s) without %s", undated, date_field)
            return dict(sorted(groups.items()))

        if spec.group_by:
            for record in records:
                value = record.fields.get(spec.group_by)
                if value is None or (isinstance(value, str) and not value.strip()):
                    key: Hashable = UNKNOWN_GROUP
                elif isinstance(value, str):
                    key = value.strip()
                else:
                    key = value
                groups.setdefault(key, []).append(record)
            return groups

        if records:
            groups[ALL_GROUP] = list(records)
        return groups

    @staticmethod
    def _fill_gaps(result: dict[Hashable, float], bucket: TimeBucket, *, empty_value: float) -> dict[Hashable, float]:
        keys = list(result)
        filled: dict[Hashable, float] = {}
        current: date = keys[0]
        last: date = keys[-1]
        while current <= last:
            filled[current] = result.get(current, empty_value)
            current = next_period(current, bucket)
        return filled

    # ------------------------------------------------------------------
    # Reducers
    # ------------------------------------------------------------------

    def _reducer(
        self,
        spec: AggregationSpec,
        schema: DatasetSchema | None,
    ) -> Callable[[list[Record]], float]:
        if spec.reducer == "count":
            return lambda members: len(members)

        if spec.reducer == "rate":
            predicate: RecordPredicate = self._filter_engine.compose(spec.rate_filter, schema)

            def rate(members: list[Record]) -> float:
                if not members:
                    return 0.0
                matched = sum(1 for record in members if predicate(record))
                return matched / len(members) * 100

            return rate

        field_name = spec.reduce_field

        def values_of(members: list[Record]) -> list[float]:
            values = []
            for record in members:
                number = _numeric(record.fields.get(field_name))
                if number is not None:
                    values.append(number)
            return values

        if spec.reducer == "sum":
            return lambda members: math.fsum(values_of(members))

        def average(members: list[Record]) -> float:
            values = values_of(members)
            return math.fsum(values) / len(values) if values else 0.0

        return average
