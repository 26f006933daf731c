"""
analytics/filters.py

Composable record predicates built from a FilterSpec.
"""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Any, Callable, Iterable, Sequence

from reporting.schemas.query import (
    CategoryPredicate,
    DateRangePredicate,
    FilterSpec,
    NumericRangePredicate,
    TextPredicate,
)
from reporting.schemas.registry import DEFAULT_SEARCHABLE_FIELDS, DatasetSchema
from storage.repositories.types import Record

logger = logging.getLogger(__name__)

RecordPredicate = Callable[[Record], bool]


def _match_all(_record: Record) -> bool:
    return True


def _match_none(_record: Record) -> bool:
    return False


def _field_value(record: Record, field_name: str) -> Any:
    if field_name == "id":
        return record.id
    return record.fields.get(field_name)


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    return number if math.isfinite(number) else None


class FilterEngine:
    """
    Turns FilterSpecs into record predicates and applies them.

    Predicates are AND-combined in declaration order and evaluation stops at
    the first one that fails.
    """

    def compose(self, spec: FilterSpec, schema: DatasetSchema | None = None) -> RecordPredicate:
        """
        Build one predicate for the whole spec. An empty spec matches everything.
        """

        predicates = [self._compile(predicate, schema) for predicate in spec.predicates]
        predicates = [predicate for predicate in predicates if predicate is not _match_all]
        if not predicates:
            return _match_all
        if any(predicate is _match_none for predicate in predicates):
            return _match_none
        if len(predicates) == 1:
            return predicates[0]

        def combined(record: Record) -> bool:
            return all(predicate(record) for predicate in predicates)

        return combined

    @staticmethod
    def apply(records: Iterable[Record], predicate: RecordPredicate) -> list[Record]:
        if predicate is _match_all:
            return list(records)
        if predicate is _match_none:
            return []
        return [record for record in records if predicate(record)]

    def filter(
        self,
        records: Sequence[Record],
        spec: FilterSpec,
        schema: DatasetSchema | None = None,
    ) -> list[Record]:
        """
        Convenience wrapper: compose then apply.
        """

        return self.apply(records, self.compose(spec, schema))

    # ------------------------------------------------------------------
    # Predicate compilation
    # ------------------------------------------------------------------

    def _compile(self, predicate: Any, schema: DatasetSchema | None) -> RecordPredicate:
        if isinstance(predicate, DateRangePredicate):
            return self._date_range(predicate, schema)
        if isinstance(predicate, CategoryPredicate):
            return self._category(predicate)
        if isinstance(predicate, NumericRangePredicate):
            return self._numeric_range(predicate)
        if isinstance(predicate, TextPredicate):
            return self._text(predicate, schema)
        raise TypeError(f"Unsupported predicate type: {type(predicate).__name__}")

    @staticmethod
    def _date_range(predicate: DateRangePredicate, schema: DatasetSchema | None) -> RecordPredicate:
        field_name = predicate.field or (schema.primary_date_field if schema is not None else None)
        if field_name is None:
            raise ValueError("Date range filter needs a field when the dataset has no primary date.")
        start, end = predicate.start, predicate.end
        if start is None and end is None:
            return _match_all
        if start is not None and end is not None and start > end:
            logger.debug("Date range %s..%s is inverted; filter matches nothing", start, end)
            return _match_none

        def matches(record: Record) -> bool:
            value = _as_date(_field_value(record, field_name))
            if value is None:
                return False
            if start is not None and value < start:
                return False
            if end is not None and value > end:
                return False
            return True

        return matches

    @staticmethod
    def _category(predicate: CategoryPredicate) -> RecordPredicate:
        if not predicate.values:
            return _match_all
        field_name = predicate.field
        allowed = {value.casefold() for value in predicate.values}

        def matches(record: Record) -> bool:
            value = _field_value(record, field_name)
            if value is None:
                return False
            return str(value).strip().casefold() in allowed

        return matches

    @staticmethod
    def _numeric_range(predicate: NumericRangePredicate) -> RecordPredicate:
        field_name = predicate.field
        minimum, maximum = predicate.minimum, predicate.maximum
        if minimum is not None and maximum is not None and minimum > maximum:
            return _match_none

        def matches(record: Record) -> bool:
            value = _as_number(_field_value(record, field_name))
            if value is None:
                return False
            if minimum is not None and value < minimum:
                return False
            if maximum is not None and value > maximum:
                return False
            return True

        return matches

    @staticmethod
    def _text(predicate: TextPredicate, schema: DatasetSchema | None) -> RecordPredicate:
        needle = predicate.query.strip().casefold()
        if not needle:
            return _match_all
        if predicate.fields:
            fields = predicate.fields
        elif schema is not None:
            fields = schema.search_fields()
        else:
            fields = DEFAULT_SEARCHABLE_FIELDS

        def matches(record: Record) -> bool:
            for field_name in fields:
                value = _field_value(record, field_name)
                if value is not None and needle in str(value).casefold():
                    return True
            return False

        return matches
