"""
reporting/schemas/query.py

Filter and aggregation request models.

Predicates are a closed set of tagged variants discriminated by ``kind``;
a FilterSpec is their AND-combination in declaration order.
"""

from __future__ import annotations

from datetime import date
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

TimeBucket = Literal["day", "week", "month", "quarter", "year"]
Reducer = Literal["sum", "count", "avg", "rate"]

_MODEL_CONFIG = ConfigDict(extra="forbid", frozen=True, str_strip_whitespace=True)


class DateRangePredicate(BaseModel):
    """
    Inclusive date range. Either bound may be omitted.

    ``field`` defaults to the dataset's primary date field.
    """

    model_config = _MODEL_CONFIG

    kind: Literal["date_range"] = "date_range"
    field: str | None = None
    start: date | None = None
    end: date | None = None


class CategoryPredicate(BaseModel):
    """
    Field value must be one of ``values``. An empty set places no constraint.
    """

    model_config = _MODEL_CONFIG

    kind: Literal["category"] = "category"
    field: str = Field(min_length=1)
    values: frozenset[str] = frozenset()


class NumericRangePredicate(BaseModel):
    """
    Inclusive numeric range. Missing or non-numeric values never match.
    """

    model_config = _MODEL_CONFIG

    kind: Literal["numeric_range"] = "numeric_range"
    field: str = Field(min_length=1)
    minimum: float | None = None
    maximum: float | None = None


class TextPredicate(BaseModel):
    """
    Case-insensitive substring search over ``fields`` (or the dataset's
    searchable fields when empty).
    """

    model_config = _MODEL_CONFIG

    kind: Literal["text"] = "text"
    query: str
    fields: tuple[str, ...] = ()


Predicate = Annotated[
    Union[DateRangePredicate, CategoryPredicate, NumericRangePredicate, TextPredicate],
    Field(discriminator="kind"),
]


class FilterSpec(BaseModel):
    model_config = _MODEL_CONFIG

    predicates: tuple[Predicate, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.predicates


class AggregationSpec(BaseModel):
    """
    Group-by plus reducer request.

    ``group_by`` and ``time_bucket`` are mutually exclusive; with neither,
    every record falls into a single ``"all"`` group. Time buckets read
    ``date_field`` (the dataset's primary date field when omitted).
    """

    model_config = _MODEL_CONFIG

    group_by: str | None = None
    time_bucket: TimeBucket | None = None
    date_field: str | None = None
    reduce_field: str | None = None
    reducer: Reducer = "count"
    rate_filter: FilterSpec | None = None
    fill_missing_periods: bool = False

    @model_validator(mode="after")
    def _check_combination(self) -> AggregationSpec:
        if self.group_by and self.time_bucket:
            raise ValueError("group_by and time_bucket cannot be combined.")
        if self.reducer in {"sum", "avg"} and not self.reduce_field:
            raise ValueError(f"Reducer '{self.reducer}' requires reduce_field.")
        if self.reducer == "rate" and self.rate_filter is None:
            raise ValueError("Reducer 'rate' requires rate_filter.")
        if self.fill_missing_periods and not self.time_bucket:
            raise ValueError("fill_missing_periods requires time_bucket.")
        return self


class SortSpec(BaseModel):
    """
    Single-field ordering for query results. ``id`` sorts by record id.
    """

    model_config = _MODEL_CONFIG

    field: str = Field(min_length=1)
    direction: Literal["asc", "desc"] = "asc"
