"""
analytics/kpis.py

Headline KPI sets for each built-in dataset.

Formulas
--------
growth_rate          = (current - previous) / previous * 100
                       over the last two calendar months of the series
lending-volume       total_volume, loan_count, avg_loan_size, growth_rate
arrears              total_arrears, account_count, avg_outstanding,
                     arrears_rate (% of records with a late, missed or
                     default payment status), growth_rate
liquidations         total_funded, total_collected, collection_rate,
                     avg_liquidation_rate, growth_rate
call-center          call_volume, answer_rate, avg_talk_time,
                     avg_answer_delay_seconds, growth_rate
complaints           total_complaints, resolution_rate, upheld_rate,
                     avg_resolution_days, growth_rate

Division by zero yields 0.0, matching the aggregation reducers. Datasets
without a dedicated set get ``record_count`` plus count growth.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Sequence

from analytics.aggregation import AggregationEngine
from reporting.schemas.query import (
    AggregationSpec,
    CategoryPredicate,
    DateRangePredicate,
    FilterSpec,
    Reducer,
)
from reporting.schemas.registry import DatasetSchema
from storage.repositories.types import Record

ARREARS_PAYMENT_STATUSES: frozenset[str] = frozenset({"Late", "Missed", "Default"})
UPHELD_DECISIONS: frozenset[str] = frozenset({"Upheld", "Partially Upheld"})


def growth_rate(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100


def month_over_month_growth(monthly: Sequence[float]) -> float:
    """
    Growth of the last period over the one before it. 0.0 below two periods.
    """

    if len(monthly) < 2:
        return 0.0
    return growth_rate(float(monthly[-1]), float(monthly[-2]))


def _category_filter(field_name: str, values: frozenset[str]) -> FilterSpec:
    return FilterSpec(predicates=(CategoryPredicate(field=field_name, values=values),))


class DatasetKPIs(ABC):
    """
    Contract for per-dataset KPI sets.

    Implementations reduce already-filtered records; they never read the store.
    """

    def __init__(self, *, aggregation_engine: AggregationEngine | None = None) -> None:
        self._engine = aggregation_engine or AggregationEngine()

    @abstractmethod
    def calculate(self, records: Sequence[Record], schema: DatasetSchema | None = None) -> dict[str, float]:
        """Return metric name -> value for *records*."""

    # ------------------------------------------------------------------
    # Reducer shortcuts
    # ------------------------------------------------------------------

    def _reduce(
        self,
        records: Sequence[Record],
        reducer: Reducer,
        field_name: str | None = None,
        *,
        rate_filter: FilterSpec | None = None,
        schema: DatasetSchema | None = None,
    ) -> float:
        spec = AggregationSpec(reducer=reducer, reduce_field=field_name, rate_filter=rate_filter)
        return float(self._engine.reduce(records, spec, schema))

    def _monthly_growth(
        self,
        records: Sequence[Record],
        schema: DatasetSchema | None,
        reducer: Reducer = "count",
        field_name: str | None = None,
    ) -> float:
        if schema is None or schema.primary_date_field is None or not records:
            return 0.0
        spec = AggregationSpec(
            time_bucket="month",
            reducer=reducer,
            reduce_field=field_name,
            fill_missing_periods=True,
        )
        monthly = self._engine.group_and_reduce(records, spec, schema)
        return month_over_month_growth(list(monthly.values()))


class GenericKPIs(DatasetKPIs):
    def calculate(self, records: Sequence[Record], schema: DatasetSchema | None = None) -> dict[str, float]:
        return {
            "record_count": float(len(records)),
            "growth_rate": self._monthly_growth(records, schema),
        }


class LendingVolumeKPIs(DatasetKPIs):
    def calculate(self, records: Sequence[Record], schema: DatasetSchema | None = None) -> dict[str, float]:
        total_volume = self._reduce(records, "sum", "issued_amount")
        loan_count = len(records)
        return {
            "total_volume": total_volume,
            "loan_count": float(loan_count),
            "avg_loan_size": total_volume / loan_count if loan_count else 0.0,
            "growth_rate": self._monthly_growth(records, schema, "sum", "issued_amount"),
        }


class ArrearsKPIs(DatasetKPIs):
    def calculate(self, records: Sequence[Record], schema: DatasetSchema | None = None) -> dict[str, float]:
        customers = {
            str(record.fields["customer_id"]).strip()
            for record in records
            if record.fields.get("customer_id") not in (None, "")
        }
        return {
            "total_arrears": self._reduce(records, "sum", "outstanding_balance"),
            "account_count": float(len(customers)),
            "avg_outstanding": self._reduce(records, "avg", "outstanding_balance"),
            "arrears_rate": self._reduce(
                records,
                "rate",
                rate_filter=_category_filter("payment_status", ARREARS_PAYMENT_STATUSES),
            ),
            "growth_rate": self._monthly_growth(records, schema, "sum", "outstanding_balance"),
        }


class LiquidationsKPIs(DatasetKPIs):
    def calculate(self, records: Sequence[Record], schema: DatasetSchema | None = None) -> dict[str, float]:
        total_funded = self._reduce(records, "sum", "funded")
        total_collected = self._reduce(records, "sum", "all_together")
        return {
            "total_funded": total_funded,
            "total_collected": total_collected,
            "collection_rate": total_collected / total_funded * 100 if total_funded > 0 else 0.0,
            "avg_liquidation_rate": self._reduce(records, "avg", "actual_liquidation_rate"),
            "growth_rate": self._monthly_growth(records, schema, "sum", "all_together"),
        }


class CallCenterKPIs(DatasetKPIs):
    def calculate(self, records: Sequence[Record], schema: DatasetSchema | None = None) -> dict[str, float]:
        return {
            "call_volume": float(len(records)),
            "answer_rate": self._reduce(
                records,
                "rate",
                rate_filter=_category_filter("disposition", frozenset({"Answered"})),
            ),
            "avg_talk_time": self._reduce(records, "avg", "talk_time"),
            "avg_answer_delay_seconds": self._reduce(records, "avg", "answer_delay_seconds"),
            "growth_rate": self._monthly_growth(records, schema),
        }


class ComplaintsKPIs(DatasetKPIs):
    def calculate(self, records: Sequence[Record], schema: DatasetSchema | None = None) -> dict[str, float]:
        resolved = FilterSpec(predicates=(DateRangePredicate(field="resolved_date", start=date.min),))
        return {
            "total_complaints": self._reduce(records, "sum", "count"),
            "resolution_rate": self._reduce(records, "rate", rate_filter=resolved),
            "upheld_rate": self._reduce(
                records,
                "rate",
                rate_filter=_category_filter("decision", UPHELD_DECISIONS),
            ),
            "avg_resolution_days": self._reduce(records, "avg", "resolution_days"),
            "growth_rate": self._monthly_growth(records, schema, "sum", "count"),
        }


KPI_SETS: dict[str, type[DatasetKPIs]] = {
    "lending-volume": LendingVolumeKPIs,
    "arrears": ArrearsKPIs,
    "liquidations": LiquidationsKPIs,
    "call-center": CallCenterKPIs,
    "complaints": ComplaintsKPIs,
}


def kpis_for(dataset_type: str, *, aggregation_engine: AggregationEngine | None = None) -> DatasetKPIs:
    kpi_class = KPI_SETS.get(dataset_type, GenericKPIs)
    return kpi_class(aggregation_engine=aggregation_engine)
