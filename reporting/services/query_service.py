"""
reporting/services/query_service.py

Read-side service answering filtered, aggregated and time-series queries.

Query flow
----------
1. Candidate records come from the store: a date-index range scan when the
   filter bounds the dataset's primary date, otherwise a full dataset scan.
2. FilterEngine applies the complete FilterSpec to the candidates.
3. AggregationEngine groups and reduces the filtered records.

Results are cached per dataset type and tagged with the store generation
observed before the read, so a committed write invalidates them at once.
While a write is in flight the cache is bypassed entirely.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Hashable

from analytics.aggregation import AggregationEngine
from analytics.filters import FilterEngine
from analytics.kpis import kpis_for
from analytics.ordering import paginate, sort_records
from analytics.trend import TrendAnalysis, analyze_series
from reporting.config import QuerySettings, get_query_settings
from reporting.schemas.query import AggregationSpec, DateRangePredicate, FilterSpec, SortSpec
from reporting.schemas.registry import DatasetSchema, SchemaRegistry
from reporting.services.query_cache import QueryCache
from storage.repositories.record_store import RecordStore
from storage.repositories.types import DatasetMetadataSnapshot, DatasetStats, Record

logger = logging.getLogger(__name__)

_EMPTY_FILTER = FilterSpec()


@dataclass(frozen=True)
class TimeSeriesResult:
    """
    Bucketed series with its trend statistics.
    """

    dataset_type: str
    periods: tuple[date, ...]
    values: tuple[float, ...]
    analysis: TrendAnalysis


@dataclass(frozen=True)
class QueryPage:
    """
    One page of query results plus the total number of matches.
    """

    records: list[Record]
    total: int
    offset: int
    limit: int | None


@dataclass(frozen=True)
class DatasetSummary:
    dataset_type: str
    label: str
    stats: DatasetStats
    metadata: DatasetMetadataSnapshot | None


class ReportQueryService:
    """
    Orchestrates store reads, filtering and aggregation for one registry.
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        registry: SchemaRegistry,
        filter_engine: FilterEngine | None = None,
        aggregation_engine: AggregationEngine | None = None,
        cache: QueryCache | None = None,
        settings: QuerySettings | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._settings = settings or get_query_settings()
        self._filter_engine = filter_engine or FilterEngine()
        self._aggregation_engine = aggregation_engine or AggregationEngine(filter_engine=self._filter_engine)
        self._cache = cache or QueryCache(
            ttl_seconds=self._settings.cache_ttl_seconds,
            max_entries=self._settings.cache_max_entries,
        )

    @property
    def cache(self) -> QueryCache:
        return self._cache

    def query(
        self,
        dataset_type: str,
        spec: FilterSpec | None = None,
        *,
        sort: SortSpec | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        """
        Return the records of *dataset_type* matching *spec*.

        Results are date-ordered unless *sort* is given; *limit* and *offset*
        select a window of the ordered matches. Returned records are copies,
        so callers may modify them freely.
        """

        return self.query_page(dataset_type, spec, sort=sort, limit=limit, offset=offset).records

    def query_page(
        self,
        dataset_type: str,
        spec: FilterSpec | None = None,
        *,
        sort: SortSpec | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> QueryPage:
        matches = self._matching(dataset_type, spec)
        if sort is not None:
            matches = sort_records(matches, sort)
        window = paginate(matches, limit=limit, offset=offset)
        return QueryPage(
            records=[_copy_record(record) for record in window],
            total=len(matches),
            offset=offset,
            limit=limit,
        )

    def kpis(self, dataset_type: str, spec: FilterSpec | None = None) -> dict[str, float]:
        """
        Headline KPIs for the records of *dataset_type* matching *spec*.
        """

        spec = spec or _EMPTY_FILTER
        schema = self._registry.get(dataset_type)
        calculator = kpis_for(dataset_type, aggregation_engine=self._aggregation_engine)

        def compute() -> dict[str, float]:
            return calculator.calculate(self._filtered(dataset_type, schema, spec), schema)

        return dict(self._cached(dataset_type, ("kpis", spec.model_dump_json()), compute))

    def aggregate(
        self,
        dataset_type: str,
        spec: FilterSpec | None,
        aggregation: AggregationSpec,
    ) -> dict[Hashable, float]:
        """
        Filter then group and reduce. Returns an ordered mapping.
        """

        spec = spec or _EMPTY_FILTER
        schema = self._registry.get(dataset_type)

        def compute() -> dict[Hashable, float]:
            records = self._filtered(dataset_type, schema, spec)
            return self._aggregation_engine.group_and_reduce(records, aggregation, schema)

        result = self._cached(
            dataset_type,
            ("aggregate", spec.model_dump_json(), aggregation.model_dump_json()),
            compute,
        )
        return dict(result)

    def time_series(
        self,
        dataset_type: str,
        spec: FilterSpec | None,
        aggregation: AggregationSpec,
        *,
        window: int | None = None,
    ) -> TimeSeriesResult:
        """
        Time-bucketed aggregation plus trend line, moving average and band.
        """

        if not aggregation.time_bucket:
            raise ValueError("time_series requires an aggregation with time_bucket.")
        effective_window = window or self._settings.moving_average_window
        series = self.aggregate(dataset_type, spec, aggregation)
        periods = tuple(series)
        values = tuple(float(value) for value in series.values())
        logger.debug(
            "time_series dataset_type=%s bucket=%s points=%d window=%d",
            dataset_type,
            aggregation.time_bucket,
            len(values),
            effective_window,
        )
        return TimeSeriesResult(
            dataset_type=dataset_type,
            periods=periods,
            values=values,
            analysis=analyze_series(values, window=effective_window),
        )

    def summary(self, dataset_type: str) -> DatasetSummary:
        schema = self._registry.get(dataset_type)
        return DatasetSummary(
            dataset_type=dataset_type,
            label=schema.label,
            stats=self._store.stats(dataset_type),
            metadata=self._store.get_metadata(dataset_type),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _matching(self, dataset_type: str, spec: FilterSpec | None) -> list[Record]:
        spec = spec or _EMPTY_FILTER
        schema = self._registry.get(dataset_type)
        return self._cached(
            dataset_type,
            ("query", spec.model_dump_json()),
            lambda: self._filtered(dataset_type, schema, spec),
        )

    def _cached(self, dataset_type: str, key: Hashable, compute: Any) -> Any:
        generation = self._store.cache_generation(dataset_type)
        if generation is None:
            # A write is in flight; bypass the cache until it has settled.
            return compute()
        hit, value = self._cache.get(dataset_type, key, generation=generation)
        if hit:
            return value
        value = compute()
        self._cache.put(dataset_type, key, value, generation=generation)
        return value

    def _filtered(self, dataset_type: str, schema: DatasetSchema, spec: FilterSpec) -> list[Record]:
        predicate = self._filter_engine.compose(spec, schema)
        bounds = self._primary_date_bounds(schema, spec)
        if bounds is not None:
            start, end = bounds
            candidates = self._store.get_by_date_range(dataset_type, start, end)
        else:
            candidates = self._store.get_all(dataset_type)
        return self._filter_engine.apply(candidates, predicate)

    @staticmethod
    def _primary_date_bounds(schema: DatasetSchema, spec: FilterSpec) -> tuple[date, date] | None:
        """
        Tightest primary-date window implied by the filter, or None for a full scan.
        """

        if schema.primary_date_field is None:
            return None
        start: date | None = None
        end: date | None = None
        for predicate in spec.predicates:
            if not isinstance(predicate, DateRangePredicate):
                continue
            if predicate.field not in (None, schema.primary_date_field):
                continue
            if predicate.start is not None and (start is None or predicate.start > start):
                start = predicate.start
            if predicate.end is not None and (end is None or predicate.end < end):
                end = predicate.end
        if start is None and end is None:
            return None
        return start or date.min, end or date.max


def _copy_record(record: Record) -> Record:
    return replace(record, fields=dict(record.fields), extras=dict(record.extras))
