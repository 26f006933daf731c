"""
tests/test_query_service.py

End-to-end queries through ReportQueryService over a temporary store.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import date, datetime, timezone

import pytest

from reporting.errors import UnknownDatasetTypeError
from reporting.schemas.query import AggregationSpec, CategoryPredicate, DateRangePredicate, FilterSpec, SortSpec
from reporting.services.query_service import ReportQueryService
from storage.repositories.record_store import RecordStore
from storage.repositories.types import Record

SALES = "test-sales"

MONTHLY_SUM = AggregationSpec(time_bucket="month", reducer="sum", reduce_field="amount")


class _PausingCounter(defaultdict):
    """Generation counter that holds the first increment until released."""

    def __init__(self, initial: dict[str, int]) -> None:
        super().__init__(int, initial)
        self.committed = threading.Event()
        self.release = threading.Event()

    def __setitem__(self, key: str, value: int) -> None:
        if not self.committed.is_set():
            self.committed.set()
            self.release.wait(timeout=5)
        super().__setitem__(key, value)


@pytest.fixture()
def seeded_store(store: RecordStore, make_record) -> RecordStore:
    store.put(
        SALES,
        [
            make_record("jan", day=date(2024, 1, 10), amount=100.0, product="Widget"),
            make_record("feb-a", day=date(2024, 2, 3), amount=50.0, product="Gadget"),
            make_record("feb-b", day=date(2024, 2, 20), amount=150.0, product="Widget"),
            make_record("mar", day=date(2024, 3, 31), amount=300.0, product="Widget"),
        ],
    )
    return store


class TestQueries:
    def test_date_range_query(self, seeded_store, query_service: ReportQueryService) -> None:
        spec = FilterSpec(predicates=(DateRangePredicate(start=date(2024, 2, 1), end=date(2024, 3, 31)),))

        records = query_service.query(SALES, spec)

        assert [record.id for record in records] == ["feb-a", "feb-b", "mar"]

    def test_date_range_combined_with_category(self, seeded_store, query_service: ReportQueryService) -> None:
        spec = FilterSpec(
            predicates=(
                DateRangePredicate(start=date(2024, 2, 1)),
                CategoryPredicate(field="product", values=frozenset({"widget"})),
            )
        )

        assert [record.id for record in query_service.query(SALES, spec)] == ["feb-b", "mar"]

    def test_query_without_filter_returns_everything(self, seeded_store, query_service: ReportQueryService) -> None:
        assert len(query_service.query(SALES)) == 4

    def test_monthly_aggregate(self, seeded_store, query_service: ReportQueryService) -> None:
        result = query_service.aggregate(SALES, None, MONTHLY_SUM)

        assert result == {
            date(2024, 1, 1): pytest.approx(100.0),
            date(2024, 2, 1): pytest.approx(200.0),
            date(2024, 3, 1): pytest.approx(300.0),
        }

    def test_unknown_dataset_type(self, query_service: ReportQueryService) -> None:
        with pytest.raises(UnknownDatasetTypeError):
            query_service.query("unknown")

    def test_record_without_record_date_is_found_by_date_range(
        self, store: RecordStore, query_service: ReportQueryService
    ) -> None:
        store.put(
            SALES,
            [
                Record(
                    id="late-jan",
                    dataset_type=SALES,
                    fields={"date": date(2024, 1, 31), "amount": 10.0},
                    row_index=None,
                    processed_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
                )
            ],
        )
        spec = FilterSpec(predicates=(DateRangePredicate(start=date(2024, 1, 1), end=date(2024, 1, 31)),))

        assert [record.id for record in query_service.query(SALES, spec)] == ["late-jan"]


class TestOrderingAndPaging:
    def test_sort_by_field_descending(self, seeded_store, query_service: ReportQueryService) -> None:
        records = query_service.query(SALES, sort=SortSpec(field="amount", direction="desc"))

        assert [record.id for record in records] == ["mar", "feb-b", "jan", "feb-a"]

    def test_sort_by_id(self, seeded_store, query_service: ReportQueryService) -> None:
        records = query_service.query(SALES, sort=SortSpec(field="id"))

        assert [record.id for record in records] == ["feb-a", "feb-b", "jan", "mar"]

    def test_page_reports_total_matches(self, seeded_store, query_service: ReportQueryService) -> None:
        page = query_service.query_page(SALES, sort=SortSpec(field="amount"), limit=2, offset=1)

        assert [record.id for record in page.records] == ["jan", "feb-b"]
        assert page.total == 4
        assert (page.offset, page.limit) == (1, 2)

    def test_offset_past_the_end_is_empty(self, seeded_store, query_service: ReportQueryService) -> None:
        page = query_service.query_page(SALES, offset=10)

        assert page.records == []
        assert page.total == 4

    def test_negative_limit_is_rejected(self, seeded_store, query_service: ReportQueryService) -> None:
        with pytest.raises(ValueError):
            query_service.query(SALES, limit=-1)


class TestKPIs:
    def test_generic_kpis_for_custom_dataset(self, seeded_store, query_service: ReportQueryService) -> None:
        kpis = query_service.kpis(SALES)

        assert kpis["record_count"] == 4
        assert kpis["growth_rate"] == pytest.approx(-50.0)

    def test_kpis_respect_the_filter(self, seeded_store, query_service: ReportQueryService) -> None:
        spec = FilterSpec(predicates=(CategoryPredicate(field="product", values=frozenset({"Widget"})),))

        assert query_service.kpis(SALES, spec)["record_count"] == 3

    def test_kpis_are_cached_and_copied(self, seeded_store, query_service: ReportQueryService) -> None:
        query_service.kpis(SALES)["record_count"] = 0.0

        assert query_service.kpis(SALES)["record_count"] == 4
        assert query_service.cache.hits == 1


class TestCaching:
    def test_repeated_aggregate_is_served_from_cache(self, seeded_store, query_service: ReportQueryService) -> None:
        first = query_service.aggregate(SALES, None, MONTHLY_SUM)
        second = query_service.aggregate(SALES, None, MONTHLY_SUM)

        assert first == second
        assert query_service.cache.hits == 1
        assert query_service.cache.misses == 1

    def test_committed_write_invalidates_results(
        self, seeded_store, query_service: ReportQueryService, make_record
    ) -> None:
        before = query_service.aggregate(SALES, None, AggregationSpec())
        seeded_store.put(SALES, [make_record("apr", day=date(2024, 4, 2))])
        after = query_service.aggregate(SALES, None, AggregationSpec())

        assert before == {"all": 4}
        assert after == {"all": 5}
        assert query_service.cache.hits == 0

    def test_returned_results_are_copies(self, seeded_store, query_service: ReportQueryService) -> None:
        query_service.query(SALES).clear()

        assert len(query_service.query(SALES)) == 4

    def test_mutating_returned_records_leaves_the_cache_intact(
        self, seeded_store, query_service: ReportQueryService
    ) -> None:
        first = query_service.query(SALES)
        first[0].fields["amount"] = -1.0
        first[0].extras["note"] = "edited"

        again = query_service.query(SALES)

        assert again[0].fields["amount"] == pytest.approx(100.0)
        assert again[0].extras == {}
        assert query_service.cache.hits == 1

    def test_read_between_commit_and_generation_bump_sees_new_data(
        self, seeded_store, query_service: ReportQueryService, make_record
    ) -> None:
        counter = _PausingCounter(seeded_store._generations)
        seeded_store._generations = counter
        assert query_service.aggregate(SALES, None, AggregationSpec()) == {"all": 4}

        writer = threading.Thread(
            target=seeded_store.put, args=(SALES, [make_record("apr", day=date(2024, 4, 2))])
        )
        writer.start()
        try:
            assert counter.committed.wait(timeout=5)
            during = query_service.aggregate(SALES, None, AggregationSpec())
        finally:
            counter.release.set()
            writer.join(timeout=5)

        assert during == {"all": 5}
        assert query_service.cache.hits == 0
        assert query_service.aggregate(SALES, None, AggregationSpec()) == {"all": 5}
        assert seeded_store.generation(SALES) == 2


class TestTimeSeries:
    def test_series_carries_trend_and_moving_average(self, seeded_store, query_service: ReportQueryService) -> None:
        series = query_service.time_series(SALES, None, MONTHLY_SUM)

        assert series.periods == (date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1))
        assert series.values == pytest.approx((100.0, 200.0, 300.0))
        assert series.analysis.trend is not None
        assert series.analysis.trend.slope == pytest.approx(100.0)
        assert series.analysis.direction == "up"
        assert series.analysis.window == 2
        assert series.analysis.moving_average == (None, pytest.approx(150.0), pytest.approx(250.0))

    def test_explicit_window_overrides_setting(self, seeded_store, query_service: ReportQueryService) -> None:
        series = query_service.time_series(SALES, None, MONTHLY_SUM, window=3)

        assert series.analysis.moving_average[-1] == pytest.approx(200.0)

    def test_requires_time_bucket(self, seeded_store, query_service: ReportQueryService) -> None:
        with pytest.raises(ValueError):
            query_service.time_series(SALES, None, AggregationSpec(group_by="product"))


class TestSummary:
    def test_summary_reports_stats_and_metadata(self, seeded_store, query_service: ReportQueryService) -> None:
        summary = query_service.summary(SALES)

        assert summary.label == "Test Sales"
        assert summary.stats.record_count == 4
        assert summary.stats.date_range is not None
        assert summary.stats.date_range.earliest == date(2024, 1, 10)
        assert summary.metadata is not None
        assert summary.metadata.record_count == 4

    def test_summary_of_empty_dataset(self, query_service: ReportQueryService) -> None:
        summary = query_service.summary("lending-volume")

        assert summary.stats.record_count == 0
        assert summary.metadata is None
