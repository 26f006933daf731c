"""
tests/test_record_store.py

RecordStore behaviour against a temporary SQLite database.
"""

from __future__ import annotations

import threading
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable

import pytest
from sqlalchemy.exc import OperationalError

from storage.repositories.errors import StorageError
from storage.repositories.record_store import RecordStore
from storage.repositories.types import Record, UploadInfo

SALES = "test-sales"

RecordFactory = Callable[..., Record]


class TestPutAndRead:
    def test_put_then_get_all_matches_metadata_count(self, store: RecordStore, make_record: RecordFactory) -> None:
        records = [make_record(f"r{i}", day=date(2024, 1, i + 1)) for i in range(5)]

        result = store.put(SALES, records)

        assert result.inserted == 5
        assert result.updated == 0
        assert len(store.get_all(SALES)) == 5
        metadata = store.get_metadata(SALES)
        assert metadata is not None
        assert metadata.record_count == 5 == result.record_count

    def test_repeated_put_is_idempotent(self, store: RecordStore, make_record: RecordFactory) -> None:
        records = [make_record("a"), make_record("b")]

        store.put(SALES, records)
        again = store.put(SALES, records)

        assert again.inserted == 0
        assert again.updated == 2
        assert store.count(SALES) == 2
        assert store.get_all(SALES) == sorted(records, key=lambda record: record.id)

    def test_typed_values_round_trip(self, store: RecordStore, make_record: RecordFactory) -> None:
        record = make_record("a", day=date(2024, 2, 29), amount=12.5)

        store.put(SALES, [record])
        stored = store.get(SALES, "a")

        assert stored == record
        assert isinstance(stored.get("date"), date)
        assert stored.processed_at.tzinfo is not None

    def test_get_missing_returns_none(self, store: RecordStore) -> None:
        assert store.get(SALES, "missing") is None

    def test_replace_drops_fields_not_resupplied(self, store: RecordStore, make_record: RecordFactory) -> None:
        store.put(SALES, [make_record("a", product="Widget")])
        store.put(SALES, [make_record("a", product=None, amount=50.0)])

        stored = store.get(SALES, "a")
        assert stored is not None
        assert "product" not in stored.fields
        assert stored.get("amount") == pytest.approx(50.0)

    def test_merge_keeps_existing_fields(self, store: RecordStore, make_record: RecordFactory) -> None:
        store.put(SALES, [make_record("a", product="Widget", amount=100.0)])
        patch = Record(
            id="a",
            dataset_type=SALES,
            fields={"amount": 200.0},
            row_index=None,
            processed_at=datetime(2024, 4, 1, tzinfo=timezone.utc),
        )

        store.put(SALES, [patch], merge=True)

        stored = store.get(SALES, "a")
        assert stored is not None
        assert stored.get("amount") == pytest.approx(200.0)
        assert stored.get("product") == "Widget"
        assert stored.record_date == date(2024, 1, 15)

    def test_upload_info_is_recorded(self, store: RecordStore, make_record: RecordFactory) -> None:
        uploaded_at = datetime(2024, 3, 2, 12, 0, tzinfo=timezone.utc)

        store.put(SALES, [make_record("a")], upload=UploadInfo("sales.csv", 1234, uploaded_at))

        metadata = store.get_metadata(SALES)
        assert metadata is not None
        assert metadata.file_name == "sales.csv"
        assert metadata.file_size == 1234
        assert metadata.uploaded_at == uploaded_at

    def test_rejects_records_of_another_dataset(self, store: RecordStore, make_record: RecordFactory) -> None:
        with pytest.raises(ValueError):
            store.put(SALES, [make_record("a", dataset_type="other")])

    @pytest.mark.parametrize("dataset_type", ["", "   "])
    def test_blank_dataset_type_rejected(self, store: RecordStore, dataset_type: str) -> None:
        with pytest.raises(ValueError):
            store.get_all(dataset_type)


class TestDeletion:
    def test_delete_by_ids_ignores_unknown(self, store: RecordStore, make_record: RecordFactory) -> None:
        store.put(SALES, [make_record("a"), make_record("b"), make_record("c")])

        deleted = store.delete_by_ids(SALES, ["a", "c", "zzz"])

        assert deleted == 2
        assert [record.id for record in store.get_all(SALES)] == ["b"]
        assert store.get_metadata(SALES).record_count == 1  # type: ignore[union-attr]

    def test_clear_is_scoped_to_one_dataset(self, store: RecordStore, make_record: RecordFactory) -> None:
        store.put(SALES, [make_record("a"), make_record("b")])
        store.put("other", [make_record("x", dataset_type="other")])

        assert store.clear(SALES) == 2

        assert store.count(SALES) == 0
        assert store.count("other") == 1
        assert store.get_metadata(SALES).record_count == 0  # type: ignore[union-attr]


class TestIndexes:
    def test_date_range_is_inclusive_and_ordered(self, store: RecordStore, make_record: RecordFactory) -> None:
        store.put(
            SALES,
            [
                make_record("late", day=date(2024, 2, 1)),
                make_record("early", day=date(2024, 1, 31)),
                make_record("undated", day=None),
                make_record("outside", day=date(2024, 2, 2)),
            ],
        )

        records = store.get_by_date_range(SALES, date(2024, 1, 31), date(2024, 2, 1))

        assert [record.id for record in records] == ["early", "late"]

    def test_record_date_comes_from_the_primary_date_field(self, store: RecordStore) -> None:
        record = Record(
            id="a",
            dataset_type=SALES,
            fields={"date": date(2024, 1, 31), "amount": 10.0},
            row_index=None,
            processed_at=datetime(2024, 3, 1, tzinfo=timezone.utc),
        )

        store.put(SALES, [record])

        matched = store.get_by_date_range(SALES, date(2024, 1, 1), date(2024, 12, 31))
        assert [stored.id for stored in matched] == ["a"]
        assert matched[0].record_date == date(2024, 1, 31)

    def test_stale_record_date_is_replaced_from_fields(self, store: RecordStore, make_record: RecordFactory) -> None:
        record = make_record("a", day=date(2024, 5, 1))
        mislabelled = Record(
            id=record.id,
            dataset_type=SALES,
            fields=record.fields,
            row_index=None,
            processed_at=record.processed_at,
            record_date=date(1999, 1, 1),
        )

        store.put(SALES, [mislabelled])

        assert store.get_by_date_range(SALES, date(1999, 1, 1), date(1999, 1, 1)) == []
        assert store.get(SALES, "a").record_date == date(2024, 5, 1)  # type: ignore[union-attr]

    def test_inverted_date_range_is_empty(self, store: RecordStore, make_record: RecordFactory) -> None:
        store.put(SALES, [make_record("a")])

        assert store.get_by_date_range(SALES, date(2024, 2, 1), date(2024, 1, 1)) == []

    def test_field_index_lookup_is_case_insensitive(self, store: RecordStore, make_record: RecordFactory) -> None:
        store.put(SALES, [make_record("a", product="Widget"), make_record("b", product="Gadget")])

        assert [record.id for record in store.get_by_index(SALES, "product", "widget")] == ["a"]

    def test_index_follows_updates(self, store: RecordStore, make_record: RecordFactory) -> None:
        store.put(SALES, [make_record("a", product="Widget")])
        store.put(SALES, [make_record("a", product="Gadget")])

        assert store.get_by_index(SALES, "product", "Widget") == []
        assert [record.id for record in store.get_by_index(SALES, "product", "Gadget")] == ["a"]

    def test_unindexed_field_falls_back_to_scan(self, store: RecordStore, make_record: RecordFactory) -> None:
        store.put(SALES, [make_record("a", amount=100), make_record("b", amount=200.0)])

        assert [record.id for record in store.get_by_index(SALES, "amount", 200)] == ["b"]


class TestStatsAndGenerations:
    def test_stats_for_populated_dataset(self, store: RecordStore, make_record: RecordFactory) -> None:
        store.put(SALES, [make_record("a", day=date(2024, 1, 2)), make_record("b", day=date(2024, 3, 4))])

        stats = store.stats(SALES)

        assert stats.record_count == 2
        assert stats.date_range is not None
        assert (stats.date_range.earliest, stats.date_range.latest) == (date(2024, 1, 2), date(2024, 3, 4))
        assert stats.last_update == datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def test_stats_for_empty_dataset(self, store: RecordStore) -> None:
        stats = store.stats(SALES)

        assert stats.record_count == 0
        assert stats.date_range is None
        assert stats.last_update is None

    def test_generation_advances_only_on_commit(self, store: RecordStore, make_record: RecordFactory) -> None:
        assert store.generation(SALES) == 0
        store.put(SALES, [make_record("a")])
        assert store.generation(SALES) == 1

        def abort() -> None:
            raise RuntimeError("stop")

        with pytest.raises(RuntimeError):
            store.put(SALES, [make_record("b")], abort_check=abort)

        assert store.generation(SALES) == 1
        assert store.count(SALES) == 1
        assert store.generation("other") == 0

    def test_list_metadata_covers_every_written_dataset(self, store: RecordStore, make_record: RecordFactory) -> None:
        store.put(SALES, [make_record("a")])
        store.put("other", [make_record("x", dataset_type="other")])

        assert [metadata.dataset_type for metadata in store.list_metadata()] == ["other", SALES]


class TestFailures:
    def test_missing_schema_raises_storage_error(self, tmp_path: Path) -> None:
        bare = RecordStore.from_url(f"sqlite:///{tmp_path / 'bare.db'}")
        try:
            with pytest.raises(StorageError) as exc_info:
                bare.get_all(SALES)
            assert exc_info.value.operation == "get_all"
        finally:
            bare.close()


class TestSnapshots:
    def test_export_then_import_into_fresh_store(
        self, store: RecordStore, make_record: RecordFactory, tmp_path: Path
    ) -> None:
        store.put(SALES, [make_record("a", day=date(2024, 1, 5)), make_record("b", day=None)])
        store.put("other", [make_record("x", dataset_type="other")])
        snapshot = store.export_all()

        target = RecordStore.from_url(f"sqlite:///{tmp_path / 'copy.db'}")
        target.init_schema()
        try:
            counts = target.import_all(snapshot)

            assert counts == {SALES: 2, "other": 1}
            assert target.get_all(SALES) == store.get_all(SALES)
            assert target.get(SALES, "a").get("date") == date(2024, 1, 5)  # type: ignore[union-attr]
        finally:
            target.close()


class TestConcurrentWriters:
    def test_parallel_puts_to_one_dataset_are_serialised(self, store: RecordStore, make_record: RecordFactory) -> None:
        errors: list[BaseException] = []

        def writer(worker: int) -> None:
            try:
                store.put(SALES, [make_record(f"w{worker}-{i}") for i in range(25)])
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=writer, args=(worker,)) for worker in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert store.count(SALES) == 100
        assert store.get_metadata(SALES).record_count == 100  # type: ignore[union-attr]
        assert store.generation(SALES) == 4


class TestFailedWrites:
    def test_failure_mid_put_leaves_everything_unchanged(
        self, store: RecordStore, make_record: RecordFactory, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store.put(SALES, [make_record("a", product="Widget")])
        before_metadata = store.get_metadata(SALES)

        def failing_refresh(*_args: object) -> None:
            raise OperationalError("UPDATE dataset_metadata", {}, Exception("disk I/O error"))

        monkeypatch.setattr(store, "_refresh_metadata", failing_refresh)

        with pytest.raises(StorageError) as exc_info:
            store.put(SALES, [make_record("a", product="Gadget"), make_record("b", product="Gizmo")])

        monkeypatch.undo()
        assert exc_info.value.operation == "put"
        assert exc_info.value.dataset_type == SALES
        assert [record.id for record in store.get_all(SALES)] == ["a"]
        assert store.get(SALES, "a").get("product") == "Widget"  # type: ignore[union-attr]
        assert [record.id for record in store.get_by_index(SALES, "product", "widget")] == ["a"]
        assert store.get_by_index(SALES, "product", "gizmo") == []
        assert store.get_by_index(SALES, "product", "gadget") == []
        assert store.get_metadata(SALES) == before_metadata
        assert store.generation(SALES) == 1
        assert store.cache_generation(SALES) == 1

    def test_cache_generation_is_withheld_while_a_write_is_open(
        self, store: RecordStore, make_record: RecordFactory
    ) -> None:
        observed: list[int | None] = []

        store.put(SALES, [make_record("a")], abort_check=lambda: observed.append(store.cache_generation(SALES)))

        assert observed == [None]
        assert store.cache_generation(SALES) == 1
