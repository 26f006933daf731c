"""
Shared fixtures: a temporary SQLite record store, a registry with the
built-in datasets plus a small ``test-sales`` dataset, and the services
wired on top of them.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

from reporting.config import IngestionSettings, QuerySettings
from reporting.schemas.registry import DatasetSchema, FieldDefinition, SchemaRegistry
from reporting.services.ingestion_service import IngestionPipeline
from reporting.services.query_service import ReportQueryService
from storage.repositories.record_store import RecordStore
from storage.repositories.types import Record

SALES = "test-sales"

SALES_SCHEMA = DatasetSchema(
    dataset_type=SALES,
    label="Test Sales",
    fields=(
        FieldDefinition(name="date", label="Date", type="date", required=True, synonyms=("Sale Date",)),
        FieldDefinition(name="amount", label="Amount", type="currency", required=True, synonyms=("Value",)),
        FieldDefinition(name="product", label="Product", type="category"),
    ),
    primary_date_field="date",
    indexed_fields=("product",),
    searchable_fields=("product",),
)

PROCESSED_AT = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def registry() -> SchemaRegistry:
    registry = SchemaRegistry.default()
    registry.register(SALES_SCHEMA)
    return registry


@pytest.fixture()
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'reports.db'}"


@pytest.fixture()
def store(registry: SchemaRegistry, database_url: str) -> Iterator[RecordStore]:
    record_store = RecordStore.from_url(
        database_url,
        indexed_fields=registry.indexed_fields_by_type(),
        date_fields=registry.date_fields_by_type(),
    )
    record_store.init_schema()
    try:
        yield record_store
    finally:
        record_store.close()


@pytest.fixture()
def ingestion_settings() -> IngestionSettings:
    return IngestionSettings(log_validation_errors=False)


@pytest.fixture()
def pipeline(store: RecordStore, registry: SchemaRegistry, ingestion_settings: IngestionSettings) -> IngestionPipeline:
    return IngestionPipeline(
        store=store,
        registry=registry,
        settings=ingestion_settings,
        clock=lambda: PROCESSED_AT,
    )


@pytest.fixture()
def query_service(store: RecordStore, registry: SchemaRegistry) -> ReportQueryService:
    return ReportQueryService(
        store=store,
        registry=registry,
        settings=QuerySettings(cache_ttl_seconds=300.0, cache_max_entries=32, moving_average_window=2),
    )


@pytest.fixture()
def make_record() -> Callable[..., Record]:
    """Build a ``test-sales`` record with typed fields."""

    def factory(
        record_id: str,
        *,
        day: date | None = date(2024, 1, 15),
        amount: Any = 100.0,
        product: str | None = "Widget",
        dataset_type: str = SALES,
    ) -> Record:
        fields: dict[str, Any] = {"amount": amount}
        if day is not None:
            fields["date"] = day
        if product is not None:
            fields["product"] = product
        return Record(
            id=record_id,
            dataset_type=dataset_type,
            fields=fields,
            row_index=None,
            processed_at=PROCESSED_AT,
            record_date=day,
        )

    return factory
