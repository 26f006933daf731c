"""
Typed DTOs used by the record store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any


@dataclass(frozen=True)
class Record:
    """
    One validated, typed row belonging to a dataset.

    ``fields`` maps canonical field names to typed values (str, int, float,
    date, datetime). ``extras`` keeps unmapped upload columns under their
    original header. ``record_date`` is the value of the dataset's primary
    date field and drives the date-ordered index.
    """

    id: str
    dataset_type: str
    fields: dict[str, Any]
    row_index: int | None
    processed_at: datetime
    extras: dict[str, Any] = field(default_factory=dict)
    record_date: date | None = None

    def get(self, field_name: str, default: Any = None) -> Any:
        return self.fields.get(field_name, default)


@dataclass(frozen=True)
class UploadInfo:
    """
    Source file details recorded in dataset metadata on ingestion.
    """

    file_name: str | None
    file_size: int | None
    uploaded_at: datetime


@dataclass(frozen=True)
class DatasetMetadataSnapshot:
    """
    Read-only view of one dataset_metadata row.
    """

    dataset_type: str
    record_count: int
    last_modified: datetime
    uploaded_at: datetime | None = None
    file_name: str | None = None
    file_size: int | None = None


@dataclass(frozen=True)
class DateRange:
    earliest: date
    latest: date


@dataclass(frozen=True)
class DatasetStats:
    """
    Live statistics for one dataset type.
    """

    dataset_type: str
    record_count: int
    date_range: DateRange | None
    last_update: datetime | None


@dataclass(frozen=True)
class PutResult:
    """
    Outcome of one committed upsert batch.
    """

    inserted: int
    updated: int
    record_count: int
