"""
Repository layer exports.
"""

from storage.repositories.errors import StorageError
from storage.repositories.record_store import RecordStore
from storage.repositories.types import (
    DatasetMetadataSnapshot,
    DatasetStats,
    DateRange,
    PutResult,
    Record,
    UploadInfo,
)

__all__ = [
    "RecordStore",
    "Record",
    "UploadInfo",
    "PutResult",
    "DateRange",
    "DatasetStats",
    "DatasetMetadataSnapshot",
    "StorageError",
]
