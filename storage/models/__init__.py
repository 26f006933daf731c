"""
storage/models package marker.

Importing this package registers every table on ``Base.metadata``.
"""

from storage.models.metadata import DatasetMetadata
from storage.models.record import DatasetRecord, RecordIndexEntry

__all__ = [
    "DatasetMetadata",
    "DatasetRecord",
    "RecordIndexEntry",
]
