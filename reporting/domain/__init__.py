"""
reporting/domain package marker.
"""

from reporting.domain.records import (
    FieldCoverage,
    IngestionResult,
    IngestionState,
    Record,
    Severity,
    UploadStats,
    ValidationIssue,
)

__all__ = [
    "FieldCoverage",
    "IngestionResult",
    "IngestionState",
    "Record",
    "Severity",
    "UploadStats",
    "ValidationIssue",
]
