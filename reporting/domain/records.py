"""
reporting/domain/records.py

Domain models used by the ingestion flow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from storage.repositories.types import DatasetMetadataSnapshot, DateRange, Record

Severity = Literal["error", "warning"]
IngestionState = Literal["received", "parsed", "column_mapped", "validated", "persisted", "rejected"]


@dataclass(frozen=True)
class ValidationIssue:
    """
    One row-level validation problem.

    ``row_index`` is the 1-based source line number (the header is row 1).
    Errors exclude the row from persistence; warnings do not.
    """

    row_index: int
    field_name: str | None
    message: str
    severity: Severity = "error"
    code: str = "invalid_value"
    value: Any = None

    @property
    def is_error(self) -> bool:
        return self.severity == "error"

    def to_dict(self) -> dict[str, Any]:
        return {
            "row_index": self.row_index,
            "field_name": self.field_name,
            "message": self.message,
            "severity": self.severity,
            "code": self.code,
            "value": self.value,
        }


@dataclass(frozen=True)
class FieldCoverage:
    populated: int
    percentage: float


@dataclass(frozen=True)
class UploadStats:
    """
    Shape of the accepted rows of one upload.

    ``field_coverage`` covers every declared and derived field of the schema;
    ``duplicate_count`` counts rows replaced by a later row with the same id.
    """

    accepted_rows: int
    date_range: DateRange | None
    field_coverage: dict[str, FieldCoverage]
    duplicate_count: int = 0


@dataclass(frozen=True)
class IngestionResult:
    """
    End-of-run ingestion summary.
    """

    dataset_type: str
    state: IngestionState
    accepted: list[Record] = field(default_factory=list)
    rejected_row_count: int = 0
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    total_rows: int = 0
    errors_truncated: bool = False
    metadata: DatasetMetadataSnapshot | None = None
    stats: UploadStats | None = None

    @property
    def accepted_count(self) -> int:
        return len(self.accepted)

    @property
    def persisted(self) -> bool:
        return self.state == "persisted"
