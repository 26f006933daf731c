"""
reporting/errors.py

Exception hierarchy for ingestion and querying.

Row-level problems are never raised; they are collected as
``ValidationIssue`` values on the ingestion result. Only failures that
invalidate a whole file or operation surface as exceptions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence


class ReportingError(Exception):
    """
    Base class for reporting pipeline failures.
    """


@dataclass(frozen=True)
class StructuralErrorDetail:
    """
    Structured detail for one file-level problem.
    """

    code: str
    message: str
    field_name: str | None = None
    source_column: str | None = None
    context: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "field_name": self.field_name,
            "source_column": self.source_column,
            "context": self.context,
        }


class StructuralError(ReportingError, ValueError):
    """
    Raised when an uploaded file cannot be processed at all: empty or
    undecodable content, malformed CSV, colliding headers, missing required
    columns, or limits exceeded. Nothing is persisted.
    """

    def __init__(self, *, message: str, errors: Sequence[StructuralErrorDetail] = ()) -> None:
        super().__init__(message)
        self.message = message
        self.errors = tuple(errors)

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(error.code for error in self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "errors": [error.to_dict() for error in self.errors],
        }


class IngestionCancelledError(ReportingError):
    """
    Raised when an ingestion run is cancelled before its write committed.
    """

    def __init__(self, dataset_type: str, *, rows_processed: int = 0) -> None:
        super().__init__(f"Ingestion for {dataset_type!r} was cancelled.")
        self.dataset_type = dataset_type
        self.rows_processed = rows_processed


class UnknownDatasetTypeError(ReportingError, KeyError):
    """
    Raised when no schema is registered for a dataset type.
    """

    def __init__(self, dataset_type: str) -> None:
        super().__init__(dataset_type)
        self.dataset_type = dataset_type

    def __str__(self) -> str:
        return f"Unknown dataset type: {self.dataset_type!r}."
