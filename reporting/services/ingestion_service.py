"""
reporting/services/ingestion_service.py

Service layer for file ingestion workflow orchestration.

One run moves through ``received -> parsed -> column_mapped -> validated``
and ends either ``persisted`` (at least one valid row, committed together
with the dataset metadata in a single transaction) or ``rejected`` (no valid
rows, nothing written). Every transition is logged as a structured event.

Structural problems (unreadable file, unusable header) raise
StructuralError. Row problems never raise; they are collected on the
returned IngestionResult.
"""

from __future__ import annotations

import asyncio
import csv
import hashlib
import io
import json
import logging
import threading
import uuid
from datetime import date, datetime, timezone
from typing import Any, BinaryIO, Callable, Union

from reporting.config import IngestionSettings, get_ingestion_settings
from reporting.domain.records import FieldCoverage, IngestionResult, IngestionState, UploadStats, ValidationIssue
from reporting.errors import IngestionCancelledError, StructuralError, StructuralErrorDetail
from reporting.logging_utils import log_event
from reporting.mappers.column_mapper import ColumnMapper
from reporting.schemas.registry import DatasetSchema, SchemaRegistry
from reporting.services.derived_fields import compute_derived_fields
from reporting.validators.record_validator import RecordValidator
from storage.repositories.codec import index_key
from storage.repositories.record_store import RecordStore
from storage.repositories.types import DateRange, Record, UploadInfo

logger = logging.getLogger(__name__)

IngestionSource = Union[bytes, bytearray, BinaryIO]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_record_id(schema: DatasetSchema, fields: dict[str, Any]) -> str:
    """
    Stable id from the dataset type and identity fields, or a fresh UUID.

    Re-uploading the same logical row therefore replaces it instead of
    duplicating it.
    """

    if schema.identity_fields:
        keys = [index_key(fields.get(name)) for name in schema.identity_fields]
        if all(key is not None for key in keys):
            digest = hashlib.sha1(
                json.dumps([schema.dataset_type, *keys], separators=(",", ":")).encode("utf-8")
            )
            return digest.hexdigest()[:32]
    return uuid.uuid4().hex


def _structural(code: str, message: str, **context: Any) -> StructuralError:
    return StructuralError(
        message=message,
        errors=[StructuralErrorDetail(code=code, message=message, context=context or None)],
    )


class _IssueCollector:
    """
    Accumulates row issues up to a cap while keeping exact counts.
    """

    def __init__(self, *, limit: int, log_errors: bool, dataset_type: str) -> None:
        self._limit = limit
        self._log_errors = log_errors
        self._dataset_type = dataset_type
        self.errors: list[ValidationIssue] = []
        self.warnings: list[ValidationIssue] = []
        self.error_count = 0
        self.warning_count = 0
        self.truncated = False

    def add(self, issue: ValidationIssue) -> None:
        if issue.is_error:
            self.error_count += 1
            target = self.errors
            if self._log_errors:
                logger.warning(
                    "Ingestion validation error dataset_type=%s row=%d field=%s code=%s: %s",
                    self._dataset_type,
                    issue.row_index,
                    issue.field_name,
                    issue.code,
                    issue.message,
                )
        else:
            self.warning_count += 1
            target = self.warnings

        if len(target) >= self._limit:
            self.truncated = True
            return
        target.append(issue)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class IngestionPipeline:
    """
    Coordinates parsing, column mapping, validation and persistence of uploads.
    """

    def __init__(
        self,
        *,
        store: RecordStore,
        registry: SchemaRegistry,
        settings: IngestionSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._registry = registry
        self._settings = settings or get_ingestion_settings()
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))

    def ingest(
        self,
        source: IngestionSource,
        dataset_type: str,
        *,
        file_name: str | None = None,
        merge: bool = False,
        cancel_event: threading.Event | None = None,
    ) -> IngestionResult:
        """
        Ingest one comma-delimited UTF-8 file into *dataset_type*.

        Args:
            source:        Raw file bytes or a binary stream positioned at the start.
            dataset_type:  Registered dataset type receiving the records.
            file_name:     Original file name, recorded in dataset metadata.
            merge:         Shallow-merge into existing records with the same id
                           instead of replacing them.
            cancel_event:  When set, the run stops before its write commits and
                           raises IngestionCancelledError.
        """

        schema = self._registry.get(dataset_type)
        self._transition(dataset_type, "received", file_name=file_name)
        self._check_cancelled(cancel_event, dataset_type)

        data = self._read_source(source)
        headers, rows = self._parse(data)
        self._transition(dataset_type, "parsed", header_count=len(headers))

        mapper = ColumnMapper(schema)
        mapping = mapper.build_mapping(headers)
        self._transition(
            dataset_type,
            "column_mapped",
            mapped=len(mapping.header_to_field),
            unmapped=list(mapping.unmapped_headers),
        )

        issues = _IssueCollector(
            limit=self._settings.max_validation_errors,
            log_errors=self._settings.log_validation_errors,
            dataset_type=dataset_type,
        )
        if mapping.unmapped_headers:
            issues.add(
                ValidationIssue(
                    row_index=1,
                    field_name=None,
                    message=(
                        "Columns not recognised for this dataset and kept as extras: "
                        f"{', '.join(mapping.unmapped_headers)}."
                    ),
                    severity="warning",
                    code="unmapped_column",
                    value=list(mapping.unmapped_headers),
                )
            )

        validator = RecordValidator(schema)
        processed_at = self._clock()
        accepted: dict[str, Record] = {}
        rejected_row_count = 0
        duplicate_count = 0
        total_rows = 0

        try:
            for raw_row in rows:
                row_index = rows.line_num
                self._check_cancelled(cancel_event, dataset_type, rows_processed=total_rows)
                total_rows += 1
                if total_rows > self._settings.max_rows:
                    raise _structural(
                        "too_many_rows",
                        f"File has more than {self._settings.max_rows} data rows.",
                        max_rows=self._settings.max_rows,
                    )

                overflow = raw_row.pop(None, None)
                if overflow is not None:
                    rejected_row_count += 1
                    issues.add(
                        ValidationIssue(
                            row_index=row_index,
                            field_name=None,
                            message=f"Row has {len(overflow)} more cell(s) than the header.",
                            code="malformed_row",
                            value=overflow,
                        )
                    )
                    continue

                if validator.is_completely_empty_row(raw_row):
                    issues.add(
                        ValidationIssue(
                            row_index=row_index,
                            field_name=None,
                            message="Empty row skipped.",
                            severity="warning",
                            code="empty_row",
                        )
                    )
                    continue

                mapped_row, extras = mapper.map_row(raw_row=raw_row, mapping=mapping)
                fields, row_issues = validator.validate_row(mapped_row=mapped_row, row_index=row_index)
                for issue in row_issues:
                    issues.add(issue)
                if fields is None:
                    rejected_row_count += 1
                    continue

                fields.update(compute_derived_fields(schema, fields))
                record = Record(
                    id=make_record_id(schema, fields),
                    dataset_type=dataset_type,
                    fields=fields,
                    extras={header: value for header, value in extras.items() if value is not None},
                    row_index=row_index,
                    record_date=self._record_date(schema, fields),
                    processed_at=processed_at,
                )
                previous = accepted.get(record.id)
                if previous is not None:
                    duplicate_count += 1
                    issues.add(
                        ValidationIssue(
                            row_index=row_index,
                            field_name=None,
                            message=f"Row duplicates row {previous.row_index}; the later row is kept.",
                            severity="warning",
                            code="duplicate_row",
                            value=record.id,
                        )
                    )
                accepted[record.id] = record
        except UnicodeDecodeError as exc:
            raise _structural("invalid_encoding", "File must be UTF-8 encoded.") from exc
        except csv.Error as exc:
            raise _structural("malformed_csv", f"Invalid CSV format: {exc}") from exc

        self._transition(
            dataset_type,
            "validated",
            total_rows=total_rows,
            accepted=len(accepted),
            rejected=rejected_row_count,
            errors=issues.error_count,
            warnings=issues.warning_count,
        )

        if not accepted:
            self._transition(dataset_type, "rejected", total_rows=total_rows, errors=issues.error_count)
            return IngestionResult(
                dataset_type=dataset_type,
                state="rejected",
                rejected_row_count=rejected_row_count,
                errors=issues.errors,
                warnings=issues.warnings,
                total_rows=total_rows,
                errors_truncated=issues.truncated,
                stats=self._upload_stats(schema, [], duplicate_count),
            )

        records = list(accepted.values())
        upload = UploadInfo(file_name=file_name, file_size=len(data), uploaded_at=processed_at)
        put_result = self._store.put(
            dataset_type,
            records,
            merge=merge,
            upload=upload,
            abort_check=lambda: self._check_cancelled(cancel_event, dataset_type, rows_processed=total_rows),
        )
        self._transition(
            dataset_type,
            "persisted",
            inserted=put_result.inserted,
            updated=put_result.updated,
            record_count=put_result.record_count,
        )

        return IngestionResult(
            dataset_type=dataset_type,
            state="persisted",
            accepted=records,
            rejected_row_count=rejected_row_count,
            errors=issues.errors,
            warnings=issues.warnings,
            total_rows=total_rows,
            errors_truncated=issues.truncated,
            metadata=self._store.get_metadata(dataset_type),
            stats=self._upload_stats(schema, records, duplicate_count),
        )

    async def ingest_async(
        self,
        source: IngestionSource,
        dataset_type: str,
        *,
        file_name: str | None = None,
        merge: bool = False,
    ) -> IngestionResult:
        """
        Run :meth:`ingest` in a worker thread.

        Cancelling the awaiting task signals the worker, which stops at its
        next check and rolls back any uncommitted write.
        """

        cancel_event = threading.Event()
        try:
            return await asyncio.to_thread(
                self.ingest,
                source,
                dataset_type,
                file_name=file_name,
                merge=merge,
                cancel_event=cancel_event,
            )
        except asyncio.CancelledError:
            cancel_event.set()
            log_event(logger, logging.INFO, "ingestion_cancel_requested", dataset_type=dataset_type)
            raise

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _read_source(self, source: IngestionSource) -> bytes:
        limit = self._settings.max_file_bytes
        if isinstance(source, (bytes, bytearray)):
            data = bytes(source)
        else:
            data = source.read(limit + 1)
            if isinstance(data, str):
                raise TypeError("Ingestion source must be opened in binary mode.")

        if len(data) > limit:
            raise _structural(
                "file_too_large",
                f"File exceeds the maximum size of {limit} bytes.",
                max_file_bytes=limit,
            )
        if not data.strip():
            raise _structural("empty_file", "File is empty.")
        return data

    @staticmethod
    def _parse(data: bytes) -> tuple[list[str], csv.DictReader]:
        text_stream = io.TextIOWrapper(io.BytesIO(data), encoding="utf-8-sig", newline="")
        try:
            reader = csv.DictReader(text_stream, strict=True)
            headers = reader.fieldnames or []
        except UnicodeDecodeError as exc:
            raise _structural("invalid_encoding", "File must be UTF-8 encoded.") from exc
        except csv.Error as exc:
            raise _structural("malformed_csv", f"Invalid CSV format: {exc}") from exc

        if not any(header.strip() for header in headers):
            raise _structural("missing_header", "File header row is missing.")
        return list(headers), reader

    @staticmethod
    def _upload_stats(schema: DatasetSchema, records: list[Record], duplicate_count: int) -> UploadStats:
        total = len(records)
        coverage: dict[str, FieldCoverage] = {}
        for field_name in schema.all_field_names:
            populated = sum(1 for record in records if record.fields.get(field_name) not in (None, ""))
            coverage[field_name] = FieldCoverage(
                populated=populated,
                percentage=populated / total * 100 if total else 0.0,
            )
        dates = [record.record_date for record in records if record.record_date is not None]
        return UploadStats(
            accepted_rows=total,
            date_range=DateRange(earliest=min(dates), latest=max(dates)) if dates else None,
            field_coverage=coverage,
            duplicate_count=duplicate_count,
        )

    @staticmethod
    def _record_date(schema: DatasetSchema, fields: dict[str, Any]) -> date | None:
        if schema.primary_date_field is None:
            return None
        value = fields.get(schema.primary_date_field)
        if isinstance(value, datetime):
            return value.date()
        return value

    @staticmethod
    def _check_cancelled(
        cancel_event: threading.Event | None,
        dataset_type: str,
        *,
        rows_processed: int = 0,
    ) -> None:
        if cancel_event is not None and cancel_event.is_set():
            log_event(
                logger,
                logging.INFO,
                "ingestion_cancelled",
                dataset_type=dataset_type,
                rows_processed=rows_processed,
            )
            raise IngestionCancelledError(dataset_type, rows_processed=rows_processed)

    @staticmethod
    def _transition(dataset_type: str, state: IngestionState, **fields: Any) -> None:
        level = logging.WARNING if state == "rejected" else logging.INFO
        log_event(logger, level, "ingestion_state", dataset_type=dataset_type, state=state, **fields)
