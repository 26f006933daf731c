"""
storage/repositories/record_store.py

Persistent, dataset-keyed record store with date and field indexes.

Every operation is scoped to exactly one dataset type; namespaces never
cross implicitly. Writes for a dataset type are serialised by a per-type
lock and run inside a single transaction that also refreshes the
dataset's metadata row, so readers never observe a partial batch and
``record_count`` always matches the live row count.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from datetime import date, datetime, timezone
from typing import Any, TypeVar

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from storage.base import Base
from storage.models import DatasetMetadata, DatasetRecord, RecordIndexEntry
from storage.repositories.codec import decode_fields, decode_value, encode_fields, index_key
from storage.repositories.errors import StorageError
from storage.repositories.types import (
    DatasetMetadataSnapshot,
    DatasetStats,
    DateRange,
    PutResult,
    Record,
    UploadInfo,
)
from storage.session import create_db_engine, create_session_factory

logger = logging.getLogger(__name__)

_IN_CLAUSE_CHUNK = 500
_T = TypeVar("_T")


def _chunks(values: Sequence[_T], size: int = _IN_CLAUSE_CHUNK) -> Iterator[Sequence[_T]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on DateTime(timezone=True) columns.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class RecordStore:
    """
    CRUD plus indexed range queries over dataset records.

    Parameters
    ----------
    session_factory:
        Factory producing sessions bound to the store's database.
    engine:
        Engine owned by the store; disposed by :meth:`close` when given.
    indexed_fields:
        Dataset type -> field names maintained in the secondary index.
    date_fields:
        Dataset type -> primary date field. When configured, each record's
        ``record_date`` is taken from that field on write so the date index
        always agrees with the stored fields.
    """

    def __init__(
        self,
        *,
        session_factory: sessionmaker[Session],
        engine: Engine | None = None,
        indexed_fields: Mapping[str, Sequence[str]] | None = None,
        date_fields: Mapping[str, str] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine
        self._indexed_fields: dict[str, tuple[str, ...]] = {
            dataset_type: tuple(fields) for dataset_type, fields in (indexed_fields or {}).items()
        }
        self._date_fields: dict[str, str] = dict(date_fields or {})
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._generations: dict[str, int] = defaultdict(int)
        self._writing: set[str] = set()

    @classmethod
    def from_url(
        cls,
        database_url: str | None = None,
        *,
        indexed_fields: Mapping[str, Sequence[str]] | None = None,
        date_fields: Mapping[str, str] | None = None,
    ) -> RecordStore:
        """
        Build a store with its own engine for *database_url*.
        """

        engine = create_db_engine(database_url)
        return cls(
            session_factory=create_session_factory(engine),
            engine=engine,
            indexed_fields=indexed_fields,
            date_fields=date_fields,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init_schema(self) -> None:
        """Create missing tables. Production databases use the Alembic migrations."""
        if self._engine is None:
            raise StorageError("init_schema requires a store constructed with an engine.")
        try:
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise StorageError("Failed to create record store schema.", operation="init_schema") from exc

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()

    def __enter__(self) -> RecordStore:
        return self

    def __exit__(self, *_exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def put(
        self,
        dataset_type: str,
        records: Sequence[Record],
        *,
        merge: bool = False,
        upload: UploadInfo | None = None,
        abort_check: Callable[[], None] | None = None,
    ) -> PutResult:
        """
        Upsert *records* by id.

        Existing records are replaced wholesale unless ``merge`` is True,
        in which case the supplied fields are shallow-merged over the stored
        ones. Either every record is written or none is.

        ``abort_check`` runs inside the transaction just before commit; any
        exception it raises rolls the batch back.
        """

        self._require_dataset_type(dataset_type)
        for record in records:
            if record.dataset_type != dataset_type:
                raise ValueError(
                    f"Record {record.id!r} belongs to {record.dataset_type!r}, not {dataset_type!r}."
                )

        # Last occurrence of an id inside one batch wins.
        unique: dict[str, Record] = {}
        for record in records:
            unique[record.id] = record

        def operation(session: Session) -> tuple[int, int]:
            return self._upsert(session, dataset_type, list(unique.values()), merge=merge)

        (inserted, updated), record_count = self._write(
            dataset_type,
            "put",
            operation,
            upload=upload,
            abort_check=abort_check,
        )
        logger.info(
            "Record store put dataset_type=%s inserted=%d updated=%d record_count=%d",
            dataset_type,
            inserted,
            updated,
            record_count,
        )
        return PutResult(inserted=inserted, updated=updated, record_count=record_count)

    def delete_by_ids(self, dataset_type: str, ids: Iterable[str]) -> int:
        """
        Hard-delete the given ids. Unknown ids are ignored.
        """

        self._require_dataset_type(dataset_type)
        id_list = sorted({str(record_id) for record_id in ids})
        if not id_list:
            return 0

        def operation(session: Session) -> int:
            deleted = 0
            for chunk in _chunks(id_list):
                session.execute(
                    delete(RecordIndexEntry).where(
                        RecordIndexEntry.dataset_type == dataset_type,
                        RecordIndexEntry.record_id.in_(chunk),
                    )
                )
                result = session.execute(
                    delete(DatasetRecord).where(
                        DatasetRecord.dataset_type == dataset_type,
                        DatasetRecord.id.in_(chunk),
                    )
                )
                deleted += result.rowcount or 0
            return deleted

        deleted, record_count = self._write(dataset_type, "delete_by_ids", operation)
        logger.info(
            "Record store delete dataset_type=%s deleted=%d record_count=%d",
            dataset_type,
            deleted,
            record_count,
        )
        return deleted

    def clear(self, dataset_type: str) -> int:
        """
        Remove every record of *dataset_type*. Other dataset types are untouched.
        """

        self._require_dataset_type(dataset_type)

        def operation(session: Session) -> int:
            session.execute(delete(RecordIndexEntry).where(RecordIndexEntry.dataset_type == dataset_type))
            result = session.execute(delete(DatasetRecord).where(DatasetRecord.dataset_type == dataset_type))
            return result.rowcount or 0

        deleted, _ = self._write(dataset_type, "clear", operation)
        logger.info("Record store cleared dataset_type=%s deleted=%d", dataset_type, deleted)
        return deleted

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get_all(
        self,
        dataset_type: str,
        predicate: Callable[[Record], bool] | None = None,
    ) -> list[Record]:
        """
        Return every record of *dataset_type*, date-ordered, optionally filtered.
        """

        self._require_dataset_type(dataset_type)
        stmt = (
            select(DatasetRecord)
            .where(DatasetRecord.dataset_type == dataset_type)
            .order_by(DatasetRecord.record_date, DatasetRecord.row_index, DatasetRecord.id)
        )
        records = self._read(dataset_type, "get_all", lambda session: self._fetch(session, stmt))
        if predicate is None:
            return records
        return [record for record in records if predicate(record)]

    def get(self, dataset_type: str, record_id: str) -> Record | None:
        self._require_dataset_type(dataset_type)

        def operation(session: Session) -> Record | None:
            row = session.get(DatasetRecord, (dataset_type, record_id))
            return self._to_record(row) if row is not None else None

        return self._read(dataset_type, "get", operation)

    def get_by_date_range(self, dataset_type: str, start: date, end: date) -> list[Record]:
        """
        Return records whose primary date lies in ``[start, end]`` (both inclusive).

        Records without a primary date are never returned. An inverted range
        yields an empty list.
        """

        self._require_dataset_type(dataset_type)
        start_date = start.date() if isinstance(start, datetime) else start
        end_date = end.date() if isinstance(end, datetime) else end
        if start_date > end_date:
            return []

        stmt = (
            select(DatasetRecord)
            .where(
                DatasetRecord.dataset_type == dataset_type,
                DatasetRecord.record_date >= start_date,
                DatasetRecord.record_date <= end_date,
            )
            .order_by(DatasetRecord.record_date, DatasetRecord.row_index, DatasetRecord.id)
        )
        return self._read(dataset_type, "get_by_date_range", lambda session: self._fetch(session, stmt))

    def get_by_index(self, dataset_type: str, field_name: str, value: Any) -> list[Record]:
        """
        Return records whose *field_name* equals *value* (index key normalisation applies).

        Fields without a configured index fall back to a full scan.
        """

        self._require_dataset_type(dataset_type)
        key = index_key(value)
        if key is None:
            return []

        if field_name not in self._indexed_fields.get(dataset_type, ()):
            logger.debug(
                "get_by_index dataset_type=%s field=%s is not indexed; scanning",
                dataset_type,
                field_name,
            )
            return self.get_all(dataset_type, lambda record: index_key(record.fields.get(field_name)) == key)

        matching_ids = (
            select(RecordIndexEntry.record_id)
            .where(
                RecordIndexEntry.dataset_type == dataset_type,
                RecordIndexEntry.field_name == field_name,
                RecordIndexEntry.value_key == key,
            )
        )
        stmt = (
            select(DatasetRecord)
            .where(
                DatasetRecord.dataset_type == dataset_type,
                DatasetRecord.id.in_(matching_ids),
            )
            .order_by(DatasetRecord.record_date, DatasetRecord.row_index, DatasetRecord.id)
        )
        return self._read(dataset_type, "get_by_index", lambda session: self._fetch(session, stmt))

    def count(self, dataset_type: str) -> int:
        self._require_dataset_type(dataset_type)
        return self._read(dataset_type, "count", lambda session: self._count(session, dataset_type))

    def stats(self, dataset_type: str) -> DatasetStats:
        """
        Live record count, primary-date range and last processing time.

        Queries
        -------
        Single aggregation::

            SELECT COUNT(*), MIN(record_date), MAX(record_date), MAX(processed_at)
            FROM   dataset_records
            WHERE  dataset_type = :dataset_type
        """

        self._require_dataset_type(dataset_type)
        stmt = select(
            func.count(),
            func.min(DatasetRecord.record_date),
            func.max(DatasetRecord.record_date),
            func.max(DatasetRecord.processed_at),
        ).where(DatasetRecord.dataset_type == dataset_type)

        def operation(session: Session) -> DatasetStats:
            count, earliest, latest, last_update = session.execute(stmt).one()
            date_range = None
            if earliest is not None and latest is not None:
                date_range = DateRange(earliest=earliest, latest=latest)
            return DatasetStats(
                dataset_type=dataset_type,
                record_count=int(count or 0),
                date_range=date_range,
                last_update=_as_utc(last_update),
            )

        return self._read(dataset_type, "stats", operation)

    def get_metadata(self, dataset_type: str) -> DatasetMetadataSnapshot | None:
        self._require_dataset_type(dataset_type)

        def operation(session: Session) -> DatasetMetadataSnapshot | None:
            row = session.get(DatasetMetadata, dataset_type)
            return self._to_metadata(row) if row is not None else None

        return self._read(dataset_type, "get_metadata", operation)

    def list_metadata(self) -> list[DatasetMetadataSnapshot]:
        stmt = select(DatasetMetadata).order_by(DatasetMetadata.dataset_type)
        return self._read(
            None,
            "list_metadata",
            lambda session: [self._to_metadata(row) for row in session.scalars(stmt).all()],
        )

    def generation(self, dataset_type: str) -> int:
        """
        Number of committed writes to *dataset_type* through this store.
        """

        return self._generations[dataset_type]

    def cache_generation(self, dataset_type: str) -> int | None:
        """
        Generation to tag cached reads with, or None while a write to
        *dataset_type* is in flight.

        The in-flight marker is set before the transaction opens and cleared
        only after the generation has advanced, so a read that lands between
        commit and increment is never matched against an older cache entry.
        """

        if dataset_type in self._writing:
            return None
        return self._generations[dataset_type]

    # ------------------------------------------------------------------
    # Snapshot export / import
    # ------------------------------------------------------------------

    def export_all(self) -> dict[str, Any]:
        """
        Return a JSON-serialisable snapshot of every dataset and its metadata.
        """

        def operation(session: Session) -> dict[str, Any]:
            datasets: dict[str, list[dict[str, Any]]] = defaultdict(list)
            stmt = select(DatasetRecord).order_by(
                DatasetRecord.dataset_type,
                DatasetRecord.record_date,
                DatasetRecord.row_index,
                DatasetRecord.id,
            )
            for row in session.scalars(stmt):
                datasets[row.dataset_type].append(
                    {
                        "id": row.id,
                        "fields": dict(row.fields),
                        "extras": dict(row.extras or {}),
                        "row_index": row.row_index,
                        "record_date": row.record_date.isoformat() if row.record_date else None,
                        "processed_at": _as_utc(row.processed_at).isoformat(),
                    }
                )
            metadata = [
                {
                    "dataset_type": row.dataset_type,
                    "record_count": row.record_count,
                    "last_modified": _as_utc(row.last_modified).isoformat(),
                    "uploaded_at": row.uploaded_at and _as_utc(row.uploaded_at).isoformat(),
                    "file_name": row.file_name,
                    "file_size": row.file_size,
                }
                for row in session.scalars(select(DatasetMetadata).order_by(DatasetMetadata.dataset_type))
            ]
            return {
                "exported_at": _utcnow().isoformat(),
                "datasets": dict(datasets),
                "metadata": metadata,
            }

        return self._read(None, "export_all", operation)

    def import_all(self, snapshot: Mapping[str, Any]) -> dict[str, int]:
        """
        Load a snapshot produced by :meth:`export_all`, upserting per dataset type.

        Each dataset type is written atomically on its own; there is no
        cross-dataset transaction.
        """

        results: dict[str, int] = {}
        for dataset_type, rows in (snapshot.get("datasets") or {}).items():
            records = [
                Record(
                    id=str(row["id"]),
                    dataset_type=dataset_type,
                    fields=decode_fields(row.get("fields")),
                    extras=dict(row.get("extras") or {}),
                    row_index=row.get("row_index"),
                    record_date=date.fromisoformat(row["record_date"]) if row.get("record_date") else None,
                    processed_at=_as_utc(datetime.fromisoformat(row["processed_at"]))
                    if row.get("processed_at")
                    else _utcnow(),
                )
                for row in rows
            ]
            result = self.put(dataset_type, records)
            results[dataset_type] = result.inserted + result.updated
        return results

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _write(
        self,
        dataset_type: str,
        operation_name: str,
        operation: Callable[[Session], _T],
        *,
        upload: UploadInfo | None = None,
        abort_check: Callable[[], None] | None = None,
    ) -> tuple[_T, int]:
        with self._lock_for(dataset_type):
            self._writing.add(dataset_type)
            try:
                with self._session_factory() as session, session.begin():
                    result = operation(session)
                    session.flush()
                    record_count = self._count(session, dataset_type)
                    self._refresh_metadata(session, dataset_type, record_count, upload)
                    if abort_check is not None:
                        abort_check()
            except SQLAlchemyError as exc:
                logger.error(
                    "Record store %s failed dataset_type=%s: %s",
                    operation_name,
                    dataset_type,
                    exc,
                )
                raise StorageError(
                    f"Failed to {operation_name.replace('_', ' ')} records for {dataset_type!r}.",
                    dataset_type=dataset_type,
                    operation=operation_name,
                ) from exc
            else:
                self._generations[dataset_type] += 1
            finally:
                self._writing.discard(dataset_type)
        return result, record_count

    def _read(
        self,
        dataset_type: str | None,
        operation_name: str,
        operation: Callable[[Session], _T],
    ) -> _T:
        try:
            with self._session_factory() as session, session.begin():
                return operation(session)
        except SQLAlchemyError as exc:
            logger.error(
                "Record store %s failed dataset_type=%s: %s",
                operation_name,
                dataset_type,
                exc,
            )
            raise StorageError(
                f"Failed to read records ({operation_name}).",
                dataset_type=dataset_type,
                operation=operation_name,
            ) from exc

    def _upsert(
        self,
        session: Session,
        dataset_type: str,
        records: list[Record],
        *,
        merge: bool,
    ) -> tuple[int, int]:
        ids = [record.id for record in records]
        existing: dict[str, DatasetRecord] = {}
        for chunk in _chunks(ids):
            stmt = select(DatasetRecord).where(
                DatasetRecord.dataset_type == dataset_type,
                DatasetRecord.id.in_(chunk),
            )
            for row in session.scalars(stmt):
                existing[row.id] = row

        inserted = 0
        updated = 0
        final_fields: dict[str, dict[str, Any]] = {}
        for record in records:
            encoded = encode_fields(record.fields)
            row = existing.get(record.id)
            if row is None:
                row = DatasetRecord(
                    dataset_type=dataset_type,
                    id=record.id,
                    fields=encoded,
                    extras=dict(record.extras) or None,
                    row_index=record.row_index,
                    record_date=self._record_date(dataset_type, encoded, record.record_date),
                    processed_at=record.processed_at,
                )
                session.add(row)
                inserted += 1
            elif merge:
                row.fields = {**(row.fields or {}), **encoded}
                row.extras = {**(row.extras or {}), **record.extras} or None
                if record.row_index is not None:
                    row.row_index = record.row_index
                row.record_date = self._record_date(dataset_type, row.fields, record.record_date or row.record_date)
                row.processed_at = record.processed_at
                updated += 1
            else:
                row.fields = encoded
                row.extras = dict(record.extras) or None
                row.row_index = record.row_index
                row.record_date = self._record_date(dataset_type, encoded, record.record_date)
                row.processed_at = record.processed_at
                updated += 1
            final_fields[record.id] = row.fields

        session.flush()
        self._reindex(session, dataset_type, final_fields)
        return inserted, updated

    def _reindex(
        self,
        session: Session,
        dataset_type: str,
        fields_by_id: Mapping[str, Mapping[str, Any]],
    ) -> None:
        indexed = self._indexed_fields.get(dataset_type, ())
        if not indexed or not fields_by_id:
            return

        ids = list(fields_by_id)
        for chunk in _chunks(ids):
            session.execute(
                delete(RecordIndexEntry).where(
                    RecordIndexEntry.dataset_type == dataset_type,
                    RecordIndexEntry.record_id.in_(chunk),
                )
            )

        entries: list[dict[str, Any]] = []
        for record_id, fields in fields_by_id.items():
            for field_name in indexed:
                key = index_key(fields.get(field_name))
                if key is None:
                    continue
                entries.append(
                    {
                        "dataset_type": dataset_type,
                        "record_id": record_id,
                        "field_name": field_name,
                        "value_key": key,
                    }
                )
        if entries:
            session.execute(insert(RecordIndexEntry), entries)

    def _record_date(self, dataset_type: str, fields: Mapping[str, Any], fallback: date | None) -> date | None:
        field_name = self._date_fields.get(dataset_type)
        if field_name is None:
            return fallback
        value = decode_value(fields.get(field_name))
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        return None

    @staticmethod
    def _refresh_metadata(
        session: Session,
        dataset_type: str,
        record_count: int,
        upload: UploadInfo | None,
    ) -> None:
        now = _utcnow()
        row = session.get(DatasetMetadata, dataset_type)
        if row is None:
            row = DatasetMetadata(dataset_type=dataset_type, record_count=record_count, last_modified=now)
            session.add(row)
        row.record_count = record_count
        row.last_modified = now
        if upload is not None:
            row.uploaded_at = upload.uploaded_at
            row.file_name = upload.file_name
            row.file_size = upload.file_size

    @staticmethod
    def _count(session: Session, dataset_type: str) -> int:
        stmt = select(func.count()).select_from(DatasetRecord).where(DatasetRecord.dataset_type == dataset_type)
        return int(session.scalar(stmt) or 0)

    def _fetch(self, session: Session, stmt: Any) -> list[Record]:
        return [self._to_record(row) for row in session.scalars(stmt).all()]

    @staticmethod
    def _to_record(row: DatasetRecord) -> Record:
        return Record(
            id=row.id,
            dataset_type=row.dataset_type,
            fields=decode_fields(row.fields),
            extras=dict(row.extras or {}),
            row_index=row.row_index,
            record_date=row.record_date,
            processed_at=_as_utc(row.processed_at),
        )

    @staticmethod
    def _to_metadata(row: DatasetMetadata) -> DatasetMetadataSnapshot:
        return DatasetMetadataSnapshot(
            dataset_type=row.dataset_type,
            record_count=row.record_count,
            last_modified=_as_utc(row.last_modified),
            uploaded_at=_as_utc(row.uploaded_at),
            file_name=row.file_name,
            file_size=row.file_size,
        )

    def _lock_for(self, dataset_type: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(dataset_type)
            if lock is None:
                lock = threading.Lock()
                self._locks[dataset_type] = lock
            return lock

    @staticmethod
    def _require_dataset_type(dataset_type: str) -> None:
        if not isinstance(dataset_type, str) or not dataset_type.strip():
            raise ValueError("dataset_type must be a non-empty string.")


__all__ = ["RecordStore"]
