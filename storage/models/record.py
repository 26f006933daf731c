"""
storage/models/record.py

Persisted dataset records and their dataset-specific secondary index.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from sqlalchemy import Date, DateTime, ForeignKeyConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from storage.base import Base, JSONType


class DatasetRecord(Base):
    """
    One validated, typed row belonging to a dataset type.

    ``fields`` holds canonical field values in the tagged JSON encoding from
    :mod:`storage.repositories.codec`; ``extras`` holds unmapped upload
    columns under their original header names.
    """

    __tablename__ = "dataset_records"

    dataset_type: Mapped[str] = mapped_column(String(64), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    fields: Mapped[dict[str, Any]] = mapped_column(
        JSONType,
        nullable=False,
        comment="Canonical field values (tagged JSON encoding)",
    )
    extras: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType,
        nullable=True,
        comment="Unmapped source columns preserved under their original header",
    )
    row_index: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
        comment="1-based source line number of the row that produced this record",
    )
    record_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
        comment="Primary date of the record; backs the date-ordered index",
    )
    processed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_dataset_records_type_date", "dataset_type", "record_date"),
        Index("ix_dataset_records_type_processed_at", "dataset_type", "processed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<DatasetRecord dataset_type={self.dataset_type!r} id={self.id!r} "
            f"record_date={self.record_date}>"
        )


class RecordIndexEntry(Base):
    """
    Inverted index row: ``(dataset_type, field_name, value_key) -> record_id``.
    """

    __tablename__ = "record_index_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dataset_type: Mapped[str] = mapped_column(String(64), nullable=False)
    record_id: Mapped[str] = mapped_column(String(64), nullable=False)
    field_name: Mapped[str] = mapped_column(String(120), nullable=False)
    value_key: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        ForeignKeyConstraint(
            ["dataset_type", "record_id"],
            ["dataset_records.dataset_type", "dataset_records.id"],
            ondelete="CASCADE",
            name="fk_record_index_entries_record",
        ),
        Index("ix_record_index_entries_lookup", "dataset_type", "field_name", "value_key"),
        Index("ix_record_index_entries_record", "dataset_type", "record_id"),
    )
