"""
storage/models/metadata.py

Per-dataset-type metadata, written in the same transaction as its records.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from storage.base import Base


class DatasetMetadata(Base):
    """
    Upload bookkeeping for one dataset type.

    record_count always equals the live number of rows in dataset_records
    for the same dataset_type after a committed write.
    """

    __tablename__ = "dataset_metadata"

    dataset_type: Mapped[str] = mapped_column(String(64), primary_key=True)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_modified: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    uploaded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    file_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Original name of the most recently ingested file",
    )
    file_size: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
        comment="Size in bytes of the most recently ingested file",
    )

    def __repr__(self) -> str:
        return (
            f"<DatasetMetadata dataset_type={self.dataset_type!r} "
            f"record_count={self.record_count} last_modified={self.last_modified}>"
        )
