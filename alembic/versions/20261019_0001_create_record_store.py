"""create record store tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:30:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    op.create_table(
        "dataset_records",
        sa.Column("dataset_type", sa.String(length=64), nullable=False),
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("fields", _JSON, nullable=False, comment="Canonical field values (tagged JSON encoding)"),
        sa.Column(
            "extras",
            _JSON,
            nullable=True,
            comment="Unmapped source columns preserved under their original header",
        ),
        sa.Column(
            "row_index",
            sa.Integer(),
            nullable=True,
            comment="1-based source line number of the row that produced this record",
        ),
        sa.Column(
            "record_date",
            sa.Date(),
            nullable=True,
            comment="Primary date of the record; backs the date-ordered index",
        ),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("dataset_type", "id"),
    )
    op.create_index(
        "ix_dataset_records_type_date",
        "dataset_records",
        ["dataset_type", "record_date"],
        unique=False,
    )
    op.create_index(
        "ix_dataset_records_type_processed_at",
        "dataset_records",
        ["dataset_type", "processed_at"],
        unique=False,
    )

    op.create_table(
        "record_index_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("dataset_type", sa.String(length=64), nullable=False),
        sa.Column("record_id", sa.String(length=64), nullable=False),
        sa.Column("field_name", sa.String(length=120), nullable=False),
        sa.Column("value_key", sa.String(length=255), nullable=False),
        sa.ForeignKeyConstraint(
            ["dataset_type", "record_id"],
            ["dataset_records.dataset_type", "dataset_records.id"],
            ondelete="CASCADE",
            name="fk_record_index_entries_record",
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_record_index_entries_lookup",
        "record_index_entries",
        ["dataset_type", "field_name", "value_key"],
        unique=False,
    )
    op.create_index(
        "ix_record_index_entries_record",
        "record_index_entries",
        ["dataset_type", "record_id"],
        unique=False,
    )

    op.create_table(
        "dataset_metadata",
        sa.Column("dataset_type", sa.String(length=64), nullable=False),
        sa.Column("record_count", sa.Integer(), nullable=False),
        sa.Column("last_modified", sa.DateTime(timezone=True), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "file_name",
            sa.String(length=255),
            nullable=True,
            comment="Original name of the most recently ingested file",
        ),
        sa.Column(
            "file_size",
            sa.BigInteger(),
            nullable=True,
            comment="Size in bytes of the most recently ingested file",
        ),
        sa.PrimaryKeyConstraint("dataset_type"),
    )


def downgrade() -> None:
    op.drop_table("dataset_metadata")
    op.drop_index("ix_record_index_entries_record", table_name="record_index_entries")
    op.drop_index("ix_record_index_entries_lookup", table_name="record_index_entries")
    op.drop_table("record_index_entries")
    op.drop_index("ix_dataset_records_type_processed_at", table_name="dataset_records")
    op.drop_index("ix_dataset_records_type_date", table_name="dataset_records")
    op.drop_table("dataset_records")
