"""
analytics/ordering.py

Sorting and offset pagination for query results.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Sequence

from reporting.schemas.query import SortSpec
from storage.repositories.types import Record


def _sort_key(value: Any) -> tuple[int, Any]:
    # Numbers, then dates, then text, so mixed columns never compare across types.
    if isinstance(value, bool):
        return 2, str(value).casefold()
    if isinstance(value, (int, float)):
        return 0, float(value)
    if isinstance(value, date):
        return 1, value.isoformat()
    return 2, str(value).strip().casefold()


def sort_records(records: Sequence[Record], sort: SortSpec) -> list[Record]:
    """
    Stable sort on one field. Records missing the field always come last.
    """

    def value_of(record: Record) -> Any:
        return record.id if sort.field == "id" else record.fields.get(sort.field)

    present = [record for record in records if value_of(record) is not None]
    missing = [record for record in records if value_of(record) is None]
    present.sort(key=lambda record: _sort_key(value_of(record)), reverse=sort.direction == "desc")
    return present + missing


def paginate(records: Sequence[Record], *, limit: int | None = None, offset: int = 0) -> list[Record]:
    if offset < 0:
        raise ValueError("offset must not be negative.")
    if limit is not None and limit < 0:
        raise ValueError("limit must not be negative.")
    end = None if limit is None else offset + limit
    return list(records[offset:end])
