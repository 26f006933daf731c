"""
tests/test_ordering.py
"""

from __future__ import annotations

from datetime import date

import pytest

from analytics.ordering import paginate, sort_records
from reporting.schemas.query import SortSpec


def _ids(records) -> list[str]:
    return [record.id for record in records]


def test_missing_values_sort_last_in_both_directions(make_record) -> None:
    records = [
        make_record("none", product=None),
        make_record("b", product="beta"),
        make_record("a", product="Alpha"),
    ]

    assert _ids(sort_records(records, SortSpec(field="product"))) == ["a", "b", "none"]
    assert _ids(sort_records(records, SortSpec(field="product", direction="desc"))) == ["b", "a", "none"]


def test_sort_is_stable_for_equal_keys(make_record) -> None:
    records = [make_record("x", amount=5.0), make_record("y", amount=5.0), make_record("z", amount=1.0)]

    assert _ids(sort_records(records, SortSpec(field="amount"))) == ["z", "x", "y"]


def test_mixed_types_do_not_raise(make_record) -> None:
    records = [
        make_record("text", amount="n/a"),
        make_record("day", amount=date(2024, 1, 1)),
        make_record("number", amount=3),
    ]

    assert _ids(sort_records(records, SortSpec(field="amount"))) == ["number", "day", "text"]


def test_paginate_windows(make_record) -> None:
    records = [make_record(str(index)) for index in range(5)]

    assert _ids(paginate(records, limit=2)) == ["0", "1"]
    assert _ids(paginate(records, limit=2, offset=4)) == ["4"]
    assert _ids(paginate(records, limit=0)) == []
    assert len(paginate(records)) == 5


def test_negative_offset_is_rejected(make_record) -> None:
    with pytest.raises(ValueError):
        paginate([make_record("a")], offset=-1)
