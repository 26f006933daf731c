"""
tests/test_coercion.py

Unit tests for raw value parsing: UK dates, datetimes, currency,
percentages and numbers.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from reporting.validators.coercion import (
    CoercionError,
    coerce,
    parse_currency,
    parse_date,
    parse_datetime,
    parse_number,
    parse_percentage,
)


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


class TestParseDate:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("31/01/2024", date(2024, 1, 31)),
            ("31-01-2024", date(2024, 1, 31)),
            ("31.01.2024", date(2024, 1, 31)),
            ("1/2/2024", date(2024, 2, 1)),
            (" 29/02/2024 ", date(2024, 2, 29)),
            ("2024-01-31", date(2024, 1, 31)),
        ],
    )
    def test_accepts_day_first_and_iso(self, raw: str, expected: date) -> None:
        assert parse_date(raw) == expected

    def test_day_first_round_trips(self) -> None:
        day = date(2023, 12, 5)
        for offset in range(0, 400, 37):
            current = day + timedelta(days=offset)
            assert parse_date(current.strftime("%d/%m/%Y")) == current

    @pytest.mark.parametrize("raw", ["31/02/2024", "29/02/2023", "00/01/2024", "15/13/2024"])
    def test_rejects_impossible_calendar_dates(self, raw: str) -> None:
        with pytest.raises(CoercionError) as exc_info:
            parse_date(raw)
        assert exc_info.value.code == "invalid_date"

    @pytest.mark.parametrize("raw", ["31/01-2024", "January 31", "2024/31/01", "tomorrow"])
    def test_rejects_unrecognised_forms(self, raw: str) -> None:
        with pytest.raises(CoercionError) as exc_info:
            parse_date(raw)
        assert exc_info.value.code == "invalid_date"


class TestParseDatetime:
    def test_day_first_with_time(self) -> None:
        assert parse_datetime("31/01/2024 14:30") == datetime(2024, 1, 31, 14, 30)

    def test_day_first_with_seconds(self) -> None:
        assert parse_datetime("31/01/2024 14:30:15") == datetime(2024, 1, 31, 14, 30, 15)

    def test_bare_date_is_midnight(self) -> None:
        assert parse_datetime("31/01/2024") == datetime(2024, 1, 31)

    def test_iso_trailing_z_is_utc(self) -> None:
        parsed = parse_datetime("2024-01-31T14:30:00Z")
        assert parsed == datetime(2024, 1, 31, 14, 30, tzinfo=timezone.utc)

    def test_invalid_time_rejected(self) -> None:
        with pytest.raises(CoercionError) as exc_info:
            parse_datetime("31/01/2024 25:00")
        assert exc_info.value.code == "invalid_datetime"


# ---------------------------------------------------------------------------
# Currency
# ---------------------------------------------------------------------------


class TestParseCurrency:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("£1,234", 1234.0),
            ("1234.00", 1234.0),
            ("$ 1 234.50", 1234.5),
            ("€0.99", 0.99),
            ("¥100", 100.0),
            ("-50", -50.0),
        ],
    )
    def test_strips_symbols_and_separators(self, raw: str, expected: float) -> None:
        assert parse_currency(raw) == pytest.approx(expected)

    def test_pound_and_plain_forms_agree(self) -> None:
        assert parse_currency("£1,234") == parse_currency("1234.00") == 1234

    @pytest.mark.parametrize("raw", ["abc", "£", "NaN", "Infinity", "12..5", "1_000", "£1_000.50"])
    def test_rejects_non_numeric_remainder(self, raw: str) -> None:
        with pytest.raises(CoercionError) as exc_info:
            parse_currency(raw)
        assert exc_info.value.code == "invalid_currency"


# ---------------------------------------------------------------------------
# Percentages
# ---------------------------------------------------------------------------


class TestParsePercentage:
    @pytest.mark.parametrize(
        "raw, expected",
        [("45%", 45.0), ("45", 45.0), ("0", 0.0), ("100", 100.0), ("100%", 100.0), ("0.45", 0.45)],
    )
    def test_accepts_bounds_inclusive(self, raw: str, expected: float) -> None:
        assert parse_percentage(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["100.5", "-1%", "250"])
    def test_out_of_range_is_an_error_not_clamped(self, raw: str) -> None:
        with pytest.raises(CoercionError) as exc_info:
            parse_percentage(raw)
        assert exc_info.value.code == "out_of_range"

    @pytest.mark.parametrize("raw", ["abc%", "1_0%"])
    def test_non_numeric_rejected(self, raw: str) -> None:
        with pytest.raises(CoercionError) as exc_info:
            parse_percentage(raw)
        assert exc_info.value.code == "invalid_percentage"


# ---------------------------------------------------------------------------
# Numbers
# ---------------------------------------------------------------------------


class TestParseNumber:
    def test_integers_stay_int(self) -> None:
        value = parse_number("1,000")
        assert value == 1000
        assert isinstance(value, int)

    def test_decimals_become_float(self) -> None:
        value = parse_number("12.5")
        assert value == pytest.approx(12.5)
        assert isinstance(value, float)

    @pytest.mark.parametrize("raw", ["inf", "nan", "12a", "--1", "1_0", "1_0.5"])
    def test_rejects_non_finite_and_garbage(self, raw: str) -> None:
        with pytest.raises(CoercionError) as exc_info:
            parse_number(raw)
        assert exc_info.value.code == "invalid_number"


class TestCoerceDispatch:
    def test_string_and_category_are_trimmed(self) -> None:
        assert coerce("  Funded ", "category") == "Funded"
        assert coerce(" abc ", "string") == "abc"

    def test_unknown_type_raises_value_error(self) -> None:
        with pytest.raises(ValueError):
            coerce("1", "boolean")
