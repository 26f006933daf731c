"""
reporting/validators/coercion.py

Type parsing for raw cell values.

UK day-first dates are the primary date form; ISO 8601 is accepted as a
fallback. Currency and number parsing go through Decimal so that values
like "1,234.10" are read exactly before conversion.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

_DAY_FIRST_DATE = re.compile(r"^(\d{1,2})([/.\-])(\d{1,2})\2(\d{4})$")
_DAY_FIRST_DATETIME = re.compile(
    r"^(\d{1,2})([/.\-])(\d{1,2})\2(\d{4})(?:[ T](\d{1,2}):(\d{2})(?::(\d{2}))?)?$"
)
_INTEGER = re.compile(r"^[+-]?\d+$")
_CURRENCY_SYMBOLS = "£$€¥"


class CoercionError(ValueError):
    """
    Raised when a raw value cannot be converted to its field type.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_date(value: str) -> date:
    """
    Parse DD/MM/YYYY (also ``-`` or ``.`` separated) or ISO 8601.

    The separator must be used consistently and the day must exist in the
    given month, so ``31/02/2024`` is rejected rather than rolled over.
    """

    text = str(value).strip()
    match = _DAY_FIRST_DATE.match(text)
    if match:
        day, _, month, year = match.groups()
        try:
            return date(int(year), int(month), int(day))
        except ValueError as exc:
            raise CoercionError("invalid_date", f"'{text}' is not a valid calendar date.") from exc

    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(_iso_text(text)).date()
    except ValueError as exc:
        raise CoercionError(
            "invalid_date",
            f"'{text}' is not a valid date. Expected DD/MM/YYYY or YYYY-MM-DD.",
        ) from exc


def parse_datetime(value: str) -> datetime:
    """
    Parse ``DD/MM/YYYY[ HH:MM[:SS]]`` or ISO 8601.

    A trailing ``Z`` on ISO input means UTC. A bare date is midnight.
    """

    text = str(value).strip()
    match = _DAY_FIRST_DATETIME.match(text)
    if match:
        day, _, month, year, hour, minute, second = match.groups()
        try:
            return datetime(
                int(year),
                int(month),
                int(day),
                int(hour or 0),
                int(minute or 0),
                int(second or 0),
            )
        except ValueError as exc:
            raise CoercionError("invalid_datetime", f"'{text}' is not a valid date and time.") from exc

    try:
        return datetime.fromisoformat(_iso_text(text))
    except ValueError as exc:
        raise CoercionError(
            "invalid_datetime",
            f"'{text}' is not a valid date and time. Expected DD/MM/YYYY HH:MM or ISO 8601.",
        ) from exc


def parse_currency(value: str) -> float:
    """
    Strip currency symbols, thousands separators and whitespace, then parse.
    """

    text = str(value).strip()
    cleaned = "".join(ch for ch in text if ch not in _CURRENCY_SYMBOLS and ch != "," and not ch.isspace())
    number = _parse_decimal(cleaned)
    if number is None:
        raise CoercionError("invalid_currency", f"'{text}' is not a valid currency amount.")
    return float(number)


def parse_percentage(value: str) -> float:
    """
    Parse ``45%`` or a bare ``45``. Values are percent points within [0, 100].
    """

    text = str(value).strip()
    cleaned = text[:-1].strip() if text.endswith("%") else text
    number = _parse_decimal(cleaned.replace(",", ""))
    if number is None:
        raise CoercionError("invalid_percentage", f"'{text}' is not a valid percentage.")
    if number < 0 or number > 100:
        raise CoercionError("out_of_range", f"Percentage {text} must be between 0 and 100.")
    return float(number)


def parse_number(value: str) -> int | float:
    """
    Parse an integer or decimal number, ignoring thousands separators.
    """

    text = str(value).strip()
    cleaned = "".join(ch for ch in text if ch != "," and not ch.isspace())
    if _INTEGER.match(cleaned):
        return int(cleaned)
    number = _parse_decimal(cleaned)
    if number is None:
        raise CoercionError("invalid_number", f"'{text}' is not a valid number.")
    return float(number)


def parse_text(value: str) -> str:
    return str(value).strip()


PARSERS: dict[str, Callable[[str], Any]] = {
    "string": parse_text,
    "category": parse_text,
    "number": parse_number,
    "currency": parse_currency,
    "percentage": parse_percentage,
    "date": parse_date,
    "datetime": parse_datetime,
}


def coerce(value: str, field_type: str) -> Any:
    """
    Convert a non-blank raw value to *field_type*.
    """

    try:
        parser = PARSERS[field_type]
    except KeyError as exc:
        raise ValueError(f"Unsupported field type: {field_type}") from exc
    return parser(value)


def _parse_decimal(text: str) -> Decimal | None:
    # Decimal accepts digit-group underscores; uploads never use them.
    if not text or "_" in text:
        return None
    try:
        number = Decimal(text)
    except InvalidOperation:
        return None
    if not number.is_finite():
        return None
    if not math.isfinite(float(number)):
        return None
    return number


def _iso_text(text: str) -> str:
    if text.endswith(("Z", "z")):
        return f"{text[:-1]}+00:00"
    return text


__all__ = [
    "CoercionError",
    "PARSERS",
    "coerce",
    "is_blank",
    "parse_currency",
    "parse_date",
    "parse_datetime",
    "parse_number",
    "parse_percentage",
    "parse_text",
]
