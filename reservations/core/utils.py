"""
Shared utility functions for the form engine.

Parsing helpers never raise: unparseable input becomes None so that the
resolver and the derivation engine stay total over their input.
"""

import re
from datetime import date, datetime, time
from typing import Any

from dateutil import parser as dateutil_parser
from pydantic import ValidationError

from reservations.core.schema import DateRange, FieldKind, FieldSpec, FileRef

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$", re.ASCII)
_DATE_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?$",
    re.ASCII,
)


def parse_date(value: Any) -> date | None:
    """Parse a date string into a date object.

    Only full ISO 8601 dates (YYYY-MM-DD) and datetime strings are read.
    Bare numbers and bare times are rejected. Date and datetime objects
    are accepted as-is.
    Returns None if the value cannot be parsed.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None

    stripped = value.strip()
    if not _DATE_PATTERN.match(stripped):
        return None

    try:
        return dateutil_parser.parse(stripped).date()
    except (ValueError, TypeError, OverflowError):
        return None


def parse_time(value: Any) -> int | None:
    """Parse an ``HH:MM`` (or ``HH:MM:SS``) string into minutes since midnight.

    Seconds are dropped. Returns None for malformed or out-of-range input.
    """
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        return None

    match = _TIME_PATTERN.match(value.strip())
    if match is None:
        return None

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def is_empty(value: Any) -> bool:
    """True for values a user has not filled in yet."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, DateRange):
        return value.start is None and value.end is None
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def coerce_value(field: FieldSpec, raw: Any) -> Any:
    """Convert raw UI input into the value type of the given field.

    Input that cannot be converted is returned unchanged; the validation
    engine reports it. This function never raises.
    """
    if raw is None:
        return field.initial_value()

    match field.kind:
        case FieldKind.TEXT | FieldKind.NUMBER_TEXT:
            if isinstance(raw, bool):
                return raw
            if isinstance(raw, (int, float)):
                return str(raw)
            return raw

        case FieldKind.ENUM:
            if isinstance(raw, str) and not raw.strip():
                return None
            return raw

        case FieldKind.BOOLEAN:
            if isinstance(raw, str) and raw.strip().lower() in {"true", "false"}:
                return raw.strip().lower() == "true"
            return raw

        case FieldKind.DATE:
            if isinstance(raw, str) and not raw.strip():
                return None
            parsed = parse_date(raw)
            return parsed if parsed is not None else raw

        case FieldKind.TIME:
            if isinstance(raw, time):
                return raw.strftime("%H:%M")
            if isinstance(raw, str):
                return raw.strip() or None
            return raw

        case FieldKind.DATE_RANGE:
            return _coerce_date_range(raw)

        case FieldKind.FILE:
            if isinstance(raw, FileRef):
                return raw
            if isinstance(raw, dict):
                try:
                    return FileRef.model_validate(raw)
                except ValidationError:
                    return raw
            return raw

    return raw


def _coerce_date_range(raw: Any) -> Any:
    """Build a DateRange from a model, a from/to mapping, or a pair."""
    if isinstance(raw, DateRange):
        return raw

    if isinstance(raw, dict):
        start = raw.get("from", raw.get("start"))
        end = raw.get("to", raw.get("end"))
    elif isinstance(raw, (list, tuple)) and len(raw) == 2:
        start, end = raw
    else:
        return raw

    date_range = DateRange(start=parse_date(start), end=parse_date(end))
    return None if is_empty(date_range) else date_range
