"""
Derivation engine for read-only numeric fields.

Both functions are total: missing, malformed, or reversed input yields 0.
Whether a day count includes both endpoints is a property of each form's
derived field (``inclusive``), not of the function, because the forms
disagree: sports-complex bookings count the selected day itself, youth
house bookings count nights.
"""

import math
from datetime import date, datetime
from typing import Any

from reservations.core.registry import resolve_schema
from reservations.core.schema import DateRange, DerivedFunction, DerivedSpec, FormSchema
from reservations.core.utils import parse_date, parse_time

_SECONDS_PER_DAY = 24 * 60 * 60


def days_between(start: Any, end: Any, inclusive: bool = False) -> int:
    """Number of days from `start` to `end`, rounded up.

    Args:
        start: Range start (date, datetime, or date string).
        end: Range end (date, datetime, or date string).
        inclusive: Add one so that a same-day range counts as 1.

    Returns:
        A non-negative integer; 0 if either end is missing or invalid.
    """
    start_point = _as_datetime(start)
    end_point = _as_datetime(end)
    if start_point is None or end_point is None:
        return 0

    span = (end_point - start_point).total_seconds() / _SECONDS_PER_DAY
    if not math.isfinite(span):
        return 0

    days = math.ceil(span)
    if inclusive:
        days += 1
    return max(days, 0)


def hours_between(start_time: Any, end_time: Any) -> int:
    """Whole hours between two ``HH:MM`` times; leftover minutes are dropped.

    Returns 0 if either time is malformed or the end precedes the start.
    """
    start = parse_time(start_time)
    end = parse_time(end_time)
    if start is None or end is None or end < start:
        return 0
    return (end - start) // 60


def derive(form: FormSchema | str, values: dict[str, Any]) -> dict[str, int]:
    """Compute every derived field of the form from the current values."""
    schema = resolve_schema(form)
    return {spec.key: derive_one(spec, values) for spec in schema.derived}


def derive_one(spec: DerivedSpec, values: dict[str, Any]) -> int:
    match spec.function:
        case DerivedFunction.DAYS_BETWEEN:
            if len(spec.sources) == 1:
                date_range = values.get(spec.sources[0])
                if not isinstance(date_range, DateRange):
                    return 0
                return days_between(date_range.start, date_range.end, spec.inclusive)
            start_key, end_key = spec.sources
            return days_between(values.get(start_key), values.get(end_key), spec.inclusive)

        case DerivedFunction.HOURS_BETWEEN:
            start_key, end_key = spec.sources
            return hours_between(values.get(start_key), values.get(end_key))

    return 0


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    parsed = parse_date(value)
    if parsed is None:
        return None
    return datetime(parsed.year, parsed.month, parsed.day)
