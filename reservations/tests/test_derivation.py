"""
Tests for the derivation engine.

Tests cover:
- Day counts: inclusive and exclusive, partial days, reversed and missing input
- Hour counts: truncation, seconds, malformed and reversed input
- Per-form derivation, including the inclusive/exclusive day-count split
"""

from datetime import date, datetime

import pytest

from reservations.core.derivation import days_between, derive, hours_between
from reservations.core.schema import DateRange


# =============================================================
# Test: days_between
# =============================================================


class TestDaysBetween:

    def test_same_day_exclusive(self):
        assert days_between(date(2026, 1, 20), date(2026, 1, 20)) == 0

    def test_same_day_inclusive(self):
        assert days_between(date(2026, 1, 20), date(2026, 1, 20), inclusive=True) == 1

    def test_multi_day_span(self):
        assert days_between(date(2026, 1, 20), date(2026, 1, 25)) == 5
        assert days_between(date(2026, 1, 20), date(2026, 1, 25), inclusive=True) == 6

    def test_partial_day_rounds_up(self):
        start = datetime(2026, 1, 20, 8, 0)
        end = datetime(2026, 1, 21, 9, 0)
        assert days_between(start, end) == 2

    def test_accepts_iso_strings(self):
        assert days_between("2026-01-20", "2026-01-22") == 2

    def test_accepts_iso_datetime_strings(self):
        assert days_between("2026-01-20T08:00:00", "2026-01-22T08:00:00") == 2

    def test_crosses_month_and_leap_day(self):
        assert days_between(date(2028, 2, 28), date(2028, 3, 1)) == 2

    def test_reversed_range_is_zero(self):
        assert days_between(date(2026, 1, 25), date(2026, 1, 20)) == 0
        assert days_between(date(2026, 1, 25), date(2026, 1, 20), inclusive=True) == 0

    @pytest.mark.parametrize(
        "start,end",
        [
            (None, date(2026, 1, 20)),
            (date(2026, 1, 20), None),
            (None, None),
            ("", "2026-01-20"),
            ("not a date", "2026-01-20"),
            (42, date(2026, 1, 20)),
            (float("nan"), date(2026, 1, 20)),
            ("3", "5"),
            ("2026-01-20", "25"),
            ("09:00", "2026-01-20"),
            ("2026-01-20", "10:30"),
            ("20/01/2026", "22/01/2026"),
        ],
    )
    def test_missing_or_malformed_is_zero(self, start, end):
        assert days_between(start, end) == 0
        assert days_between(start, end, inclusive=True) == 0


# =============================================================
# Test: hours_between
# =============================================================


class TestHoursBetween:

    def test_truncates_minutes(self):
        assert hours_between("09:00", "11:30") == 2

    def test_exact_hours(self):
        assert hours_between("08:00", "17:00") == 9

    def test_less_than_an_hour(self):
        assert hours_between("10:00", "10:59") == 0

    def test_seconds_are_ignored(self):
        assert hours_between("09:00:59", "10:00:00") == 1

    def test_end_before_start_is_zero(self):
        assert hours_between("18:00", "09:00") == 0

    @pytest.mark.parametrize(
        "start,end",
        [
            (None, "10:00"),
            ("10:00", None),
            ("", ""),
            ("9am", "11am"),
            ("25:00", "26:00"),
            ("10:75", "11:00"),
            (930, 1130),
        ],
    )
    def test_malformed_is_zero(self, start, end):
        assert hours_between(start, end) == 0


# =============================================================
# Test: derive per form
# =============================================================


class TestDerive:

    def test_sport_complex_same_day_counts_one(self, sport_schema):
        values = {"dateRange": DateRange(start=date(2026, 1, 20), end=date(2026, 1, 20))}
        assert derive(sport_schema, values)["durationDays"] == 1

    def test_youth_house_same_day_counts_zero(self, youth_schema):
        values = {"dateRange": DateRange(start=date(2026, 1, 20), end=date(2026, 1, 20))}
        assert derive(youth_schema, values)["durationDays"] == 0

    def test_hours_from_schedule(self, sport_schema):
        values = {"startTime": "09:00", "endTime": "11:30"}
        assert derive(sport_schema, values)["durationHours"] == 2

    def test_empty_values_derive_zero(self, sport_schema):
        assert derive(sport_schema, {}) == {"durationDays": 0, "durationHours": 0}

    def test_partial_range_derives_zero(self, youth_schema):
        values = {"dateRange": DateRange(start=date(2026, 1, 20))}
        assert derive(youth_schema, values)["durationDays"] == 0

    def test_raw_value_in_range_slot_derives_zero(self, sport_schema):
        assert derive("sport_complex", {"dateRange": "2026-01-20"})["durationDays"] == 0

    def test_forms_without_derived_fields(self, signup_schema):
        assert derive(signup_schema, {}) == {}
