from __future__ import annotations

from datetime import date

import pytest

from budget_calendar.core.errors import RecurrenceValidationError
from budget_calendar.domain.recurrence import (
    BiWeekly,
    Daily,
    Monthly,
    Quarterly,
    RecurrenceFrequency,
    SeriesCursor,
    Weekly,
    Yearly,
    build_pattern,
    describe,
    first_occurrence_on_or_after,
    following_occurrence,
    occurrences,
    parse_day_of_week,
    pattern_columns,
)

FRIDAY = 4


def test_monthly_clamps_to_last_day_of_short_months():
    dates = occurrences(Monthly(day_of_month=31), date(2026, 1, 31), None, date(2026, 1, 1), date(2026, 4, 30))
    assert dates == [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 31), date(2026, 4, 30)]


def test_yearly_feb_29_only_lands_on_leap_years():
    dates = occurrences(
        Yearly(day_of_month=29, month_of_year=2), date(2026, 1, 1), None, date(2026, 1, 1), date(2028, 12, 31)
    )
    assert dates == [date(2026, 2, 28), date(2027, 2, 28), date(2028, 2, 29)]


def test_weekly_and_biweekly_anchor_on_first_matching_weekday():
    start = date(2026, 2, 1)  # Sunday
    window = (date(2026, 2, 1), date(2026, 2, 28))
    assert occurrences(Weekly(day_of_week=FRIDAY), start, None, *window) == [
        date(2026, 2, 6),
        date(2026, 2, 13),
        date(2026, 2, 20),
        date(2026, 2, 27),
    ]
    assert occurrences(Weekly(day_of_week=FRIDAY, interval=2), start, None, *window) == [
        date(2026, 2, 6),
        date(2026, 2, 20),
    ]
    # Tuesday start: first Friday on or after is the 13th
    assert occurrences(BiWeekly(day_of_week=FRIDAY), date(2026, 2, 10), None, date(2026, 1, 1), date(2026, 3, 31)) == [
        date(2026, 2, 13),
        date(2026, 2, 27),
        date(2026, 3, 13),
        date(2026, 3, 27),
    ]


def test_daily_interval_steps_from_series_start_not_window_start():
    dates = occurrences(Daily(interval=3), date(2026, 3, 1), None, date(2026, 3, 5), date(2026, 3, 12))
    assert dates == [date(2026, 3, 7), date(2026, 3, 10)]


def test_quarterly_counts_from_start_month():
    dates = occurrences(Quarterly(day_of_month=15), date(2026, 2, 15), None, date(2026, 1, 1), date(2026, 12, 31))
    assert dates == [date(2026, 2, 15), date(2026, 5, 15), date(2026, 8, 15), date(2026, 11, 15)]


def test_monthly_interval_skips_months_from_start():
    dates = occurrences(Monthly(day_of_month=10, interval=2), date(2026, 1, 10), None, date(2026, 4, 1), date(2026, 9, 30))
    assert dates == [date(2026, 5, 10), date(2026, 7, 10), date(2026, 9, 10)]


def test_series_bounds_clip_the_window():
    pattern = Monthly(day_of_month=1)
    assert occurrences(pattern, date(2026, 3, 1), date(2026, 4, 30), date(2026, 1, 1), date(2026, 12, 31)) == [
        date(2026, 3, 1),
        date(2026, 4, 1),
    ]
    # Window entirely before the series starts or after it ends
    assert occurrences(pattern, date(2026, 3, 1), None, date(2026, 1, 1), date(2026, 2, 28)) == []
    assert occurrences(pattern, date(2026, 3, 1), date(2026, 4, 30), date(2026, 5, 1), date(2026, 6, 30)) == []
    # Inverted window
    assert occurrences(pattern, date(2026, 1, 1), None, date(2026, 6, 1), date(2026, 5, 1)) == []


def test_occurrences_are_sorted_and_unique():
    dates = occurrences(Daily(), date(2026, 1, 1), None, date(2026, 1, 1), date(2026, 3, 31))
    assert dates == sorted(set(dates))
    assert len(dates) == 31 + 28 + 31


@pytest.mark.parametrize(
    "kwargs",
    [
        {"frequency": "WEEKLY"},
        {"frequency": "BIWEEKLY"},
        {"frequency": "MONTHLY", "day_of_month": 32},
        {"frequency": "MONTHLY", "day_of_month": 0},
        {"frequency": "YEARLY", "day_of_month": 1, "month_of_year": 13},
        {"frequency": "DAILY", "interval": 0},
        {"frequency": "WEEKLY", "day_of_week": 7},
        {"frequency": "FORTNIGHTLY"},
    ],
)
def test_build_pattern_rejects_invalid_input(kwargs):
    with pytest.raises(RecurrenceValidationError):
        build_pattern(**kwargs)


def test_build_pattern_accepts_loose_values():
    assert build_pattern("bi-weekly", day_of_week="fri") == BiWeekly(day_of_week=FRIDAY)
    assert build_pattern(RecurrenceFrequency.MONTHLY) == Monthly(day_of_month=1)
    assert build_pattern("yearly", day_of_month=4, month_of_year=7) == Yearly(day_of_month=4, month_of_year=7)
    assert build_pattern("daily", interval=None) == Daily(interval=1)


def test_parse_day_of_week():
    assert parse_day_of_week(None) is None
    assert parse_day_of_week(0) == 0
    assert parse_day_of_week("6") == 6
    assert parse_day_of_week("Friday") == FRIDAY
    assert parse_day_of_week(" wed ") == 2
    with pytest.raises(RecurrenceValidationError):
        parse_day_of_week("someday")


def test_pattern_columns_round_trip_through_build_pattern():
    for pattern in (
        Daily(interval=2),
        Weekly(day_of_week=1, interval=3),
        BiWeekly(day_of_week=FRIDAY),
        Monthly(day_of_month=31),
        Quarterly(day_of_month=5),
        Yearly(day_of_month=25, month_of_year=12),
    ):
        assert build_pattern(**pattern_columns(pattern)) == pattern


def test_describe():
    assert describe(Daily()) == "Daily"
    assert describe(Daily(interval=3)) == "Every 3 days"
    assert describe(Weekly(day_of_week=FRIDAY)) == "Weekly on Friday"
    assert describe(BiWeekly(day_of_week=0)) == "Every 2 weeks on Monday"
    assert describe(Monthly(day_of_month=15)) == "Monthly on day 15"
    assert describe(Yearly(day_of_month=25, month_of_year=12)) == "Yearly on 12/25"


def test_first_and_following_occurrence():
    pattern = Monthly(day_of_month=15)
    start = date(2026, 1, 1)
    assert first_occurrence_on_or_after(pattern, start, date(2026, 3, 15)) == date(2026, 3, 15)
    assert first_occurrence_on_or_after(pattern, start, date(2026, 3, 16)) == date(2026, 4, 15)
    assert following_occurrence(pattern, start, date(2026, 3, 15)) == date(2026, 4, 15)
    assert following_occurrence(pattern, start, date(2026, 3, 15), series_end=date(2026, 3, 31)) is None


def test_series_cursor_advance():
    pattern = Monthly(day_of_month=15)
    cursor = SeriesCursor(next_occurrence=date(2026, 3, 15))

    moved = cursor.advance(pattern, date(2026, 1, 1))
    assert moved.next_occurrence == date(2026, 4, 15)
    assert moved.last_generated_date == date(2026, 3, 15)
    assert moved.is_active is True
    # Frozen value: the original cursor is untouched
    assert cursor.next_occurrence == date(2026, 3, 15)

    ended = cursor.advance(pattern, date(2026, 1, 1), series_end=date(2026, 3, 31))
    assert ended.next_occurrence == date(2026, 4, 15)
    assert ended.is_active is False
