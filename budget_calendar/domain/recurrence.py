"""Recurrence patterns and the pure occurrence generator.

A pattern is one of six frozen dataclasses. ``occurrences`` turns a pattern
plus the series bounds into the sorted calendar dates inside a window. Nothing
here reads the clock or touches storage.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, replace
from datetime import date, timedelta
from enum import Enum
from typing import Iterator, Optional, Union

from ..core.errors import RecurrenceValidationError


class RecurrenceFrequency(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BIWEEKLY = "BIWEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    YEARLY = "YEARLY"


WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def _check_interval(interval: int) -> None:
    if interval < 1:
        raise RecurrenceValidationError("Interval must be at least 1.")


def _check_day_of_month(day_of_month: int) -> None:
    if not 1 <= day_of_month <= 31:
        raise RecurrenceValidationError("Day of month must be between 1 and 31.")


def _check_month_of_year(month_of_year: int) -> None:
    if not 1 <= month_of_year <= 12:
        raise RecurrenceValidationError("Month of year must be between 1 and 12.")


def _check_day_of_week(day_of_week: int) -> None:
    if not 0 <= day_of_week <= 6:
        raise RecurrenceValidationError("Day of week must be between 0 (Monday) and 6 (Sunday).")


@dataclass(frozen=True)
class Daily:
    interval: int = 1

    def __post_init__(self) -> None:
        _check_interval(self.interval)


@dataclass(frozen=True)
class Weekly:
    day_of_week: int
    interval: int = 1

    def __post_init__(self) -> None:
        _check_interval(self.interval)
        _check_day_of_week(self.day_of_week)


@dataclass(frozen=True)
class BiWeekly:
    day_of_week: int

    def __post_init__(self) -> None:
        _check_day_of_week(self.day_of_week)


@dataclass(frozen=True)
class Monthly:
    day_of_month: int
    interval: int = 1

    def __post_init__(self) -> None:
        _check_interval(self.interval)
        _check_day_of_month(self.day_of_month)


@dataclass(frozen=True)
class Quarterly:
    day_of_month: int

    def __post_init__(self) -> None:
        _check_day_of_month(self.day_of_month)


@dataclass(frozen=True)
class Yearly:
    day_of_month: int
    month_of_year: int

    def __post_init__(self) -> None:
        _check_day_of_month(self.day_of_month)
        _check_month_of_year(self.month_of_year)


RecurrencePattern = Union[Daily, Weekly, BiWeekly, Monthly, Quarterly, Yearly]


# ---------------------------------------------------------------------------
# Parsing / persistence helpers
# ---------------------------------------------------------------------------

def parse_frequency(value: "RecurrenceFrequency | str") -> RecurrenceFrequency:
    if isinstance(value, RecurrenceFrequency):
        return value
    key = str(value or "").strip().upper().replace("-", "").replace("_", "")
    for freq in RecurrenceFrequency:
        if freq.value == key:
            return freq
    raise RecurrenceValidationError(f"Invalid frequency: {value!r}")


def parse_day_of_week(value: "int | str | None") -> int | None:
    """Accept 0..6 (Monday=0) or an English weekday name / 3-letter prefix."""
    if value is None:
        return None
    if isinstance(value, int):
        _check_day_of_week(value)
        return value
    text = value.strip().lower()
    if text.isdigit():
        return parse_day_of_week(int(text))
    for idx, name in enumerate(WEEKDAY_NAMES):
        if name.lower() == text or name.lower()[:3] == text:
            return idx
    raise RecurrenceValidationError(f"Invalid day of week: {value!r}")


def build_pattern(
    frequency: "RecurrenceFrequency | str",
    interval: int | None = 1,
    day_of_month: int | None = None,
    day_of_week: "int | str | None" = None,
    month_of_year: int | None = None,
) -> RecurrencePattern:
    """Build a validated pattern from loose column/request values.

    Weekly and bi-weekly patterns require ``day_of_week``. Month based
    patterns default ``day_of_month`` (and ``month_of_year``) to 1.
    """
    freq = parse_frequency(frequency)
    step = 1 if interval is None else interval
    dow = parse_day_of_week(day_of_week)
    dom = day_of_month if day_of_month is not None else 1
    moy = month_of_year if month_of_year is not None else 1

    if freq is RecurrenceFrequency.DAILY:
        return Daily(interval=step)
    if freq in (RecurrenceFrequency.WEEKLY, RecurrenceFrequency.BIWEEKLY):
        if dow is None:
            raise RecurrenceValidationError(f"Day of week is required for {freq.value.lower()} recurrence.")
        if freq is RecurrenceFrequency.BIWEEKLY:
            return BiWeekly(day_of_week=dow)
        return Weekly(day_of_week=dow, interval=step)
    if freq is RecurrenceFrequency.MONTHLY:
        return Monthly(day_of_month=dom, interval=step)
    if freq is RecurrenceFrequency.QUARTERLY:
        return Quarterly(day_of_month=dom)
    return Yearly(day_of_month=dom, month_of_year=moy)


def pattern_columns(pattern: RecurrencePattern) -> dict:
    """Flatten a pattern into the column values stored on a series row."""
    match pattern:
        case Daily(interval=n):
            return {"frequency": RecurrenceFrequency.DAILY, "interval": n,
                    "day_of_week": None, "day_of_month": None, "month_of_year": None}
        case Weekly(day_of_week=dow, interval=n):
            return {"frequency": RecurrenceFrequency.WEEKLY, "interval": n,
                    "day_of_week": dow, "day_of_month": None, "month_of_year": None}
        case BiWeekly(day_of_week=dow):
            return {"frequency": RecurrenceFrequency.BIWEEKLY, "interval": 2,
                    "day_of_week": dow, "day_of_month": None, "month_of_year": None}
        case Monthly(day_of_month=dom, interval=n):
            return {"frequency": RecurrenceFrequency.MONTHLY, "interval": n,
                    "day_of_week": None, "day_of_month": dom, "month_of_year": None}
        case Quarterly(day_of_month=dom):
            return {"frequency": RecurrenceFrequency.QUARTERLY, "interval": 3,
                    "day_of_week": None, "day_of_month": dom, "month_of_year": None}
        case Yearly(day_of_month=dom, month_of_year=moy):
            return {"frequency": RecurrenceFrequency.YEARLY, "interval": 1,
                    "day_of_week": None, "day_of_month": dom, "month_of_year": moy}
    raise TypeError(f"Unsupported recurrence pattern: {pattern!r}")


def describe(pattern: RecurrencePattern) -> str:
    match pattern:
        case Daily(interval=1):
            return "Daily"
        case Daily(interval=n):
            return f"Every {n} days"
        case Weekly(day_of_week=dow, interval=1):
            return f"Weekly on {WEEKDAY_NAMES[dow]}"
        case Weekly(day_of_week=dow, interval=n):
            return f"Every {n} weeks on {WEEKDAY_NAMES[dow]}"
        case BiWeekly(day_of_week=dow):
            return f"Every 2 weeks on {WEEKDAY_NAMES[dow]}"
        case Monthly(day_of_month=dom, interval=1):
            return f"Monthly on day {dom}"
        case Monthly(day_of_month=dom, interval=n):
            return f"Every {n} months on day {dom}"
        case Quarterly(day_of_month=dom):
            return f"Quarterly on day {dom}"
        case Yearly(day_of_month=dom, month_of_year=moy):
            return f"Yearly on {moy}/{dom}"
    raise TypeError(f"Unsupported recurrence pattern: {pattern!r}")


# ---------------------------------------------------------------------------
# Occurrence generation
# ---------------------------------------------------------------------------

def _clamped(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def _first_weekday_on_or_after(start: date, weekday: int) -> date:
    return start + timedelta(days=(weekday - start.weekday()) % 7)


def _stepped_days(anchor: date, step_days: int, lo: date, hi: date) -> Iterator[date]:
    current = anchor
    if current < lo:
        k = -(-(lo - anchor).days // step_days)
        current = anchor + timedelta(days=k * step_days)
    step = timedelta(days=step_days)
    while current <= hi:
        yield current
        current += step


def _stepped_months(series_start: date, step_months: int, day: int, lo: date, hi: date) -> Iterator[date]:
    # Months are counted from the series start month, not calendar quarters.
    base = series_start.year * 12 + series_start.month - 1
    target = lo.year * 12 + lo.month - 1
    k = max(0, -(-(target - base) // step_months))
    while True:
        year, month0 = divmod(base + k * step_months, 12)
        candidate = _clamped(year, month0 + 1, day)
        if candidate > hi:
            return
        if candidate >= lo:
            yield candidate
        k += 1


def _yearly(month_of_year: int, day: int, lo: date, hi: date) -> Iterator[date]:
    for year in range(lo.year, hi.year + 1):
        candidate = _clamped(year, month_of_year, day)
        if lo <= candidate <= hi:
            yield candidate


def occurrences(
    pattern: RecurrencePattern,
    series_start: date,
    series_end: Optional[date],
    from_date: date,
    to_date: date,
) -> list[date]:
    """Sorted dates the pattern fires on within
    ``[max(series_start, from_date), min(series_end, to_date)]``.

    An empty window yields an empty list. Series status (active/paused) is the
    caller's concern.
    """
    lo = max(series_start, from_date)
    hi = to_date if series_end is None else min(series_end, to_date)
    if lo > hi:
        return []

    match pattern:
        case Daily(interval=n):
            return list(_stepped_days(series_start, n, lo, hi))
        case Weekly(day_of_week=dow, interval=n):
            return list(_stepped_days(_first_weekday_on_or_after(series_start, dow), 7 * n, lo, hi))
        case BiWeekly(day_of_week=dow):
            return list(_stepped_days(_first_weekday_on_or_after(series_start, dow), 14, lo, hi))
        case Monthly(day_of_month=dom, interval=n):
            return list(_stepped_months(series_start, n, dom, lo, hi))
        case Quarterly(day_of_month=dom):
            return list(_stepped_months(series_start, 3, dom, lo, hi))
        case Yearly(day_of_month=dom, month_of_year=moy):
            return list(_yearly(moy, dom, lo, hi))
    raise TypeError(f"Unsupported recurrence pattern: {pattern!r}")


def first_occurrence_on_or_after(
    pattern: RecurrencePattern,
    series_start: date,
    day: date,
    series_end: Optional[date] = None,
) -> date | None:
    # Every pattern fires at least once in any 366-day span after its anchor.
    hits = occurrences(pattern, series_start, series_end, day, day + timedelta(days=366 * max(1, _period_years(pattern))))
    return hits[0] if hits else None


def following_occurrence(
    pattern: RecurrencePattern,
    series_start: date,
    current: date,
    series_end: Optional[date] = None,
) -> date | None:
    """The first occurrence strictly after ``current`` (None past the end date)."""
    return first_occurrence_on_or_after(pattern, series_start, current + timedelta(days=1), series_end)


def _period_years(pattern: RecurrencePattern) -> int:
    match pattern:
        case Daily(interval=n):
            return n // 366 + 1
        case Weekly(interval=n):
            return (7 * n) // 366 + 1
        case Monthly(interval=n):
            return n // 12 + 1
    return 1


@dataclass(frozen=True)
class SeriesCursor:
    """The skip-next cursor of a series, advanced by returning a new value."""

    next_occurrence: date
    last_generated_date: Optional[date] = None
    is_active: bool = True

    def advance(self, pattern: RecurrencePattern, series_start: date, series_end: Optional[date] = None) -> "SeriesCursor":
        nxt = following_occurrence(pattern, series_start, self.next_occurrence) or self.next_occurrence
        # Past the end date the cursor still moves but the series stops.
        active = self.is_active and (series_end is None or nxt <= series_end)
        return replace(self, next_occurrence=nxt, last_generated_date=self.next_occurrence, is_active=active)
