"""
Calendar / Period Arithmetic

Pure date math used by budget periods and recurring schedules.

BUSINESS-DAY RULE: a period boundary that falls on a weekend is moved
back to the preceding Friday (Saturday -1 day, Sunday -2 days).

CLAMPING POLICY: a target day-of-month that does not exist in a month
(e.g. 31 in February) is clamped to that month's last day. The anchor
day is kept, so the following month goes back to the requested day
(Jan 31 -> Feb 29 -> Mar 31).

Everything works on date-only values. Datetimes are normalised to their
UTC calendar date first, so results never depend on the host timezone.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, NamedTuple, Optional, Union

SATURDAY = 5
SUNDAY = 6


class PeriodBounds(NamedTuple):
    """Inclusive date window of one budget period."""
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def to_utc_date(value: Union[date, datetime]) -> date:
    """
    Normalise a date or datetime to a UTC calendar date.

    Naive datetimes are taken to already be UTC.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


def previous_working_day(day: date) -> date:
    """Roll a weekend date back to Friday. Weekdays are returned unchanged."""
    weekday = day.weekday()
    if weekday == SATURDAY:
        return day - timedelta(days=1)
    if weekday == SUNDAY:
        return day - timedelta(days=2)
    return day


def clamp_day(year: int, month: int, day: int) -> date:
    """Build a date, clamping `day` to the last day of the month."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


def shift_month(year: int, month: int, months: int) -> tuple[int, int]:
    """Move (year, month) by a number of months, either direction."""
    index = year * 12 + (month - 1) + months
    return index // 12, index % 12 + 1


def add_months(day: date, months: int, anchor_day: Optional[int] = None) -> date:
    """
    Calendar month step with clamping.

    Args:
        day: Starting date
        months: Number of months to move (may be negative)
        anchor_day: Day-of-month to land on; defaults to `day.day`
    """
    year, month = shift_month(day.year, day.month, months)
    return clamp_day(year, month, anchor_day or day.day)


def period_start_for_month(year: int, month: int, start_day: int) -> date:
    """The adjusted period boundary inside the given month."""
    return previous_working_day(clamp_day(year, month, start_day))


def current_period_bounds(
    reference: Union[date, datetime],
    start_day: int,
) -> PeriodBounds:
    """
    Compute the budget period that contains `reference`.

    The period starts on the latest adjusted boundary on or before
    `reference` and ends the day before the boundary that follows.
    Usually that is this month's boundary (or last month's, before the
    start day), but the comparison is always against the adjusted
    boundary: a reference date between a weekend-adjusted start and the
    nominal start day already belongs to the new period, and next
    month's boundary can roll back into this month (June 1 2024 is a
    Saturday, so with start day 1 the June period begins on May 31).
    """
    if not 1 <= start_day <= 31:
        raise ValueError(f"start_day must be between 1 and 31, got {start_day}")

    reference = to_utc_date(reference)
    boundaries = []
    for offset in (-1, 0, 1, 2):
        year, month = shift_month(reference.year, reference.month, offset)
        boundaries.append(period_start_for_month(year, month, start_day))

    # Last month's boundary is always before the reference
    index = max(i for i in range(3) if boundaries[i] <= reference)
    return PeriodBounds(
        start=boundaries[index],
        end=boundaries[index + 1] - timedelta(days=1),
    )


def next_period_start(after: Union[date, datetime], start_day: int) -> date:
    """First adjusted boundary strictly after `after`."""
    after = to_utc_date(after)
    bounds = current_period_bounds(after, start_day)
    return bounds.end + timedelta(days=1)


# =============================================================================
# BUDGET PERIOD EXCEPTIONS
# =============================================================================

def replaced_boundary(exception_date: date, start_day: int) -> date:
    """The regular boundary an exception moves: the one nearest to it (earlier on a tie)."""
    candidates = []
    for offset in (-1, 0, 1):
        year, month = shift_month(exception_date.year, exception_date.month, offset)
        candidates.append(period_start_for_month(year, month, start_day))
    return min(candidates, key=lambda boundary: (abs((boundary - exception_date).days), boundary))


def exception_period_bounds(exception_date: date, start_day: int) -> PeriodBounds:
    """Window opened by an exception: from its date to the regular end of that period."""
    boundary = replaced_boundary(exception_date, start_day)
    return PeriodBounds(
        start=exception_date,
        end=next_period_start(boundary, start_day) - timedelta(days=1),
    )


def period_bounds_with_exceptions(
    reference: Union[date, datetime],
    start_day: int,
    exception_dates: Iterable[date] = (),
) -> PeriodBounds:
    """
    Like `current_period_bounds`, with boundary exceptions applied.

    The most recent exception whose window contains `reference` wins.
    Outside every window, a regular period next to an exception is cut
    short (salary came early) or stretched (salary came late) so that it
    meets the exception date.
    """
    reference = to_utc_date(reference)
    exception_dates = sorted(set(exception_dates), reverse=True)

    for exception_date in exception_dates:
        window = exception_period_bounds(exception_date, start_day)
        if window.contains(reference):
            return window

    bounds = current_period_bounds(reference, start_day)
    for exception_date in exception_dates:
        boundary = replaced_boundary(exception_date, start_day)
        if boundary == bounds.start:
            # Late exception: the regular start has not happened yet
            previous = current_period_bounds(boundary - timedelta(days=1), start_day)
            return PeriodBounds(previous.start, exception_date - timedelta(days=1))
        if boundary == bounds.end + timedelta(days=1):
            return PeriodBounds(bounds.start, exception_date - timedelta(days=1))
    return bounds
