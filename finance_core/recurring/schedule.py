"""
Recurring Schedule Math

Pure functions over a series and a reference date. No storage, no clock.

Monthly and yearly steps keep an anchor day: `day_of_month` when set,
otherwise the day of `start_date`. A month too short for the anchor uses
its last day, and the next month goes back to the anchor, so a series on
the 31st runs Jan 31 -> Feb 29 -> Mar 31.
"""

from datetime import date, timedelta
from typing import Optional

from finance_core.dates import add_months, clamp_day
from finance_core.models.finance import Frequency, RecurringTransactionSeries


def _anchor_day(series: RecurringTransactionSeries) -> int:
    return series.day_of_month or series.start_date.day


def next_due_date(series: RecurringTransactionSeries) -> Optional[date]:
    """
    The due date after the current one.

    Returns None for a one-off series, which completes after one run.
    """
    current = series.next_due_date or series.start_date

    if series.frequency == Frequency.ONCE:
        return None
    if series.frequency == Frequency.WEEKLY:
        return current + timedelta(days=7)
    if series.frequency == Frequency.BIWEEKLY:
        return current + timedelta(days=14)
    if series.frequency == Frequency.MONTHLY:
        return add_months(current, 1, anchor_day=_anchor_day(series))
    if series.frequency == Frequency.YEARLY:
        if series.month_of_year is not None:
            return clamp_day(current.year + 1, series.month_of_year, _anchor_day(series))
        return add_months(current, 12, anchor_day=_anchor_day(series))

    raise ValueError(f"Unsupported frequency: {series.frequency}")


def is_past_end(series: RecurringTransactionSeries, due: Optional[date]) -> bool:
    """True when `due` no longer falls inside the series' lifetime."""
    if due is None:
        return True
    return series.end_date is not None and due > series.end_date


def days_overdue(series: RecurringTransactionSeries, as_of: date) -> int:
    """Days since the due date (0 when not yet due)."""
    if series.next_due_date is None:
        return 0
    return max(0, (as_of - series.next_due_date).days)


def is_due(series: RecurringTransactionSeries, as_of: date, max_days_overdue: int) -> bool:
    """
    Due on or before `as_of`, and no more than `max_days_overdue` late.

    Series further behind are left to the missed-executions report.
    """
    if series.next_due_date is None or series.next_due_date > as_of:
        return False
    return (as_of - series.next_due_date).days <= max_days_overdue


def is_effectively_paused(series: RecurringTransactionSeries, as_of: date) -> bool:
    """Paused with no end date, or paused until a date not yet passed."""
    if not series.is_paused:
        return False
    return series.pause_until is None or as_of <= series.pause_until


def is_executable(series: RecurringTransactionSeries, as_of: date) -> bool:
    return series.is_active and not is_effectively_paused(series, as_of)
