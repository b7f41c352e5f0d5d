"""Tests for recurring schedule math."""

from datetime import date

from finance_core.models.finance import Frequency
from finance_core.recurring import (
    days_overdue,
    is_due,
    is_effectively_paused,
    is_executable,
    is_past_end,
    next_due_date,
)


class TestNextDueDate:
    """Stepping a series forward one cycle."""

    def test_weekly(self, make_series):
        assert next_due_date(make_series(Frequency.WEEKLY)) == date(2024, 1, 8)

    def test_biweekly(self, make_series):
        assert next_due_date(make_series(Frequency.BIWEEKLY)) == date(2024, 1, 15)

    def test_once_has_no_next(self, make_series):
        assert next_due_date(make_series(Frequency.ONCE)) is None

    def test_monthly_keeps_anchor_through_february(self, make_series):
        """Jan 31 -> Feb 29 -> Mar 31 in a leap year."""
        series = make_series(Frequency.MONTHLY, start=date(2024, 1, 31))

        series.next_due_date = next_due_date(series)
        assert series.next_due_date == date(2024, 2, 29)

        series.next_due_date = next_due_date(series)
        assert series.next_due_date == date(2024, 3, 31)

    def test_monthly_day_of_month_overrides_start(self, make_series):
        series = make_series(
            Frequency.MONTHLY,
            start=date(2024, 1, 10),
            day_of_month=30,
            next_due_date=date(2024, 1, 30),
        )
        assert next_due_date(series) == date(2024, 2, 29)

    def test_monthly_across_year_end(self, make_series):
        series = make_series(Frequency.MONTHLY, start=date(2023, 12, 15))
        assert next_due_date(series) == date(2024, 1, 15)

    def test_yearly(self, make_series):
        series = make_series(Frequency.YEARLY, start=date(2024, 2, 29))
        assert next_due_date(series) == date(2025, 2, 28)

    def test_yearly_with_month_of_year(self, make_series):
        series = make_series(
            Frequency.YEARLY,
            start=date(2024, 1, 1),
            month_of_year=6,
            day_of_month=15,
        )
        assert next_due_date(series) == date(2025, 6, 15)


class TestDueState:
    """Due, overdue and end-of-life checks."""

    def test_is_due_window(self, make_series):
        series = make_series(start=date(2024, 1, 1))

        assert is_due(series, date(2023, 12, 31), max_days_overdue=7) is False
        assert is_due(series, date(2024, 1, 1), max_days_overdue=7) is True
        assert is_due(series, date(2024, 1, 8), max_days_overdue=7) is True
        assert is_due(series, date(2024, 1, 9), max_days_overdue=7) is False

    def test_days_overdue(self, make_series):
        series = make_series(start=date(2024, 1, 1))
        assert days_overdue(series, date(2024, 1, 11)) == 10
        assert days_overdue(series, date(2023, 12, 25)) == 0

    def test_past_end(self, make_series):
        series = make_series(start=date(2024, 1, 1), end_date=date(2024, 1, 10))

        assert is_past_end(series, date(2024, 1, 8)) is False
        assert is_past_end(series, date(2024, 1, 15)) is True
        assert is_past_end(series, None) is True

    def test_open_ended_series_never_ends(self, make_series):
        assert is_past_end(make_series(), date(2099, 1, 1)) is False


class TestPauseState:
    """Pauses with and without an end date."""

    def test_indefinite_pause(self, make_series):
        series = make_series(is_paused=True)
        assert is_effectively_paused(series, date(2030, 1, 1)) is True
        assert is_executable(series, date(2030, 1, 1)) is False

    def test_pause_until_is_inclusive(self, make_series):
        series = make_series(is_paused=True, pause_until=date(2024, 1, 10))

        assert is_effectively_paused(series, date(2024, 1, 10)) is True
        assert is_effectively_paused(series, date(2024, 1, 11)) is False
        assert is_executable(series, date(2024, 1, 11)) is True

    def test_inactive_not_executable(self, make_series):
        series = make_series(is_active=False)
        assert is_executable(series, date(2024, 1, 1)) is False
