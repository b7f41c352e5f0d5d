"""Tests for calendar and period arithmetic."""

from datetime import date, datetime, timedelta, timezone

import pytest

from finance_core.dates import (
    PeriodBounds,
    add_months,
    clamp_day,
    current_period_bounds,
    exception_period_bounds,
    next_period_start,
    period_bounds_with_exceptions,
    period_start_for_month,
    previous_working_day,
    replaced_boundary,
    shift_month,
    to_utc_date,
)


class TestPreviousWorkingDay:
    """Weekend roll-back rule."""

    def test_saturday_rolls_back_one_day(self):
        assert previous_working_day(date(2024, 1, 6)) == date(2024, 1, 5)

    def test_sunday_rolls_back_two_days(self):
        assert previous_working_day(date(2024, 1, 7)) == date(2024, 1, 5)

    def test_weekday_unchanged(self):
        assert previous_working_day(date(2024, 1, 3)) == date(2024, 1, 3)

    @pytest.mark.parametrize("offset", range(14))
    def test_idempotent(self, offset):
        """Applying the rule twice gives the same result as once."""
        day = date(2024, 1, 1) + timedelta(days=offset)
        once = previous_working_day(day)
        assert previous_working_day(once) == once
        assert once.weekday() < 5


class TestClamping:
    """Short-month clamping policy."""

    def test_clamp_to_leap_february(self):
        assert clamp_day(2024, 2, 31) == date(2024, 2, 29)

    def test_clamp_to_plain_february(self):
        assert clamp_day(2023, 2, 31) == date(2023, 2, 28)

    def test_clamp_to_thirty_day_month(self):
        assert clamp_day(2024, 4, 31) == date(2024, 4, 30)

    def test_existing_day_unchanged(self):
        assert clamp_day(2024, 3, 15) == date(2024, 3, 15)

    def test_shift_month_across_years(self):
        assert shift_month(2024, 12, 1) == (2025, 1)
        assert shift_month(2024, 1, -1) == (2023, 12)

    def test_add_months_clamps_then_recovers_anchor(self):
        """Jan 31 -> Feb 29 -> Mar 31 when the anchor day is kept."""
        february = add_months(date(2024, 1, 31), 1)
        assert february == date(2024, 2, 29)
        assert add_months(february, 1, anchor_day=31) == date(2024, 3, 31)

    def test_add_months_backwards(self):
        assert add_months(date(2024, 1, 15), -1) == date(2023, 12, 15)


class TestPeriodBounds:
    """Budget period windows."""

    def test_start_day_25_in_march(self):
        """Start day 25, reference 2024-03-10: 2024-02-25 is a Sunday, so the start rolls back to Friday the 23rd."""
        bounds = current_period_bounds(date(2024, 3, 10), 25)
        assert bounds == PeriodBounds(date(2024, 2, 23), date(2024, 3, 24))

    def test_reference_on_boundary_starts_new_period(self):
        bounds = current_period_bounds(date(2024, 3, 25), 25)
        assert bounds == PeriodBounds(date(2024, 3, 25), date(2024, 4, 24))

    def test_reference_between_adjusted_and_nominal_start(self):
        """Saturday the 24th is already inside the period that began on Friday the 23rd."""
        bounds = current_period_bounds(date(2024, 2, 24), 25)
        assert bounds.start == date(2024, 2, 23)
        assert bounds.contains(date(2024, 2, 24))

    def test_next_boundary_rolling_into_current_month(self):
        """June 1 2024 is a Saturday, so the June period starts on May 31."""
        bounds = current_period_bounds(date(2024, 5, 31), 1)
        assert bounds == PeriodBounds(date(2024, 5, 31), date(2024, 6, 30))

    def test_start_day_31_in_short_month(self):
        assert period_start_for_month(2024, 2, 31) == date(2024, 2, 29)

    def test_bounds_always_contain_reference(self):
        day = date(2023, 1, 1)
        for _ in range(800):
            for start_day in (1, 15, 25, 28, 31):
                bounds = current_period_bounds(day, start_day)
                assert bounds.contains(day)
                assert bounds.end >= bounds.start
            day += timedelta(days=1)

    def test_consecutive_periods_are_contiguous(self):
        bounds = current_period_bounds(date(2024, 3, 10), 25)
        following = current_period_bounds(bounds.end + timedelta(days=1), 25)
        assert following.start == bounds.end + timedelta(days=1)

    def test_invalid_start_day(self):
        with pytest.raises(ValueError):
            current_period_bounds(date(2024, 3, 10), 0)
        with pytest.raises(ValueError):
            current_period_bounds(date(2024, 3, 10), 32)

    def test_next_period_start(self):
        assert next_period_start(date(2024, 2, 23), 25) == date(2024, 3, 25)
        assert next_period_start(date(2024, 3, 24), 25) == date(2024, 3, 25)


class TestUtcNormalisation:
    """Datetimes are reduced to UTC calendar dates."""

    def test_aware_datetime_converted_to_utc(self):
        eastern = timezone(timedelta(hours=-5))
        assert to_utc_date(datetime(2024, 1, 1, 23, 30, tzinfo=eastern)) == date(2024, 1, 2)

    def test_naive_datetime_taken_as_utc(self):
        assert to_utc_date(datetime(2024, 1, 1, 23, 30)) == date(2024, 1, 1)

    def test_date_passthrough(self):
        assert to_utc_date(date(2024, 1, 1)) == date(2024, 1, 1)

    def test_bounds_accept_datetime(self):
        reference = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)
        assert current_period_bounds(reference, 25).start == date(2024, 2, 23)


class TestBoundaryExceptions:
    """One-off early or late period boundaries (start day 25)."""

    def test_exception_moves_nearest_boundary(self):
        # Feb 25 2024 is a Sunday, so the regular boundary is Feb 23
        assert replaced_boundary(date(2024, 2, 20), 25) == date(2024, 2, 23)
        assert replaced_boundary(date(2024, 2, 27), 25) == date(2024, 2, 23)

    def test_nearest_boundary_can_be_next_month(self):
        """Start day 1: paid on Jan 30 moves the February boundary."""
        assert replaced_boundary(date(2024, 1, 30), 1) == date(2024, 2, 1)
        assert exception_period_bounds(date(2024, 1, 30), 1) == PeriodBounds(
            date(2024, 1, 30), date(2024, 2, 29)
        )

    def test_early_exception_window(self):
        window = exception_period_bounds(date(2024, 2, 20), 25)
        assert window == PeriodBounds(date(2024, 2, 20), date(2024, 3, 24))

    def test_early_exception_shortens_previous_period(self):
        bounds = period_bounds_with_exceptions(date(2024, 2, 10), 25, [date(2024, 2, 20)])
        assert bounds == PeriodBounds(date(2024, 1, 25), date(2024, 2, 19))

    def test_inside_exception_window(self):
        bounds = period_bounds_with_exceptions(date(2024, 3, 1), 25, [date(2024, 2, 20)])
        assert bounds == PeriodBounds(date(2024, 2, 20), date(2024, 3, 24))

    def test_late_exception_stretches_previous_period(self):
        """Between the regular boundary and a late payday the old period goes on."""
        bounds = period_bounds_with_exceptions(date(2024, 2, 24), 25, [date(2024, 2, 27)])
        assert bounds == PeriodBounds(date(2024, 1, 25), date(2024, 2, 26))

        bounds = period_bounds_with_exceptions(date(2024, 2, 28), 25, [date(2024, 2, 27)])
        assert bounds == PeriodBounds(date(2024, 2, 27), date(2024, 3, 24))

    def test_unrelated_exception_ignored(self):
        reference = date(2024, 6, 10)
        bounds = period_bounds_with_exceptions(reference, 25, [date(2024, 2, 20)])
        assert bounds == current_period_bounds(reference, 25)
