"""
Time Source

All "now" and "today" decisions go through a Clock so that period and
due-date logic is deterministic under test.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    """Anything that can tell the current UTC time."""

    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:
    """Wall-clock time, always UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """
    A clock frozen at a given instant.

    Usage:
        clock = FixedClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))
        clock.advance(days=7)
    """

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant.astimezone(timezone.utc)

    @classmethod
    def on(cls, day: date) -> "FixedClock":
        """Clock frozen at midnight UTC of `day`."""
        return cls(datetime(day.year, day.month, day.day, tzinfo=timezone.utc))

    def now(self) -> datetime:
        return self._instant

    def today(self) -> date:
        return self._instant.date()

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant.astimezone(timezone.utc)

    def advance(self, **delta) -> None:
        self._instant = self._instant + timedelta(**delta)
