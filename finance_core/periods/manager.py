"""
Budget Period Manager

Owns the lifecycle of a person's budget periods: which period is current,
closing it, opening the next one and rolling over when the calendar has
moved past the stored period.

DESIGN DECISION: Periods are stored on the Person record and every
mutation is a read-modify-write of that record under the person's entity
lock. "At most one open period per person" is enforced inside that
critical section. Finding two open periods is treated as corrupt data:
the violation is audited and the operation is refused.

Budget period exceptions (a one-off early or late boundary) live on the
same record and shape every period calculation made here.

Every call takes the person (or person id) explicitly. There is no
"currently selected person".
"""

from datetime import date, timedelta
from typing import Callable, Optional
from uuid import UUID

import structlog

from finance_core.audit import AuditLogger
from finance_core.clock import Clock, SystemClock
from finance_core.config import get_settings
from finance_core.dates import (
    PeriodBounds,
    add_months,
    exception_period_bounds,
    period_bounds_with_exceptions,
)
from finance_core.errors import InvalidStateError, InvariantViolation, NotFoundError, ValidationError
from finance_core.locks import EntityLocks
from finance_core.models.audit import AuditEventBuilder
from finance_core.models.finance import BudgetPeriod, BudgetPeriodException, Person, utc_now
from finance_core.services.storage import PersonStorageInterface


logger = structlog.get_logger(__name__)

DateFormatter = Callable[[date], str]


def _newest_first(periods: list[BudgetPeriod]) -> list[BudgetPeriod]:
    return sorted(periods, key=lambda p: p.start_date, reverse=True)


def person_bounds(reference: date, person: Person) -> PeriodBounds:
    """Period window containing `reference` for this person, exceptions applied."""
    return period_bounds_with_exceptions(reference, person.budget_start_day, person.exception_dates)


class BudgetPeriodManager:
    """
    Person-scoped budget period service.

    Usage:
        manager = BudgetPeriodManager(storage, clock=FixedClock.on(date(2024, 3, 10)))
        period = await manager.sync_current_period(person.id)
    """

    def __init__(
        self,
        person_storage: PersonStorageInterface,
        clock: Optional[Clock] = None,
        locks: Optional[EntityLocks] = None,
        audit_logger: Optional[AuditLogger] = None,
        date_formatter: Optional[DateFormatter] = None,
    ):
        self._storage = person_storage
        self._clock = clock or SystemClock()
        self._locks = locks or EntityLocks()
        self._audit = audit_logger or AuditLogger()
        self._date_formatter = date_formatter

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    async def _load_person(self, person_id: UUID) -> Person:
        person = await self._storage.get_person(person_id)
        if person is None:
            raise NotFoundError("person", person_id)
        return person

    async def _open_period(self, person: Person) -> Optional[BudgetPeriod]:
        """The single open period, or None. Raises on more than one."""
        open_periods = person.open_periods
        if len(open_periods) > 1:
            message = f"Person {person.id} has {len(open_periods)} open budget periods"
            await self._audit.log_invariant_violation("person", person.id, message)
            raise InvariantViolation(message, "person", person.id)
        return open_periods[0] if open_periods else None

    def _is_temporally_valid(self, period: BudgetPeriod, person: Person, today: date) -> bool:
        """An open period is valid from its start to the end of its window."""
        return period.start_date <= today <= self.bounds_for(period, person).end

    @staticmethod
    def _is_pending(period: BudgetPeriod, today: date) -> bool:
        """Opened ahead of time; the calendar has not reached it yet."""
        return period.start_date > today

    @staticmethod
    def _latest_closed_end(person: Person) -> Optional[date]:
        ends = [p.end_date for p in person.budget_periods if p.end_date is not None]
        return max(ends) if ends else None

    def _calendar_start(self, person: Person, today: date) -> date:
        """Start of today's calendar period, never overlapping a closed period."""
        start = person_bounds(today, person).start
        latest_end = self._latest_closed_end(person)
        if latest_end is not None and start <= latest_end:
            start = latest_end + timedelta(days=1)
        return start

    @staticmethod
    def _close(period: BudgetPeriod, end_date: date) -> None:
        if end_date < period.start_date:
            raise ValidationError(
                f"Period end ({end_date}) cannot be before its start ({period.start_date})"
            )
        period.end_date = end_date
        period.is_active = False
        period.updated_at = utc_now()

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_current_period(self, person: Person) -> BudgetPeriod:
        """
        The period that is current today.

        Returns the stored open period while it is temporally valid.
        Otherwise synthesizes a period from the calendar (not saved). When
        the open period was started ahead of time, the synthesized period
        ends the day before it.
        """
        today = self._clock.today()
        open_period = await self._open_period(person)

        if open_period is not None and self._is_temporally_valid(open_period, person, today):
            return open_period

        bounds = person_bounds(today, person)
        if open_period is not None and self._is_pending(open_period, today):
            end = min(bounds.end, open_period.start_date - timedelta(days=1))
            return BudgetPeriod(person_id=person.id, start_date=bounds.start, end_date=end)

        return BudgetPeriod(person_id=person.id, start_date=bounds.start)

    async def get_current_bounds(self, person: Person) -> PeriodBounds:
        """Date window of the current period."""
        period = await self.get_current_period(person)
        return self.bounds_for(period, person)

    @staticmethod
    def bounds_for(period: BudgetPeriod, person: Person) -> PeriodBounds:
        """Closed periods end on their end date, open ones on the calendar end."""
        if period.end_date is not None:
            return PeriodBounds(period.start_date, period.end_date)
        return PeriodBounds(period.start_date, person_bounds(period.start_date, person).end)

    async def list_periods(self, person_id: UUID) -> list[BudgetPeriod]:
        """All of a person's periods, newest first."""
        person = await self._load_person(person_id)
        return _newest_first(person.budget_periods)

    def format_period_label(
        self,
        period: BudgetPeriod,
        formatter: Optional[DateFormatter] = None,
    ) -> str:
        """
        Human-readable label, e.g. "23 Feb 2024 – 24 Mar 2024".

        Open periods read "<start> – in progress".
        """
        fmt = formatter or self._date_formatter
        if fmt is None:
            pattern = get_settings().app.period_label_date_format

            def fmt(day: date) -> str:
                return day.strftime(pattern)

        start = fmt(period.start_date)
        if period.end_date is None:
            return f"{start} – in progress"
        return f"{start} – {fmt(period.end_date)}"

    # =========================================================================
    # MUTATIONS (all under the person lock)
    # =========================================================================

    async def complete_period(self, person_id: UUID, end_date: date) -> list[BudgetPeriod]:
        """
        Close the open period on `end_date`.

        Raises:
            InvalidStateError: No period is open
            ValidationError: `end_date` is before the period start
        """
        async with self._locks.lock("person", person_id):
            person = await self._load_person(person_id)
            open_period = await self._open_period(person)
            if open_period is None:
                raise InvalidStateError("No open budget period to complete")

            self._close(open_period, end_date)
            await self._storage.update_person(person)

        await self._audit.log(
            AuditEventBuilder.period_completed(person_id, open_period.id, end_date)
        )
        return _newest_first(person.budget_periods)

    async def start_new_period(self, person_id: UUID, start_date: date) -> list[BudgetPeriod]:
        """
        Open a new period starting on `start_date`.

        A future `start_date` is allowed: the period stays pending until
        the calendar reaches it.

        Raises:
            InvalidStateError: A period is already open
            ValidationError: `start_date` does not come after the latest closed period
        """
        async with self._locks.lock("person", person_id):
            person = await self._load_person(person_id)
            if await self._open_period(person) is not None:
                raise InvalidStateError(
                    "A budget period is already open; complete it before starting a new one"
                )

            latest_end = self._latest_closed_end(person)
            if latest_end is not None and start_date <= latest_end:
                raise ValidationError(
                    f"New period must start after {latest_end}, got {start_date}"
                )

            period = BudgetPeriod(person_id=person_id, start_date=start_date)
            person.budget_periods.append(period)
            await self._storage.update_person(person)

        await self._audit.log(
            AuditEventBuilder.period_started(person_id, period.id, start_date)
        )
        return _newest_first(person.budget_periods)

    async def rollover(
        self,
        person_id: UUID,
        end_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> list[BudgetPeriod]:
        """
        Close the open period on `end_date` and open the next one the day after.

        Both changes are written together, so no caller ever sees zero or
        two open periods.
        """
        async with self._locks.lock("person", person_id):
            person = await self._load_person(person_id)
            open_period = await self._open_period(person)
            if open_period is None:
                raise InvalidStateError("No open budget period to roll over")

            self._close(open_period, end_date)
            new_period = BudgetPeriod(person_id=person_id, start_date=end_date + timedelta(days=1))
            person.budget_periods.append(new_period)
            await self._storage.update_person(person)

        await self._audit.log(
            AuditEventBuilder.period_rolled_over(
                person_id,
                open_period.id,
                new_period.id,
                new_period.start_date,
                correlation_id=correlation_id,
            )
        )
        return _newest_first(person.budget_periods)

    async def sync_current_period(
        self,
        person_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> BudgetPeriod:
        """
        Make the stored open period match the calendar.

        - Open period still valid, or pending (starts after today):
          returned unchanged.
        - Open period stale: closed at the end of its window, and the
          calendar-current period is opened.
        - No open period: the calendar-current period is opened (starting
          no earlier than the day after the latest closed period).
        """
        async with self._locks.lock("person", person_id):
            person = await self._load_person(person_id)
            today = self._clock.today()
            open_period = await self._open_period(person)

            if open_period is not None:
                if self._is_temporally_valid(open_period, person, today):
                    return open_period
                if self._is_pending(open_period, today):
                    logger.info(
                        "budget_period_pending",
                        person_id=str(person_id),
                        start=open_period.start_date.isoformat(),
                    )
                    return open_period

            closed_period_id = None
            if open_period is not None:
                self._close(open_period, self.bounds_for(open_period, person).end)
                closed_period_id = open_period.id

            start = self._calendar_start(person, today)
            new_period = BudgetPeriod(person_id=person_id, start_date=start)
            person.budget_periods.append(new_period)
            await self._storage.update_person(person)

        logger.info(
            "budget_period_synced",
            person_id=str(person_id),
            closed_period_id=str(closed_period_id) if closed_period_id else None,
            new_start=start.isoformat(),
        )
        if closed_period_id is not None:
            await self._audit.log(
                AuditEventBuilder.period_rolled_over(
                    person_id,
                    closed_period_id,
                    new_period.id,
                    start,
                    correlation_id=correlation_id,
                )
            )
        else:
            await self._audit.log(
                AuditEventBuilder.period_started(
                    person_id,
                    new_period.id,
                    start,
                    correlation_id=correlation_id,
                )
            )
        return new_period

    async def delete_period(self, person_id: UUID, period_id: UUID) -> list[BudgetPeriod]:
        """Remove one period from the person's history."""
        async with self._locks.lock("person", person_id):
            person = await self._load_person(person_id)
            remaining = [p for p in person.budget_periods if p.id != period_id]
            if len(remaining) == len(person.budget_periods):
                raise NotFoundError("budget_period", period_id)

            person.budget_periods = remaining
            await self._storage.update_person(person)

        await self._audit.log(AuditEventBuilder.period_deleted(person_id, period_id))
        return _newest_first(person.budget_periods)

    # =========================================================================
    # BUDGET PERIOD EXCEPTIONS
    # =========================================================================

    def find_active_exception(self, person: Person) -> Optional[BudgetPeriodException]:
        """
        The exception currently in force, if any.

        An exception is active from the day it is set for until the end of
        the period it opens. One set for a future date is active too, so a
        second one cannot be stacked on top of it.
        """
        today = self._clock.today()
        for exception in sorted(person.budget_exceptions, key=lambda e: e.exception_date, reverse=True):
            window = exception_period_bounds(exception.exception_date, person.budget_start_day)
            if window.contains(today) or exception.exception_date > today:
                return exception
        return None

    async def list_budget_exceptions(self, person_id: UUID) -> list[BudgetPeriodException]:
        """All of a person's exceptions, newest first."""
        person = await self._load_person(person_id)
        return sorted(person.budget_exceptions, key=lambda e: e.exception_date, reverse=True)

    async def add_budget_exception(
        self,
        person_id: UUID,
        exception_date: date,
        reason: Optional[str] = None,
    ) -> BudgetPeriodException:
        """
        Move the nearest period boundary to `exception_date`.

        Raises:
            InvalidStateError: Another exception is still active
        """
        async with self._locks.lock("person", person_id):
            person = await self._load_person(person_id)
            active = self.find_active_exception(person)
            if active is not None:
                raise InvalidStateError(
                    f"A budget period exception is already active ({active.exception_date})"
                )

            exception = BudgetPeriodException(exception_date=exception_date, reason=reason)
            person.budget_exceptions.append(exception)
            await self._storage.update_person(person)

        await self._audit.log(
            AuditEventBuilder.budget_exception_added(person_id, exception.id, exception_date, reason)
        )
        return exception

    async def remove_budget_exception(self, person_id: UUID, exception_id: UUID) -> None:
        async with self._locks.lock("person", person_id):
            person = await self._load_person(person_id)
            remaining = [e for e in person.budget_exceptions if e.id != exception_id]
            if len(remaining) == len(person.budget_exceptions):
                raise NotFoundError("budget_exception", exception_id)

            person.budget_exceptions = remaining
            await self._storage.update_person(person)

        await self._audit.log(AuditEventBuilder.budget_exceptions_removed(person_id, [exception_id]))

    async def cleanup_old_exceptions(self, person_id: UUID) -> int:
        """Drop exceptions older than the retention window. Returns how many went."""
        months = get_settings().app.budget_exception_retention_months
        cutoff = add_months(self._clock.today(), -months)

        async with self._locks.lock("person", person_id):
            person = await self._load_person(person_id)
            removed = [e.id for e in person.budget_exceptions if e.exception_date < cutoff]
            if not removed:
                return 0

            person.budget_exceptions = [
                e for e in person.budget_exceptions if e.exception_date >= cutoff
            ]
            await self._storage.update_person(person)

        await self._audit.log(
            AuditEventBuilder.budget_exceptions_removed(person_id, removed, is_user_action=False)
        )
        return len(removed)
