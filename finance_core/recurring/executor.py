"""
Recurring Series Executor

Turns due recurring series into concrete transactions and keeps each
series' execution health.

STATE MACHINE (per series):
    Active & Due --execute ok-----> Active & NotDue   (due date advanced)
    Active & Due --execute fails--> Active & Due      (failed_executions + 1,
                                                       retried next pass)
    Paused   -> skipped by every pass until resumed or `pause_until` passes
    Inactive -> terminal

DESIGN DECISION: Executing one series is a critical section. The series
is re-read under its entity lock and its due state re-checked before
anything is written, so two overlapping passes (or a pass racing a pause)
can never both fire the same cycle. Different series run concurrently
and never share state, so one failure cannot abort the others.

Failures are at-least-once with manual retry: no backoff, the series
simply stays due. After a configurable number of consecutive failures the
series is paused.
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

import structlog

from finance_core.audit import AuditLogger, create_correlation_id
from finance_core.clock import Clock, SystemClock
from finance_core.config import SchedulerSettings, get_settings
from finance_core.errors import (
    FinanceError,
    InvalidStateError,
    NotFoundError,
    RecoverableExecutionError,
    ValidationError,
)
from finance_core.locks import EntityLocks
from finance_core.models.audit import AuditEventBuilder
from finance_core.models.finance import RecurringTransactionSeries, Transaction
from finance_core.models.reports import (
    ExecutionOptions,
    ExecutionReport,
    ExecutionSummary,
    FailedExecution,
    MissedExecution,
    SeriesHealth,
)
from finance_core.recurring.schedule import (
    days_overdue,
    is_due,
    is_effectively_paused,
    is_executable,
    is_past_end,
    next_due_date,
)
from finance_core.services.storage import (
    RecurringSeriesStorageInterface,
    TransactionStorageInterface,
)
from finance_core.validation import SeriesValidator


logger = structlog.get_logger(__name__)

_Outcome = Union[Transaction, FailedExecution, UUID]


class RecurringExecutor:
    """
    Executes recurring series and reports on their health.

    Usage:
        executor = RecurringExecutor(storage, storage, clock=clock)
        report = await executor.run_due_pass(ExecutionOptions(dry_run=True))
    """

    def __init__(
        self,
        series_storage: RecurringSeriesStorageInterface,
        transaction_storage: TransactionStorageInterface,
        clock: Optional[Clock] = None,
        locks: Optional[EntityLocks] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[SchedulerSettings] = None,
        validator: Optional[SeriesValidator] = None,
    ):
        self._series = series_storage
        self._transactions = transaction_storage
        self._clock = clock or SystemClock()
        self._locks = locks or EntityLocks()
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().scheduler
        self._validator = validator or SeriesValidator()

    async def _load(self, series_id: UUID) -> RecurringTransactionSeries:
        series = await self._series.get_series(series_id)
        if series is None:
            raise NotFoundError("series", series_id)
        return series

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def create_series(self, series: RecurringTransactionSeries) -> RecurringTransactionSeries:
        """Validate and store a new series. `next_due_date` defaults to `start_date`."""
        if series.next_due_date is None:
            series.next_due_date = series.start_date
        self._validator.ensure_valid(series)

        await self._series.save_series(series)
        await self._audit.log(
            AuditEventBuilder.series_created(series.id, series.frequency.value, series.next_due_date)
        )
        return series

    async def pause(
        self,
        series_id: UUID,
        until: Optional[date] = None,
    ) -> RecurringTransactionSeries:
        """
        Pause a series, optionally until a date (inclusive).

        The due date is left alone.
        """
        async with self._locks.lock("series", series_id):
            series = await self._load(series_id)
            if not series.is_active:
                raise InvalidStateError(f"Series {series_id} is inactive")
            if until is not None and until < self._clock.today():
                raise ValidationError(f"Pause end {until} is in the past")

            series.is_paused = True
            series.pause_until = until
            await self._series.update_series(series)

        await self._audit.log(AuditEventBuilder.series_paused(series_id, until))
        return series

    async def resume(self, series_id: UUID) -> RecurringTransactionSeries:
        """
        Clear the pause.

        An overdue series is simply due again on the next pass, within the
        normal overdue window. Missed cycles are not caught up.
        """
        async with self._locks.lock("series", series_id):
            series = await self._load(series_id)
            if not series.is_active:
                raise InvalidStateError(f"Series {series_id} is inactive")

            series.is_paused = False
            series.pause_until = None
            series.consecutive_failures = 0
            await self._series.update_series(series)

        await self._audit.log(AuditEventBuilder.series_resumed(series_id))
        return series

    async def deactivate(self, series_id: UUID) -> RecurringTransactionSeries:
        """Stop a series for good. Inactive series never come back."""
        async with self._locks.lock("series", series_id):
            series = await self._load(series_id)
            series.is_active = False
            await self._series.update_series(series)

        await self._audit.log(AuditEventBuilder.series_deactivated(series_id))
        return series

    async def delete_series(self, series_id: UUID) -> int:
        """
        Delete a series. Transactions it generated are kept.

        Returns:
            Number of generated transactions left behind
        """
        async with self._locks.lock("series", series_id):
            await self._load(series_id)
            generated = await self._transactions.list_transactions(recurring_series_id=series_id)
            await self._series.delete_series(series_id)

        await self._audit.log(AuditEventBuilder.series_deleted(series_id, len(generated)))
        return len(generated)

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute(
        self,
        series_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Execute one series now, regardless of its due date.

        Raises:
            NotFoundError: Unknown series
            InvalidStateError: Series is inactive or paused
            RecoverableExecutionError: A write failed; the series stays due
        """
        async with self._locks.lock("series", series_id):
            return await self._execute_locked(series_id, correlation_id)

    async def _execute_locked(
        self,
        series_id: UUID,
        correlation_id: Optional[UUID],
    ) -> Transaction:
        series = await self._load(series_id)
        today = self._clock.today()

        if not series.is_active:
            raise InvalidStateError(f"Series {series_id} is inactive")
        if is_effectively_paused(series, today):
            raise InvalidStateError(f"Series {series_id} is paused")

        transaction = series.build_transaction(today)
        saved = False
        try:
            await self._transactions.save_transaction(transaction)
            saved = True

            following = next_due_date(series)
            series.next_due_date = following
            series.last_executed_date = today
            series.total_executions += 1
            series.consecutive_failures = 0
            if series.is_paused:
                # An expired pause_until ends the pause
                series.is_paused = False
                series.pause_until = None
            if is_past_end(series, following):
                series.is_active = False

            await self._series.update_series(series)
        except Exception as e:
            if saved:
                try:
                    await self._transactions.delete_transaction(transaction.id)
                except Exception as cleanup_error:
                    logger.error(
                        "execution_compensation_failed",
                        series_id=str(series_id),
                        transaction_id=str(transaction.id),
                        error=str(cleanup_error),
                    )
            await self._record_failure(series_id, str(e), correlation_id)
            raise RecoverableExecutionError(series_id, str(e)) from e

        await self._audit.log(
            AuditEventBuilder.series_executed(
                series_id,
                transaction.id,
                transaction.amount,
                series.next_due_date,
                correlation_id=correlation_id,
            )
        )
        await self._audit.log(
            AuditEventBuilder.transaction_recorded(
                transaction.id,
                transaction.type.value,
                transaction.amount,
                series_id=series_id,
            )
        )
        if not series.is_active:
            await self._audit.log(AuditEventBuilder.series_deactivated(series_id))
        return transaction

    async def _record_failure(
        self,
        series_id: UUID,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Bump failure counters on a fresh copy; auto-pause past the threshold."""
        auto_paused = False
        try:
            series = await self._load(series_id)
            series.failed_executions += 1
            series.consecutive_failures += 1

            threshold = self._settings.auto_pause_after_failures
            if threshold and series.consecutive_failures >= threshold and not series.is_paused:
                series.is_paused = True
                series.pause_until = None
                auto_paused = True

            await self._series.update_series(series)
        except Exception as e:
            logger.error(
                "execution_failure_not_recorded",
                series_id=str(series_id),
                error=str(e),
            )
            return

        await self._audit.log(
            AuditEventBuilder.series_execution_failed(
                series_id,
                error_message,
                series.failed_executions,
                correlation_id=correlation_id,
            )
        )
        if auto_paused:
            await self._audit.log(
                AuditEventBuilder.series_auto_paused(
                    series_id,
                    series.consecutive_failures,
                    correlation_id=correlation_id,
                )
            )

    def _selectable(
        self,
        series: RecurringTransactionSeries,
        options: ExecutionOptions,
        max_days_overdue: int,
    ) -> bool:
        today = self._clock.today()
        return (
            is_executable(series, today)
            and is_due(series, today, max_days_overdue)
            and (series.auto_execute or options.force_execute)
        )

    async def run_due_pass(
        self,
        options: Optional[ExecutionOptions] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ExecutionReport:
        """
        Execute every due series.

        Selection: active, not paused, due within the overdue window, and
        opted into auto-execution (unless `force_execute`).

        A dry run only selects and reports. It writes nothing, so two dry
        runs over the same data return equal reports.
        """
        options = options or ExecutionOptions()
        max_days_overdue = (
            options.max_days_overdue
            if options.max_days_overdue is not None
            else self._settings.max_days_overdue
        )

        candidates = await self._series.list_series(active_only=True)
        selected = sorted(
            (s for s in candidates if self._selectable(s, options, max_days_overdue)),
            key=lambda s: (s.next_due_date, str(s.id)),
        )
        planned = [s.id for s in selected]

        if options.dry_run:
            summary = ExecutionSummary(
                total_processed=len(selected),
                successful_executions=len(selected),
                total_amount=sum((s.amount for s in selected), Decimal("0")),
                dry_run=True,
            )
            logger.info("due_pass_planned", planned=len(planned))
            return ExecutionReport(planned=planned, summary=summary)

        correlation_id = correlation_id or create_correlation_id()
        semaphore = asyncio.Semaphore(self._settings.max_concurrent_executions)

        async def run_one(series: RecurringTransactionSeries) -> _Outcome:
            async with semaphore:
                async with self._locks.lock("series", series.id):
                    try:
                        fresh = await self._series.get_series(series.id)
                        if fresh is None or not self._selectable(fresh, options, max_days_overdue):
                            return series.id
                        return await self._execute_locked(series.id, correlation_id)
                    except FinanceError as e:
                        if not isinstance(e, RecoverableExecutionError):
                            logger.error(
                                "series_execution_refused",
                                series_id=str(series.id),
                                error=str(e),
                            )
                        return FailedExecution(
                            series_id=series.id,
                            series_description=series.description,
                            error=str(e),
                        )

        outcomes = await asyncio.gather(*(run_one(s) for s in selected))

        report = ExecutionReport(planned=planned)
        for outcome in outcomes:
            if isinstance(outcome, Transaction):
                report.executed.append(outcome)
            elif isinstance(outcome, FailedExecution):
                report.failed.append(outcome)
            else:
                report.skipped.append(outcome)

        report.summary = ExecutionSummary(
            total_processed=len(selected),
            successful_executions=len(report.executed),
            failed_executions=len(report.failed),
            skipped_executions=len(report.skipped),
            total_amount=sum((t.amount for t in report.executed), Decimal("0")),
        )

        await self._audit.log(
            AuditEventBuilder.due_pass_completed(
                correlation_id,
                processed=len(selected),
                succeeded=len(report.executed),
                failed=len(report.failed),
                dry_run=False,
            )
        )
        return report

    # =========================================================================
    # HEALTH REPORTS
    # =========================================================================

    async def find_missed_executions(
        self,
        as_of: Optional[date] = None,
        max_days_overdue: Optional[int] = None,
    ) -> list[MissedExecution]:
        """Active, unpaused series overdue beyond the window (most overdue first)."""
        as_of = as_of or self._clock.today()
        if max_days_overdue is None:
            max_days_overdue = self._settings.max_days_overdue

        missed = []
        for series in await self._series.list_series(active_only=True):
            if is_effectively_paused(series, as_of) or series.next_due_date is None:
                continue
            overdue = days_overdue(series, as_of)
            if overdue > max_days_overdue:
                missed.append(MissedExecution(
                    series_id=series.id,
                    series_description=series.description,
                    next_due_date=series.next_due_date,
                    days_overdue=overdue,
                ))

        return sorted(missed, key=lambda m: (-m.days_overdue, str(m.series_id)))

    async def reconcile_series_health(self, series_id: UUID) -> SeriesHealth:
        """Compare a series' execution counter with the transactions that still exist."""
        series = await self._load(series_id)
        generated = await self._transactions.list_transactions(recurring_series_id=series_id)

        expected = series.total_executions
        actual = len(generated)
        total_paid = sum((t.amount for t in generated), Decimal("0"))
        expected_total = series.amount * expected

        return SeriesHealth(
            series_id=series_id,
            expected_executions=expected,
            actual_executions=actual,
            missed_payments=max(0, expected - actual),
            total_paid=total_paid,
            expected_total=expected_total,
            difference=total_paid - expected_total,
            success_rate=(actual / expected * 100) if expected else 0.0,
            failed_executions=series.failed_executions,
        )

    async def find_series_with_missing_transactions(self) -> list[SeriesHealth]:
        """Health reports of active series whose generated transactions went missing."""
        reports = []
        for series in await self._series.list_series(active_only=True):
            health = await self.reconcile_series_health(series.id)
            if health.missed_payments > 0:
                reports.append(health)
        return reports
