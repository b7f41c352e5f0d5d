"""
Main Orchestrator for Finance Core

This module wires the components together and defines the end-to-end
flows a host application runs:
1. Scheduling (sync budget periods → run due pass → audit summary)
2. Budget reporting (load → current period → reconciliation-aware totals)

DESIGN DECISION: The orchestrator is the only place that knows which
storage backend is in use. Every service below it talks to the abstract
storage interfaces and shares one clock, one lock registry and one audit
logger, so a period rollover and a due pass started from here carry the
same correlation id in the audit trail.
"""

from typing import Optional
from uuid import UUID

import structlog

from finance_core.audit import AuditLogger, configure_logging, create_correlation_id
from finance_core.budgets import BudgetAggregator
from finance_core.clock import Clock, SystemClock
from finance_core.config import get_settings
from finance_core.errors import FinanceError, NotFoundError
from finance_core.ledger import TransactionLedger
from finance_core.locks import EntityLocks
from finance_core.models.finance import BudgetPeriod, Person
from finance_core.models.reports import (
    BudgetStatus,
    ExecutionOptions,
    ExecutionReport,
    PeriodTotals,
)
from finance_core.periods import BudgetPeriodManager
from finance_core.reconciliation import ReconciliationEngine
from finance_core.recurring import RecurringExecutor
from finance_core.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsPersonStorage,
    GoogleSheetsRecurringSeriesStorage,
    GoogleSheetsTransactionStorage,
    InMemoryStorage,
    PersonStorageInterface,
    RecurringSeriesStorageInterface,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)


class FinanceCore:
    """
    Container for the engine services over one set of storages.

    All services share the same clock, locks and audit logger.
    """

    def __init__(
        self,
        person_storage: PersonStorageInterface,
        budget_storage: BudgetStorageInterface,
        transaction_storage: TransactionStorageInterface,
        series_storage: RecurringSeriesStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
    ):
        self.people = person_storage
        self.budgets = budget_storage
        self.transactions = transaction_storage
        self.series = series_storage

        self.clock = clock or SystemClock()
        self.locks = EntityLocks()
        self.audit_logger = audit_logger or AuditLogger()

        self.periods = BudgetPeriodManager(
            person_storage,
            clock=self.clock,
            locks=self.locks,
            audit_logger=self.audit_logger,
        )
        self.reconciliation = ReconciliationEngine(
            transaction_storage,
            locks=self.locks,
            audit_logger=self.audit_logger,
        )
        self.recurring = RecurringExecutor(
            series_storage,
            transaction_storage,
            clock=self.clock,
            locks=self.locks,
            audit_logger=self.audit_logger,
        )
        self.ledger = TransactionLedger(
            transaction_storage,
            reconciliation=self.reconciliation,
            locks=self.locks,
            audit_logger=self.audit_logger,
            clock=self.clock,
        )
        self.aggregator = BudgetAggregator(clock=self.clock)

    @classmethod
    def in_memory(cls, clock: Optional[Clock] = None) -> "FinanceCore":
        """Everything backed by one InMemoryStorage (audit included)."""
        storage = InMemoryStorage()
        return cls(
            storage,
            storage,
            storage,
            storage,
            audit_logger=AuditLogger(storage),
            clock=clock,
        )

    async def load_person(self, person_id: UUID) -> Person:
        person = await self.people.get_person(person_id)
        if person is None:
            raise NotFoundError("person", person_id)
        return person


class SchedulingFlow:
    """
    Orchestrates one scheduling sweep.

    Flow:
    1. Sync → drop expired budget exceptions, roll every person's stale
       open period forward
    2. Execute → run the recurring due pass
    3. Audit → all events share one correlation id

    A failure for one person never stops the sweep for the others. A dry
    run skips step 1 entirely, so it writes nothing.
    """

    def __init__(self, core: FinanceCore):
        self._core = core

    async def sync_periods(self, correlation_id: Optional[UUID] = None) -> list[BudgetPeriod]:
        """Bring every person's open period up to date. Returns the current periods."""
        current = []
        for person in await self._core.people.list_people():
            try:
                await self._core.periods.cleanup_old_exceptions(person.id)
                current.append(
                    await self._core.periods.sync_current_period(person.id, correlation_id)
                )
            except FinanceError as e:
                await self._core.audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    details={"person_id": str(person.id)},
                    correlation_id=correlation_id,
                )
        return current

    async def run(
        self,
        options: Optional[ExecutionOptions] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[list[BudgetPeriod], ExecutionReport]:
        """
        Run the sweep.

        Returns:
            (current periods, due pass report)
        """
        options = options or ExecutionOptions()
        correlation_id = correlation_id or create_correlation_id()

        periods = [] if options.dry_run else await self.sync_periods(correlation_id)
        report = await self._core.recurring.run_due_pass(options, correlation_id=correlation_id)

        logger.info(
            "scheduling_sweep_completed",
            correlation_id=str(correlation_id),
            periods_synced=len(periods),
            executed=report.summary.successful_executions,
            failed=report.summary.failed_executions,
            dry_run=options.dry_run,
        )
        return periods, report


class BudgetReportFlow:
    """
    Orchestrates read-only budget reporting for one person.

    Flow:
    1. Load person, budgets and the person's transactions
    2. Resolve the period (current one unless given)
    3. Aggregate with reconciliation-aware effective amounts
    """

    def __init__(self, core: FinanceCore):
        self._core = core

    async def _load(self, person_id: UUID):
        person = await self._core.load_person(person_id)
        budgets = await self._core.budgets.list_budgets(person_id=person_id)
        transactions = await self._core.transactions.list_transactions(
            account_ids=person.account_ids or None
        )
        return person, budgets, transactions

    async def budget_statuses(
        self,
        person_id: UUID,
        period: Optional[BudgetPeriod] = None,
    ) -> list[BudgetStatus]:
        person, budgets, transactions = await self._load(person_id)
        period = period or await self._core.periods.get_current_period(person)
        return [
            self._core.aggregator.calculate_budget_status(budget, person, transactions, period)
            for budget in budgets
        ]

    async def period_totals(
        self,
        person_id: UUID,
        period_id: Optional[UUID] = None,
    ) -> PeriodTotals:
        person, budgets, transactions = await self._load(person_id)
        if period_id is None:
            period = await self._core.periods.get_current_period(person)
        else:
            period = next((p for p in person.budget_periods if p.id == period_id), None)
            if period is None:
                raise NotFoundError("budget_period", period_id)
        return self._core.aggregator.summarize_period(person, period, budgets, transactions)


def create_app_components(
    use_storage: bool = True,
    clock: Optional[Clock] = None,
) -> tuple[SchedulingFlow, BudgetReportFlow, FinanceCore, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False (or leave Sheets unconfigured) to run
                    on in-memory storage.
        clock: Time source shared by every service

    Returns:
        (scheduling_flow, report_flow, core, sheets_client)
    """
    configure_logging(get_settings().app.log_level)
    sheets_client = None
    core = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            audit_storage: AuditStorageInterface = GoogleSheetsAuditStorage(sheets_client)
            core = FinanceCore(
                GoogleSheetsPersonStorage(sheets_client),
                GoogleSheetsBudgetStorage(sheets_client),
                GoogleSheetsTransactionStorage(sheets_client),
                GoogleSheetsRecurringSeriesStorage(sheets_client),
                audit_logger=AuditLogger(audit_storage),
                clock=clock,
            )
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            core = None

    if core is None:
        core = FinanceCore.in_memory(clock=clock)

    return SchedulingFlow(core), BudgetReportFlow(core), core, sheets_client
