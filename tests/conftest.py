"""Shared fixtures for Finance Core tests."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_core.audit import AuditLogger
from finance_core.clock import FixedClock
from finance_core.config import SchedulerSettings
from finance_core.locks import EntityLocks
from finance_core.models.finance import (
    Frequency,
    Person,
    RecurringTransactionSeries,
    Transaction,
    TransactionType,
)
from finance_core.recurring import RecurringExecutor
from finance_core.services.storage import InMemoryStorage


ACCOUNT_ID = uuid4()
OTHER_ACCOUNT_ID = uuid4()


@pytest.fixture
def storage() -> InMemoryStorage:
    """Empty in-memory storage implementing every interface."""
    return InMemoryStorage()


@pytest.fixture
def clock() -> FixedClock:
    """Clock frozen at 2024-01-01 (a Monday)."""
    return FixedClock.on(date(2024, 1, 1))


@pytest.fixture
def locks() -> EntityLocks:
    return EntityLocks()


@pytest.fixture
def audit_logger(storage: InMemoryStorage) -> AuditLogger:
    """Audit logger persisting into the in-memory storage."""
    return AuditLogger(storage)


@pytest.fixture
def scheduler_settings() -> SchedulerSettings:
    return SchedulerSettings(
        max_days_overdue=7,
        auto_pause_after_failures=3,
        max_concurrent_executions=10,
    )


@pytest.fixture
def executor(storage, clock, locks, audit_logger, scheduler_settings) -> RecurringExecutor:
    return RecurringExecutor(
        storage,
        storage,
        clock=clock,
        locks=locks,
        audit_logger=audit_logger,
        settings=scheduler_settings,
    )


@pytest.fixture
def person() -> Person:
    """A person whose budget starts on the 25th, owning ACCOUNT_ID."""
    return Person(name="Alex", budget_start_day=25, account_ids=[ACCOUNT_ID])


@pytest.fixture
def make_transaction():
    """Factory for transactions with sensible defaults."""
    def _make(amount="100.00", type_=TransactionType.EXPENSE, **overrides) -> Transaction:
        fields = {
            "description": "Groceries",
            "amount": Decimal(str(amount)),
            "type": type_,
            "category": "food",
            "date": date(2024, 1, 1),
            "account_id": ACCOUNT_ID,
        }
        fields.update(overrides)
        return Transaction(**fields)
    return _make


@pytest.fixture
def make_series():
    """Factory for recurring series with sensible defaults."""
    def _make(frequency=Frequency.WEEKLY, start=date(2024, 1, 1), **overrides) -> RecurringTransactionSeries:
        fields = {
            "description": "Gym membership",
            "amount": Decimal("25.00"),
            "type": TransactionType.EXPENSE,
            "category": "health",
            "account_id": ACCOUNT_ID,
            "frequency": frequency,
            "start_date": start,
        }
        fields.update(overrides)
        return RecurringTransactionSeries(**fields)
    return _make
