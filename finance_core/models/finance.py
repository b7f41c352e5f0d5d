"""
Core Data Models for Finance Core

These models define the strict schemas for all data flowing through the
engine. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Support the audit trail

DESIGN DECISION: Money is always a positive Decimal magnitude. The
direction of a transaction is carried by its `type`, never by the sign.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


def utc_now() -> datetime:
    """Timezone-aware current UTC time (default factory for timestamps)."""
    return datetime.now(timezone.utc)


Money = Annotated[Decimal, Field(gt=0, decimal_places=2)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class Frequency(str, Enum):
    """How often a recurring series fires."""
    ONCE = "once"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PeriodKind(str, Enum):
    """
    Budget period kind.

    Periods are person-scoped and shared by all of a person's budgets,
    so every budget currently follows the person's monthly cycle.
    """
    MONTHLY = "monthly"


# =============================================================================
# BUDGET PERIODS AND PEOPLE
# =============================================================================

class BudgetPeriod(BaseModel):
    """
    A date range over which a person's spend is measured.

    An open period has no end date. A person has at most one open period.
    """

    id: UUID = Field(default_factory=uuid4)
    person_id: UUID
    start_date: date
    end_date: Optional[date] = Field(
        default=None,
        description="Last day of the period; None while the period is open"
    )
    is_active: bool = True
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_open(self) -> bool:
        return self.end_date is None

    @model_validator(mode='after')
    def validate_dates(self) -> 'BudgetPeriod':
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("Period end cannot be before period start")
        return self


class BudgetPeriodException(BaseModel):
    """
    One-off move of a period boundary (e.g. salary paid early).

    The exception replaces the regular boundary nearest to
    `exception_date`: the period it opens starts on `exception_date` and
    runs to the regular end of that period. The period before it ends the
    day before.
    """

    id: UUID = Field(default_factory=uuid4)
    exception_date: date
    reason: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utc_now)


class Person(BaseModel):
    """
    A member of a household/group who owns budgets.

    Budget periods are stored with the person (read-modify-write).
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    budget_start_day: int = Field(
        ...,
        ge=1,
        le=31,
        description="Day of month on which a new budget period starts"
    )
    account_ids: list[UUID] = Field(
        default_factory=list,
        description="Accounts owned by this person; empty means no account filter"
    )
    budget_periods: list[BudgetPeriod] = Field(default_factory=list)
    budget_exceptions: list[BudgetPeriodException] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def open_periods(self) -> list[BudgetPeriod]:
        return [period for period in self.budget_periods if period.is_open]

    @property
    def exception_dates(self) -> list[date]:
        return [exception.exception_date for exception in self.budget_exceptions]


class Budget(BaseModel):
    """A spending limit over a set of categories."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    person_id: UUID
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    categories: set[str] = Field(default_factory=set)
    period_kind: PeriodKind = PeriodKind.MONTHLY
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(BaseModel):
    """
    A single money movement.

    Reconciliation is stored as a back-pointer on the child side:
    `parent_transaction_id` points at the transaction whose remaining
    amount this one reduces. Both sides carry `is_reconciled=True`.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    description: str = Field(..., min_length=1, max_length=500)
    amount: Money
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=100)
    date: date
    account_id: UUID
    to_account_id: Optional[UUID] = Field(
        default=None,
        description="Destination account (transfers only)"
    )
    is_reconciled: bool = False
    parent_transaction_id: Optional[UUID] = None
    recurring_series_id: Optional[UUID] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_transfer(self) -> bool:
        return self.type == TransactionType.TRANSFER

    @model_validator(mode='after')
    def validate_accounts(self) -> 'Transaction':
        if self.to_account_id is not None and self.type != TransactionType.TRANSFER:
            raise ValueError("Only transfers can have a destination account")
        if self.to_account_id is not None and self.to_account_id == self.account_id:
            raise ValueError("Source and destination account cannot be the same")
        if self.parent_transaction_id is not None and self.parent_transaction_id == self.id:
            raise ValueError("A transaction cannot be its own parent")
        return self


# =============================================================================
# RECURRING SERIES
# =============================================================================

class RecurringTransactionSeries(BaseModel):
    """
    Template that periodically emits concrete transactions.

    Generated transactions point back via `recurring_series_id`.
    Deleting the series never deletes them.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)

    # Template fields (a Transaction minus the date)
    description: str = Field(..., min_length=1, max_length=500)
    amount: Money
    type: TransactionType
    category: str = Field(..., min_length=1, max_length=100)
    account_id: UUID
    to_account_id: Optional[UUID] = None

    # Schedule
    frequency: Frequency
    start_date: date
    end_date: Optional[date] = None
    next_due_date: Optional[date] = Field(
        default=None,
        description="Defaults to start_date"
    )
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    month_of_year: Optional[int] = Field(default=None, ge=1, le=12)
    auto_execute: bool = True

    # State
    is_active: bool = True
    is_paused: bool = False
    pause_until: Optional[date] = None
    last_executed_date: Optional[date] = None

    # Execution health
    total_executions: int = Field(default=0, ge=0)
    failed_executions: int = Field(default=0, ge=0)
    consecutive_failures: int = Field(default=0, ge=0)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_schedule(self) -> 'RecurringTransactionSeries':
        if self.next_due_date is None:
            self.next_due_date = self.start_date
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("Series end date cannot be before start date")
        if self.to_account_id is not None and self.type != TransactionType.TRANSFER:
            raise ValueError("Only transfer series can have a destination account")
        if self.to_account_id is not None and self.to_account_id == self.account_id:
            raise ValueError("Source and destination account cannot be the same")
        return self

    def build_transaction(self, on: date) -> Transaction:
        """Materialise one occurrence of this series."""
        return Transaction(
            description=self.description,
            amount=self.amount,
            type=self.type,
            category=self.category,
            date=on,
            account_id=self.account_id,
            to_account_id=self.to_account_id,
            recurring_series_id=self.id,
        )
