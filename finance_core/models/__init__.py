"""
Data Models Package

This package contains all Pydantic models used by Finance Core.
All data flowing through the engine must conform to these schemas.
"""

from finance_core.models.finance import (
    Budget,
    BudgetPeriod,
    BudgetPeriodException,
    Frequency,
    PeriodKind,
    Person,
    RecurringTransactionSeries,
    Transaction,
    TransactionType,
    utc_now,
)
from finance_core.models.reports import (
    BudgetHealth,
    BudgetStatus,
    ExecutionOptions,
    ExecutionReport,
    ExecutionSummary,
    FailedExecution,
    MissedExecution,
    PeriodTotals,
    SeriesHealth,
    ValidationIssue,
    ValidationResult,
)
from finance_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Domain models
    "Budget",
    "BudgetPeriod",
    "BudgetPeriodException",
    "Frequency",
    "PeriodKind",
    "Person",
    "RecurringTransactionSeries",
    "Transaction",
    "TransactionType",
    "utc_now",
    # Reports
    "BudgetHealth",
    "BudgetStatus",
    "ExecutionOptions",
    "ExecutionReport",
    "ExecutionSummary",
    "FailedExecution",
    "MissedExecution",
    "PeriodTotals",
    "SeriesHealth",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
