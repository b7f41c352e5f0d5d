"""
Report and Result Models

Read-only results produced by the engine: validation outcomes,
due-pass reports, series health and budget status.

DESIGN DECISION: Reports carry no generation timestamps or random ids,
so running the same read-only computation twice yields equal reports.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from finance_core.models.finance import Transaction


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'inconsistent')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """Outcome of validating one entity."""

    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]


# =============================================================================
# RECURRING EXECUTION MODELS
# =============================================================================

class ExecutionOptions(BaseModel):
    """
    Options for one due pass.

    `max_days_overdue` of None means "use the configured default".
    """

    dry_run: bool = False
    force_execute: bool = Field(
        default=False,
        description="Also execute due series that did not opt into auto_execute"
    )
    max_days_overdue: Optional[int] = Field(default=None, ge=0)


class FailedExecution(BaseModel):
    """A series that failed during a due pass."""

    series_id: UUID
    series_description: str
    error: str


class ExecutionSummary(BaseModel):
    """Aggregate counters of a due pass."""

    total_processed: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    skipped_executions: int = 0
    total_amount: Decimal = Decimal("0")
    dry_run: bool = False


class ExecutionReport(BaseModel):
    """
    Result of one due pass.

    `planned` lists the series selected for execution in selection order
    (in a dry run this is the whole outcome). `skipped` lists series that
    were selected but were no longer due or executable once their lock
    was taken.
    """

    executed: list[Transaction] = Field(default_factory=list)
    failed: list[FailedExecution] = Field(default_factory=list)
    planned: list[UUID] = Field(default_factory=list)
    skipped: list[UUID] = Field(default_factory=list)
    summary: ExecutionSummary = Field(default_factory=ExecutionSummary)


class MissedExecution(BaseModel):
    """An active series that is overdue beyond the execution window."""

    series_id: UUID
    series_description: str
    next_due_date: date
    days_overdue: int = Field(ge=0)


class SeriesHealth(BaseModel):
    """Cross-check of a series' counters against its generated transactions."""

    series_id: UUID
    expected_executions: int = Field(ge=0)
    actual_executions: int = Field(ge=0)
    missed_payments: int = Field(ge=0)
    total_paid: Decimal
    expected_total: Decimal
    difference: Decimal
    success_rate: float = Field(ge=0.0, description="Percentage, 0-100")
    failed_executions: int = Field(default=0, ge=0)


# =============================================================================
# BUDGET MODELS
# =============================================================================

class BudgetHealth(str, Enum):
    """Coarse progress level of a budget."""
    ON_TRACK = "on_track"
    IN_PROGRESS = "in_progress"
    NEAR_LIMIT = "near_limit"
    OVERSPENT = "overspent"


class BudgetStatus(BaseModel):
    """Spend, remaining and percentage of one budget in one period."""

    budget_id: UUID
    current_spent: Decimal
    percentage: float
    remaining: Decimal
    period_start: date
    period_end: date
    health: BudgetHealth
    is_period_completed: bool = False

    @property
    def is_overspent(self) -> bool:
        return self.percentage >= 100

    @property
    def is_near_limit(self) -> bool:
        return 80 <= self.percentage < 100


class PeriodTotals(BaseModel):
    """Totals for all of a person's budgets within one period."""

    person_id: UUID
    period_start: date
    period_end: date
    total_budget: Decimal
    total_spent: Decimal
    total_saved: Decimal
    category_spending: dict[str, Decimal] = Field(default_factory=dict)
