"""
Two-Stage Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Positive amounts
- Account consistency (transfers need a distinct destination)

STAGE 2 - SEMANTIC VALIDATION:
- Future date detection
- Schedule consistency (end before start, anchors that will be clamped)

Models reject most malformed input at construction time, but instances
can still be mutated after the fact, so services validate again before
every write.

IMPORTANT: Validation NEVER silently fixes issues.
Errors block the write, warnings are reported back to the caller.
"""

from datetime import timedelta
from typing import Optional

from finance_core.clock import Clock, SystemClock
from finance_core.config import get_settings
from finance_core.errors import ValidationError
from finance_core.models.finance import (
    Frequency,
    RecurringTransactionSeries,
    Transaction,
    TransactionType,
)
from finance_core.models.reports import ValidationIssue, ValidationResult


def _is_valid(issues: list[ValidationIssue]) -> bool:
    return not any(issue.severity == "error" for issue in issues)


def _template_issues(
    amount,
    description: str,
    category: str,
    type_: TransactionType,
    account_id,
    to_account_id,
) -> list[ValidationIssue]:
    """Checks shared by transactions and series templates."""
    issues = []

    if amount is None or amount <= 0:
        issues.append(ValidationIssue(
            field="amount",
            issue_type="invalid_value",
            message="Amount must be greater than zero",
            severity="error",
        ))

    if not description or not description.strip():
        issues.append(ValidationIssue(
            field="description",
            issue_type="missing",
            message="Description is required",
            severity="error",
        ))

    if not category or not category.strip():
        issues.append(ValidationIssue(
            field="category",
            issue_type="missing",
            message="Category is required",
            severity="error",
        ))

    if account_id is None:
        issues.append(ValidationIssue(
            field="account_id",
            issue_type="missing",
            message="Account is required",
            severity="error",
        ))

    if type_ == TransactionType.TRANSFER:
        if to_account_id is None:
            issues.append(ValidationIssue(
                field="to_account_id",
                issue_type="missing",
                message="Destination account is required for transfers",
                severity="error",
            ))
        elif to_account_id == account_id:
            issues.append(ValidationIssue(
                field="to_account_id",
                issue_type="inconsistent",
                message="Source and destination accounts must be different",
                severity="error",
            ))
    elif to_account_id is not None:
        issues.append(ValidationIssue(
            field="to_account_id",
            issue_type="inconsistent",
            message="Only transfers can have a destination account",
            severity="error",
        ))

    return issues


class TransactionValidator:
    """
    Validates transactions before they are written.

    Stage 1: Schema validation
    Stage 2: Semantic validation (only when stage 1 passes)
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()
        self._settings = get_settings().app

    def _validate_schema(self, transaction: Transaction) -> list[ValidationIssue]:
        issues = _template_issues(
            transaction.amount,
            transaction.description,
            transaction.category,
            transaction.type,
            transaction.account_id,
            transaction.to_account_id,
        )

        if transaction.parent_transaction_id == transaction.id:
            issues.append(ValidationIssue(
                field="parent_transaction_id",
                issue_type="inconsistent",
                message="A transaction cannot be linked to itself",
                severity="error",
            ))

        if transaction.parent_transaction_id is not None and not transaction.is_reconciled:
            issues.append(ValidationIssue(
                field="is_reconciled",
                issue_type="inconsistent",
                message="A linked transaction must be marked reconciled",
                severity="error",
            ))

        return issues

    def _validate_semantic(self, transaction: Transaction) -> list[ValidationIssue]:
        issues = []

        tolerance = timedelta(days=self._settings.future_date_tolerance_days)
        if transaction.date > self._clock.today() + tolerance:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Transaction date ({transaction.date}) is in the future",
                severity="warning",
            ))

        return issues

    def validate(self, transaction: Transaction) -> ValidationResult:
        issues = self._validate_schema(transaction)
        if _is_valid(issues):
            issues.extend(self._validate_semantic(transaction))
        return ValidationResult(is_valid=_is_valid(issues), issues=issues)

    def ensure_valid(self, transaction: Transaction) -> ValidationResult:
        """Validate and raise ValidationError on any error-level issue."""
        result = self.validate(transaction)
        if not result.is_valid:
            raise ValidationError(
                "; ".join(i.message for i in result.issues if i.severity == "error"),
                issues=result.issues,
            )
        return result


class SeriesValidator:
    """Validates recurring series definitions."""

    def _validate_schema(self, series: RecurringTransactionSeries) -> list[ValidationIssue]:
        issues = _template_issues(
            series.amount,
            series.description,
            series.category,
            series.type,
            series.account_id,
            series.to_account_id,
        )

        if series.end_date is not None and series.end_date < series.start_date:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="inconsistent",
                message="Series end date is before its start date",
                severity="error",
            ))

        if series.next_due_date is not None and series.next_due_date < series.start_date:
            issues.append(ValidationIssue(
                field="next_due_date",
                issue_type="inconsistent",
                message="Next due date is before the series start date",
                severity="error",
            ))

        return issues

    def _validate_semantic(self, series: RecurringTransactionSeries) -> list[ValidationIssue]:
        issues = []

        if series.frequency in (Frequency.WEEKLY, Frequency.BIWEEKLY, Frequency.ONCE):
            if series.day_of_month is not None or series.month_of_year is not None:
                issues.append(ValidationIssue(
                    field="day_of_month",
                    issue_type="ignored",
                    message=f"Day/month anchors are ignored for {series.frequency.value} series",
                    severity="info",
                ))

        if series.frequency == Frequency.MONTHLY and series.month_of_year is not None:
            issues.append(ValidationIssue(
                field="month_of_year",
                issue_type="ignored",
                message="Month of year is ignored for monthly series",
                severity="info",
            ))

        if (
            series.frequency in (Frequency.MONTHLY, Frequency.YEARLY)
            and series.day_of_month is not None
            and series.day_of_month > 28
        ):
            issues.append(ValidationIssue(
                field="day_of_month",
                issue_type="clamped",
                message=(
                    f"Day {series.day_of_month} does not exist in every month; "
                    "shorter months use their last day"
                ),
                severity="warning",
            ))

        if series.frequency == Frequency.ONCE and series.end_date is not None:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="ignored",
                message="End date has no effect on a one-off series",
                severity="info",
            ))

        return issues

    def validate(self, series: RecurringTransactionSeries) -> ValidationResult:
        issues = self._validate_schema(series)
        if _is_valid(issues):
            issues.extend(self._validate_semantic(series))
        return ValidationResult(is_valid=_is_valid(issues), issues=issues)

    def ensure_valid(self, series: RecurringTransactionSeries) -> ValidationResult:
        """Validate and raise ValidationError on any error-level issue."""
        result = self.validate(series)
        if not result.is_valid:
            raise ValidationError(
                "; ".join(i.message for i in result.issues if i.severity == "error"),
                issues=result.issues,
            )
        return result
