"""
Tests for Finance Core models

Test strategy:
1. Unit tests for the pydantic models and their validators
2. Audit events and builders (log dict, sheets row)
3. No storage or clock involved
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from finance_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from finance_core.models.finance import (
    Budget,
    BudgetPeriod,
    Frequency,
    Person,
    RecurringTransactionSeries,
    Transaction,
    TransactionType,
)
from finance_core.models.reports import ValidationIssue, ValidationResult


class TestFinanceModels:
    """Tests for people, periods, budgets and transactions."""

    def test_person_strips_whitespace(self):
        person = Person(name="  Alex  ", budget_start_day=1)
        assert person.name == "Alex"
        assert person.budget_periods == []

    def test_person_start_day_bounds(self):
        """Start day must be a day of month."""
        with pytest.raises(ValueError):
            Person(name="Alex", budget_start_day=0)
        with pytest.raises(ValueError):
            Person(name="Alex", budget_start_day=32)

    def test_open_periods(self):
        person_id = uuid4()
        person = Person(
            id=person_id,
            name="Alex",
            budget_start_day=25,
            budget_periods=[
                BudgetPeriod(person_id=person_id, start_date=date(2024, 1, 25), end_date=date(2024, 2, 22)),
                BudgetPeriod(person_id=person_id, start_date=date(2024, 2, 23)),
            ],
        )
        assert [p.start_date for p in person.open_periods] == [date(2024, 2, 23)]

    def test_period_end_before_start_rejected(self):
        with pytest.raises(ValueError, match="Period end cannot be before period start"):
            BudgetPeriod(person_id=uuid4(), start_date=date(2024, 2, 23), end_date=date(2024, 2, 1))

    def test_budget_allows_zero_amount(self):
        budget = Budget(person_id=uuid4(), description="Savings", amount=Decimal("0"))
        assert budget.amount == Decimal("0")
        assert budget.categories == set()

    def test_transaction_rejects_non_positive_amount(self):
        """The direction lives in `type`, never in the sign."""
        for amount in ("0", "-10.00"):
            with pytest.raises(ValueError):
                Transaction(
                    description="Test",
                    amount=Decimal(amount),
                    type=TransactionType.EXPENSE,
                    category="food",
                    date=date(2024, 1, 1),
                    account_id=uuid4(),
                )

    def test_only_transfers_have_destination(self):
        with pytest.raises(ValueError, match="Only transfers"):
            Transaction(
                description="Test",
                amount=Decimal("10.00"),
                type=TransactionType.EXPENSE,
                category="food",
                date=date(2024, 1, 1),
                account_id=uuid4(),
                to_account_id=uuid4(),
            )

    def test_transfer_to_same_account_rejected(self):
        account_id = uuid4()
        with pytest.raises(ValueError, match="cannot be the same"):
            Transaction(
                description="Move",
                amount=Decimal("10.00"),
                type=TransactionType.TRANSFER,
                category="transfer",
                date=date(2024, 1, 1),
                account_id=account_id,
                to_account_id=account_id,
            )

    def test_transaction_cannot_be_own_parent(self):
        transaction_id = uuid4()
        with pytest.raises(ValueError, match="own parent"):
            Transaction(
                id=transaction_id,
                description="Loop",
                amount=Decimal("10.00"),
                type=TransactionType.EXPENSE,
                category="food",
                date=date(2024, 1, 1),
                account_id=uuid4(),
                parent_transaction_id=transaction_id,
                is_reconciled=True,
            )


class TestRecurringSeriesModel:
    """Tests for the recurring series template."""

    def test_next_due_defaults_to_start(self, make_series):
        series = make_series(start=date(2024, 3, 15))
        assert series.next_due_date == date(2024, 3, 15)
        assert series.is_active is True
        assert series.total_executions == 0

    def test_end_before_start_rejected(self, make_series):
        with pytest.raises(ValueError, match="end date cannot be before start"):
            make_series(start=date(2024, 3, 15), end_date=date(2024, 3, 1))

    def test_day_of_month_bounds(self, make_series):
        with pytest.raises(ValueError):
            make_series(frequency=Frequency.MONTHLY, day_of_month=32)

    def test_build_transaction_copies_template(self, make_series):
        series = make_series()
        transaction = series.build_transaction(date(2024, 1, 8))

        assert transaction.date == date(2024, 1, 8)
        assert transaction.amount == series.amount
        assert transaction.category == series.category
        assert transaction.recurring_series_id == series.id
        assert transaction.is_reconciled is False


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.SERIES_CREATED,
            description="Series created",
        )
        assert event.event_type == AuditEventType.SERIES_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Details are made JSON-safe."""
        transaction_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            description="Expense recorded",
            details={"transaction_id": transaction_id, "amount": Decimal("12.50"), "on": date(2024, 1, 1)},
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "transaction_recorded"
        assert log_dict["details"] == {
            "transaction_id": str(transaction_id),
            "amount": "12.50",
            "on": "2024-01-01",
        }

    def test_audit_event_to_sheets_row(self):
        event = AuditEvent(
            event_type=AuditEventType.PERIOD_STARTED,
            description="Budget period started",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11
        assert row[2] == "period_started"
        assert row[8] == ""
        assert row[10] == "True"

    def test_builder_series_execution_failed(self):
        series_id = uuid4()
        correlation_id = uuid4()

        event = AuditEventBuilder.series_execution_failed(
            series_id,
            "storage unavailable",
            failed_executions=2,
            correlation_id=correlation_id,
        )

        assert event.severity == AuditSeverity.ERROR
        assert event.entity_type == "series"
        assert event.entity_id == series_id
        assert event.correlation_id == correlation_id
        assert event.error_message == "storage unavailable"

    def test_builder_period_rolled_over(self):
        person_id = uuid4()
        event = AuditEventBuilder.period_rolled_over(person_id, uuid4(), uuid4(), date(2024, 2, 23))

        assert event.entity_type == "person"
        assert event.entity_id == person_id
        assert event.details["new_start_date"] == date(2024, 2, 23)

    def test_builder_due_pass_severity(self):
        """A pass with failures is logged as a warning."""
        clean = AuditEventBuilder.due_pass_completed(uuid4(), 3, 3, 0, dry_run=False)
        failing = AuditEventBuilder.due_pass_completed(uuid4(), 3, 2, 1, dry_run=False)
        assert clean.severity == AuditSeverity.INFO
        assert failing.severity == AuditSeverity.WARNING


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        result = ValidationResult(
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="Amount must be positive",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        result = ValidationResult(
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="date",
                    issue_type="future_date",
                    message="Date in future",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.warnings == ["Date in future"]

    def test_severity_pattern(self):
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")
