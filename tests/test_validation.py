"""
Tests for two-stage validation.

Models already reject most bad input, so these tests mutate valid
instances the way a caller holding a model could.
"""

from datetime import date
from decimal import Decimal

import pytest

from finance_core.clock import FixedClock
from finance_core.errors import ValidationError
from finance_core.models.finance import Frequency, TransactionType
from finance_core.validation import SeriesValidator, TransactionValidator

from tests.conftest import ACCOUNT_ID


@pytest.fixture
def validator() -> TransactionValidator:
    return TransactionValidator(clock=FixedClock.on(date(2024, 1, 1)))


class TestTransactionValidator:

    def test_valid_transaction(self, validator, make_transaction):
        result = validator.validate(make_transaction())
        assert result.is_valid is True
        assert result.issues == []

    def test_amount_must_be_positive(self, validator, make_transaction):
        transaction = make_transaction()
        transaction.amount = Decimal("0")

        result = validator.validate(transaction)

        assert result.is_valid is False
        assert [i.field for i in result.issues] == ["amount"]

    def test_transfer_needs_distinct_destination(self, validator, make_transaction):
        transaction = make_transaction()
        transaction.type = TransactionType.TRANSFER

        result = validator.validate(transaction)
        assert any(i.field == "to_account_id" and i.issue_type == "missing" for i in result.issues)

        transaction.to_account_id = ACCOUNT_ID
        result = validator.validate(transaction)
        assert any(i.issue_type == "inconsistent" for i in result.issues)

    def test_link_requires_reconciled_flag(self, validator, make_transaction):
        parent = make_transaction()
        child = make_transaction("10.00", TransactionType.INCOME)
        child.parent_transaction_id = parent.id

        result = validator.validate(child)

        assert result.is_valid is False
        assert result.issues[0].field == "is_reconciled"

    def test_future_date_is_a_warning(self, validator, make_transaction):
        result = validator.validate(make_transaction(date=date(2024, 2, 1)))

        assert result.is_valid is True
        assert result.warnings == ["Transaction date (2024-02-01) is in the future"]

    def test_semantic_checks_skipped_on_schema_errors(self, validator, make_transaction):
        transaction = make_transaction(date=date(2024, 2, 1))
        transaction.amount = Decimal("-5")

        result = validator.validate(transaction)

        assert [i.severity for i in result.issues] == ["error"]

    def test_ensure_valid_raises_with_issues(self, validator, make_transaction):
        transaction = make_transaction()
        transaction.description = "   "

        with pytest.raises(ValidationError) as exc_info:
            validator.ensure_valid(transaction)

        assert exc_info.value.issues[0].field == "description"


class TestSeriesValidator:

    def test_valid_series(self, make_series):
        assert SeriesValidator().validate(make_series()).is_valid is True

    def test_next_due_before_start(self, make_series):
        series = make_series(next_due_date=date(2023, 12, 1))

        with pytest.raises(ValidationError, match="before the series start"):
            SeriesValidator().ensure_valid(series)

    def test_end_before_start_after_mutation(self, make_series):
        series = make_series()
        series.end_date = date(2023, 12, 1)

        result = SeriesValidator().validate(series)
        assert result.is_valid is False

    def test_late_day_of_month_warns(self, make_series):
        series = make_series(Frequency.MONTHLY, day_of_month=31)

        result = SeriesValidator().validate(series)

        assert result.is_valid is True
        assert len(result.warnings) == 1

    def test_ignored_anchor_is_info(self, make_series):
        series = make_series(Frequency.WEEKLY, day_of_month=15)

        result = SeriesValidator().validate(series)

        assert result.is_valid is True
        assert result.warnings == []
        assert [i.severity for i in result.issues] == ["info"]
