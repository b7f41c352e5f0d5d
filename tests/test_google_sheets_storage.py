"""
Tests for the Google Sheets backend.

A fake client stands in for gspread; no network calls are made.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from finance_core.models.audit import AuditEventBuilder
from finance_core.models.finance import BudgetPeriod, BudgetPeriodException, Frequency
from finance_core.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsPersonStorage,
    GoogleSheetsRecurringSeriesStorage,
    GoogleSheetsTransactionStorage,
    NotFoundError,
    StorageError,
)


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the storage classes."""

    def __init__(self, columns):
        self.rows = [list(columns)]
        self.broken = False

    def get_all_values(self):
        if self.broken:
            raise RuntimeError("quota exceeded")
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(cell) for cell in row])

    def update(self, range_name, values, value_input_option=None):
        index = int(range_name[1:]) - 1
        self.rows[index] = [str(cell) for cell in values[0]]

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:

    def __init__(self):
        self.settings = SimpleNamespace(
            people_sheet_name="People",
            budgets_sheet_name="Budgets",
            transactions_sheet_name="Transactions",
            recurring_sheet_name="RecurringSeries",
            audit_sheet_name="AuditLog",
        )
        self.worksheets = {}

    def get_worksheet(self, title, columns, rows=1000):
        if title not in self.worksheets:
            self.worksheets[title] = FakeWorksheet(columns)
        return self.worksheets[title]


@pytest.fixture
def client() -> FakeSheetsClient:
    return FakeSheetsClient()


class TestPersonSheet:

    @pytest.mark.asyncio
    async def test_periods_survive_the_sheet(self, client, person):
        storage = GoogleSheetsPersonStorage(client)
        person.budget_periods = [
            BudgetPeriod(person_id=person.id, start_date=date(2024, 1, 25), end_date=date(2024, 2, 22), is_active=False),
            BudgetPeriod(person_id=person.id, start_date=date(2024, 2, 23)),
        ]
        await storage.save_person(person)

        loaded = await storage.get_person(person.id)

        assert loaded.budget_periods == person.budget_periods
        assert loaded.account_ids == person.account_ids
        assert client.worksheets["People"].rows[0][0] == "id"

    @pytest.mark.asyncio
    async def test_budget_exceptions_survive_the_sheet(self, client, person):
        storage = GoogleSheetsPersonStorage(client)
        person.budget_exceptions = [
            BudgetPeriodException(exception_date=date(2024, 2, 20), reason="Early salary"),
        ]
        await storage.save_person(person)

        loaded = await storage.get_person(person.id)
        assert loaded.budget_exceptions == person.budget_exceptions

    @pytest.mark.asyncio
    async def test_row_without_exceptions_column(self, client, person):
        """Rows written before the exceptions column existed still load."""
        storage = GoogleSheetsPersonStorage(client)
        await storage.save_person(person)
        sheet = client.worksheets["People"]
        sheet.rows[1] = sheet.rows[1][:7]

        loaded = await storage.get_person(person.id)
        assert loaded.budget_exceptions == []

    @pytest.mark.asyncio
    async def test_update_replaces_row_in_place(self, client, person):
        storage = GoogleSheetsPersonStorage(client)
        await storage.save_person(person)
        other = person.model_copy(update={"id": uuid4(), "name": "Sam"})
        await storage.save_person(other)

        person.budget_start_day = 1
        await storage.update_person(person)

        assert (await storage.get_person(person.id)).budget_start_day == 1
        assert [p.name for p in await storage.list_people()] == ["Alex", "Sam"]

    @pytest.mark.asyncio
    async def test_duplicate_and_missing(self, client, person):
        storage = GoogleSheetsPersonStorage(client)
        await storage.save_person(person)

        with pytest.raises(DuplicateError):
            await storage.save_person(person)
        with pytest.raises(NotFoundError):
            await storage.update_person(person.model_copy(update={"id": uuid4()}))

        assert await storage.delete_person(person.id) is True
        assert await storage.delete_person(person.id) is False


class TestTransactionSheet:

    def test_row_layout(self, make_transaction):
        transaction = make_transaction("12.50")
        row = GoogleSheetsTransactionStorage.transaction_to_row(transaction)

        assert len(row) == 13
        assert row[2] == "12.50"
        assert row[7] == ""
        assert GoogleSheetsTransactionStorage.row_to_transaction(row) == transaction

    @pytest.mark.asyncio
    async def test_filters_and_malformed_rows(self, client, make_transaction):
        storage = GoogleSheetsTransactionStorage(client)
        parent = make_transaction("100.00", is_reconciled=True)
        child = make_transaction(
            "40.00", date=date(2024, 1, 3), is_reconciled=True, parent_transaction_id=parent.id
        )
        await storage.save_transaction(parent)
        await storage.save_transaction(child)
        client.worksheets["Transactions"].rows.append([str(uuid4()), "broken", "not-a-number"])

        children = await storage.list_transactions(parent_transaction_id=parent.id)

        assert [t.id for t in children] == [child.id]
        assert len(await storage.list_transactions()) == 2

    @pytest.mark.asyncio
    async def test_backend_failure_becomes_storage_error(self, client, make_transaction):
        storage = GoogleSheetsTransactionStorage(client)
        await storage.save_transaction(make_transaction())
        client.worksheets["Transactions"].broken = True

        with pytest.raises(StorageError, match="list transactions"):
            await storage.list_transactions()


class TestSeriesSheet:

    def test_optional_fields(self, make_series):
        series = make_series(Frequency.MONTHLY, day_of_month=31, pause_until=date(2024, 2, 1), is_paused=True)
        row = GoogleSheetsRecurringSeriesStorage.series_to_row(series)

        loaded = GoogleSheetsRecurringSeriesStorage.row_to_series(row)

        assert loaded.day_of_month == 31
        assert loaded.month_of_year is None
        assert loaded.end_date is None
        assert loaded.pause_until == date(2024, 2, 1)
        assert loaded.is_paused is True

    @pytest.mark.asyncio
    async def test_active_only(self, client, make_series):
        storage = GoogleSheetsRecurringSeriesStorage(client)
        active = make_series()
        await storage.save_series(active)
        await storage.save_series(make_series(is_active=False))

        assert [s.id for s in await storage.list_series(active_only=True)] == [active.id]


class TestAuditSheet:

    @pytest.mark.asyncio
    async def test_append_and_query(self, client):
        storage = GoogleSheetsAuditStorage(client)
        series_id = uuid4()
        event = AuditEventBuilder.series_executed(series_id, uuid4(), Decimal("25.00"), date(2024, 1, 8))

        assert await storage.append_event(event) is True

        loaded = await storage.get_events_by_entity("series", series_id)
        assert [e.event_id for e in loaded] == [event.event_id]
        assert loaded[0].details["amount"] == "25.00"
        assert len(client.worksheets["AuditLog"].rows) == 2
