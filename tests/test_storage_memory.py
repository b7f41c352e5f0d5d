"""Tests for the in-memory storage backend."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from finance_core.models.audit import AuditEventBuilder
from finance_core.models.finance import Budget, BudgetPeriod
from finance_core.services.storage import DuplicateError, NotFoundError

from tests.conftest import OTHER_ACCOUNT_ID


class TestEntityCopies:
    """Stored state only changes through the storage API."""

    @pytest.mark.asyncio
    async def test_returned_models_are_copies(self, storage, person):
        await storage.save_person(person)

        loaded = await storage.get_person(person.id)
        loaded.budget_periods.append(BudgetPeriod(person_id=person.id, start_date=date(2024, 1, 25)))

        assert (await storage.get_person(person.id)).budget_periods == []

    @pytest.mark.asyncio
    async def test_saved_models_are_copies(self, storage, make_transaction):
        transaction = make_transaction()
        await storage.save_transaction(transaction)

        transaction.category = "changed"

        assert (await storage.get_transaction(transaction.id)).category == "food"


class TestCrudErrors:

    @pytest.mark.asyncio
    async def test_duplicate_save(self, storage, make_series):
        series = make_series()
        await storage.save_series(series)
        with pytest.raises(DuplicateError):
            await storage.save_series(series)

    @pytest.mark.asyncio
    async def test_update_missing(self, storage, person):
        with pytest.raises(NotFoundError):
            await storage.update_person(person)

    @pytest.mark.asyncio
    async def test_delete_missing_returns_false(self, storage):
        assert await storage.delete_transaction(uuid4()) is False
        assert await storage.get_budget(uuid4()) is None


class TestListFilters:

    @pytest.mark.asyncio
    async def test_transaction_filters(self, storage, make_transaction, make_series):
        series = make_series()
        early = make_transaction("10.00", date=date(2024, 1, 1))
        late = make_transaction("20.00", date=date(2024, 1, 20), recurring_series_id=series.id)
        elsewhere = make_transaction("30.00", date=date(2024, 1, 10), account_id=OTHER_ACCOUNT_ID)
        for transaction in (late, elsewhere, early):
            await storage.save_transaction(transaction)

        everything = await storage.list_transactions()
        assert [t.id for t in everything] == [early.id, elsewhere.id, late.id]

        in_window = await storage.list_transactions(date_from=date(2024, 1, 5), date_to=date(2024, 1, 15))
        assert [t.id for t in in_window] == [elsewhere.id]

        by_account = await storage.list_transactions(account_ids=[OTHER_ACCOUNT_ID])
        assert [t.id for t in by_account] == [elsewhere.id]

        by_series = await storage.list_transactions(recurring_series_id=series.id)
        assert [t.id for t in by_series] == [late.id]

    @pytest.mark.asyncio
    async def test_active_series_only(self, storage, make_series):
        active = make_series()
        inactive = make_series(is_active=False)
        await storage.save_series(active)
        await storage.save_series(inactive)

        assert [s.id for s in await storage.list_series(active_only=True)] == [active.id]
        assert len(await storage.list_series()) == 2

    @pytest.mark.asyncio
    async def test_budgets_by_person(self, storage, person):
        mine = Budget(person_id=person.id, description="Food", amount=Decimal("100.00"))
        theirs = Budget(person_id=uuid4(), description="Food", amount=Decimal("100.00"))
        await storage.save_budget(mine)
        await storage.save_budget(theirs)

        assert [b.id for b in await storage.list_budgets(person_id=person.id)] == [mine.id]


class TestAuditEvents:

    @pytest.mark.asyncio
    async def test_event_queries(self, storage):
        correlation_id = uuid4()
        series_id = uuid4()
        executed = AuditEventBuilder.series_executed(
            series_id, uuid4(), Decimal("25.00"), date(2024, 1, 8), correlation_id=correlation_id
        )
        paused = AuditEventBuilder.series_paused(series_id, None)
        await storage.append_event(executed)
        await storage.append_event(paused)

        assert [e.event_id for e in await storage.get_events_by_correlation_id(correlation_id)] == [
            executed.event_id
        ]
        assert len(await storage.get_events_by_entity("series", series_id)) == 2
        assert len(await storage.get_recent_events(limit=1)) == 1
