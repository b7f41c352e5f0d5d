"""
In-Memory Storage Implementation

In-process store for tests, demos and single-process hosts.
All state is lost when the process exits.

Entities are deep-copied on the way in and on the way out, so callers
can never mutate stored state by holding on to a returned model.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from finance_core.models.audit import AuditEvent
from finance_core.models.finance import (
    Budget,
    Person,
    RecurringTransactionSeries,
    Transaction,
    utc_now,
)
from finance_core.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    DuplicateError,
    NotFoundError,
    PersonStorageInterface,
    RecurringSeriesStorageInterface,
    TransactionStorageInterface,
)


class InMemoryStorage(
    PersonStorageInterface,
    BudgetStorageInterface,
    TransactionStorageInterface,
    RecurringSeriesStorageInterface,
    AuditStorageInterface,
):
    """One object implementing every storage interface."""

    def __init__(self) -> None:
        self._people: dict[UUID, Person] = {}
        self._budgets: dict[UUID, Budget] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._series: dict[UUID, RecurringTransactionSeries] = {}
        self._events: list[AuditEvent] = []

    # ─── People ───────────────────────────────────────────────────────────────

    async def save_person(self, person: Person) -> bool:
        if person.id in self._people:
            raise DuplicateError(f"Person already exists: {person.id}")
        self._people[person.id] = person.model_copy(deep=True)
        return True

    async def get_person(self, person_id: UUID) -> Optional[Person]:
        person = self._people.get(person_id)
        return person.model_copy(deep=True) if person else None

    async def update_person(self, person: Person) -> bool:
        if person.id not in self._people:
            raise NotFoundError("person", person.id)
        person.updated_at = utc_now()
        self._people[person.id] = person.model_copy(deep=True)
        return True

    async def delete_person(self, person_id: UUID) -> bool:
        return self._people.pop(person_id, None) is not None

    async def list_people(self) -> list[Person]:
        return [person.model_copy(deep=True) for person in self._people.values()]

    # ─── Budgets ──────────────────────────────────────────────────────────────

    async def save_budget(self, budget: Budget) -> bool:
        if budget.id in self._budgets:
            raise DuplicateError(f"Budget already exists: {budget.id}")
        self._budgets[budget.id] = budget.model_copy(deep=True)
        return True

    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        budget = self._budgets.get(budget_id)
        return budget.model_copy(deep=True) if budget else None

    async def update_budget(self, budget: Budget) -> bool:
        if budget.id not in self._budgets:
            raise NotFoundError("budget", budget.id)
        budget.updated_at = utc_now()
        self._budgets[budget.id] = budget.model_copy(deep=True)
        return True

    async def delete_budget(self, budget_id: UUID) -> bool:
        return self._budgets.pop(budget_id, None) is not None

    async def list_budgets(self, person_id: Optional[UUID] = None) -> list[Budget]:
        return [
            budget.model_copy(deep=True)
            for budget in self._budgets.values()
            if person_id is None or budget.person_id == person_id
        ]

    # ─── Transactions ─────────────────────────────────────────────────────────

    async def save_transaction(self, transaction: Transaction) -> bool:
        if transaction.id in self._transactions:
            raise DuplicateError(f"Transaction already exists: {transaction.id}")
        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        return True

    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        transaction = self._transactions.get(transaction_id)
        return transaction.model_copy(deep=True) if transaction else None

    async def update_transaction(self, transaction: Transaction) -> bool:
        if transaction.id not in self._transactions:
            raise NotFoundError("transaction", transaction.id)
        transaction.updated_at = utc_now()
        self._transactions[transaction.id] = transaction.model_copy(deep=True)
        return True

    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._transactions.pop(transaction_id, None) is not None

    async def list_transactions(
        self,
        account_ids: Optional[list[UUID]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        recurring_series_id: Optional[UUID] = None,
        parent_transaction_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        accounts = set(account_ids) if account_ids else None
        results = []
        for transaction in self._transactions.values():
            if accounts is not None and not (
                transaction.account_id in accounts or transaction.to_account_id in accounts
            ):
                continue
            if date_from and transaction.date < date_from:
                continue
            if date_to and transaction.date > date_to:
                continue
            if recurring_series_id and transaction.recurring_series_id != recurring_series_id:
                continue
            if parent_transaction_id and transaction.parent_transaction_id != parent_transaction_id:
                continue
            results.append(transaction.model_copy(deep=True))

        results.sort(key=lambda t: (t.date, t.created_at))
        return results

    # ─── Recurring series ─────────────────────────────────────────────────────

    async def save_series(self, series: RecurringTransactionSeries) -> bool:
        if series.id in self._series:
            raise DuplicateError(f"Series already exists: {series.id}")
        self._series[series.id] = series.model_copy(deep=True)
        return True

    async def get_series(self, series_id: UUID) -> Optional[RecurringTransactionSeries]:
        series = self._series.get(series_id)
        return series.model_copy(deep=True) if series else None

    async def update_series(self, series: RecurringTransactionSeries) -> bool:
        if series.id not in self._series:
            raise NotFoundError("series", series.id)
        series.updated_at = utc_now()
        self._series[series.id] = series.model_copy(deep=True)
        return True

    async def delete_series(self, series_id: UUID) -> bool:
        return self._series.pop(series_id, None) is not None

    async def list_series(self, active_only: bool = False) -> list[RecurringTransactionSeries]:
        return [
            series.model_copy(deep=True)
            for series in self._series.values()
            if series.is_active or not active_only
        ]

    # ─── Audit ────────────────────────────────────────────────────────────────

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
