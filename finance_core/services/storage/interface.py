"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep engine logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Just keyed CRUD plus the few filtered listings the engine needs.

`update_*` methods stamp `updated_at` on the entity they are given
(the "server timestamp").
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from finance_core.errors import FinanceError, NotFoundError
from finance_core.models.audit import AuditEvent
from finance_core.models.finance import (
    Budget,
    Person,
    RecurringTransactionSeries,
    Transaction,
)


class PersonStorageInterface(ABC):
    """
    Abstract interface for person storage.

    Budget periods live on the person record, so updating a person is
    also how periods are persisted.
    """

    @abstractmethod
    async def save_person(self, person: Person) -> bool:
        """
        Save a new person.

        Raises:
            DuplicateError: If a person with this id already exists
        """
        pass

    @abstractmethod
    async def get_person(self, person_id: UUID) -> Optional[Person]:
        """Retrieve a person by id, None if absent."""
        pass

    @abstractmethod
    async def update_person(self, person: Person) -> bool:
        """
        Replace an existing person (including its budget periods).

        Raises:
            NotFoundError: If the person doesn't exist
        """
        pass

    @abstractmethod
    async def delete_person(self, person_id: UUID) -> bool:
        """Delete a person. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def list_people(self) -> list[Person]:
        """List every person."""
        pass


class BudgetStorageInterface(ABC):
    """Abstract interface for budget storage."""

    @abstractmethod
    async def save_budget(self, budget: Budget) -> bool:
        pass

    @abstractmethod
    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        pass

    @abstractmethod
    async def update_budget(self, budget: Budget) -> bool:
        """
        Raises:
            NotFoundError: If the budget doesn't exist
        """
        pass

    @abstractmethod
    async def delete_budget(self, budget_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_budgets(self, person_id: Optional[UUID] = None) -> list[Budget]:
        """List budgets, optionally only those of one person."""
        pass


class TransactionStorageInterface(ABC):
    """Abstract interface for transaction storage."""

    @abstractmethod
    async def save_transaction(self, transaction: Transaction) -> bool:
        """
        Save a new transaction.

        Raises:
            StorageError: If save fails
            DuplicateError: If the id already exists
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        pass

    @abstractmethod
    async def update_transaction(self, transaction: Transaction) -> bool:
        """
        Replace an existing transaction.

        Raises:
            StorageError: If update fails
            NotFoundError: If the transaction doesn't exist
        """
        pass

    @abstractmethod
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        """Delete a transaction. Returns False if it did not exist."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        account_ids: Optional[list[UUID]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        recurring_series_id: Optional[UUID] = None,
        parent_transaction_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        List transactions with optional filters.

        Args:
            account_ids: Only transactions whose source or destination
                         account is one of these
            date_from: Transactions on or after this date
            date_to: Transactions on or before this date
            recurring_series_id: Only transactions generated by this series
            parent_transaction_id: Only children of this transaction

        Returns:
            Matching transactions, oldest first
        """
        pass


class RecurringSeriesStorageInterface(ABC):
    """Abstract interface for recurring series storage."""

    @abstractmethod
    async def save_series(self, series: RecurringTransactionSeries) -> bool:
        pass

    @abstractmethod
    async def get_series(self, series_id: UUID) -> Optional[RecurringTransactionSeries]:
        pass

    @abstractmethod
    async def update_series(self, series: RecurringTransactionSeries) -> bool:
        """
        Raises:
            NotFoundError: If the series doesn't exist
        """
        pass

    @abstractmethod
    async def delete_series(self, series_id: UUID) -> bool:
        pass

    @abstractmethod
    async def list_series(self, active_only: bool = False) -> list[RecurringTransactionSeries]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(FinanceError):
    """Base exception for storage operations."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


__all__ = [
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "DuplicateError",
    "NotFoundError",
    "PersonStorageInterface",
    "RecurringSeriesStorageInterface",
    "StorageConnectionError",
    "StorageError",
    "TransactionStorageInterface",
]
