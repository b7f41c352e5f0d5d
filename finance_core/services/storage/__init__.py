"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
An in-memory backend is used by default; Google Sheets is the persistent
backend, and the engine only ever talks to the interfaces.
"""

from finance_core.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    DuplicateError,
    NotFoundError,
    PersonStorageInterface,
    RecurringSeriesStorageInterface,
    StorageConnectionError,
    StorageError,
    TransactionStorageInterface,
)
from finance_core.services.storage.memory import InMemoryStorage
from finance_core.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsPersonStorage,
    GoogleSheetsRecurringSeriesStorage,
    GoogleSheetsTransactionStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "PersonStorageInterface",
    "RecurringSeriesStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBudgetStorage",
    "GoogleSheetsClient",
    "GoogleSheetsPersonStorage",
    "GoogleSheetsRecurringSeriesStorage",
    "GoogleSheetsTransactionStorage",
]
