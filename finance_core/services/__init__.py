"""Services package."""

from finance_core.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsPersonStorage,
    GoogleSheetsRecurringSeriesStorage,
    GoogleSheetsTransactionStorage,
    InMemoryStorage,
    NotFoundError,
    PersonStorageInterface,
    RecurringSeriesStorageInterface,
    StorageConnectionError,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBudgetStorage",
    "GoogleSheetsClient",
    "GoogleSheetsPersonStorage",
    "GoogleSheetsRecurringSeriesStorage",
    "GoogleSheetsTransactionStorage",
    "InMemoryStorage",
    "NotFoundError",
    "PersonStorageInterface",
    "RecurringSeriesStorageInterface",
    "StorageConnectionError",
    "StorageError",
    "TransactionStorageInterface",
]
