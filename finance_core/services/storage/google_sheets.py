"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a storage backend because:
1. Household users can view their data directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions: the engine's entity locks serialise writers inside
  one process, and multi-row operations compensate on failure
- Limited query capabilities (we filter in Python)

Budget periods are stored as a JSON column on the person row, the same
read-modify-write shape the engine uses in memory.
"""

import functools
import json
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_core.config import get_settings
from finance_core.models.audit import AuditEvent, AuditEventType, AuditSeverity
from finance_core.models.finance import (
    Budget,
    BudgetPeriod,
    BudgetPeriodException,
    Frequency,
    PeriodKind,
    Person,
    RecurringTransactionSeries,
    Transaction,
    TransactionType,
    utc_now,
)
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


PEOPLE_COLUMNS = [
    "id",
    "name",
    "budget_start_day",
    "account_ids_json",
    "budget_periods_json",
    "created_at",
    "updated_at",
    "budget_exceptions_json",
]

BUDGET_COLUMNS = [
    "id",
    "person_id",
    "description",
    "amount",
    "categories_json",
    "period_kind",
    "created_at",
    "updated_at",
]

TRANSACTION_COLUMNS = [
    "id",
    "description",
    "amount",
    "type",
    "category",
    "date",
    "account_id",
    "to_account_id",
    "is_reconciled",
    "parent_transaction_id",
    "recurring_series_id",
    "created_at",
    "updated_at",
]

SERIES_COLUMNS = [
    "id",
    "description",
    "amount",
    "type",
    "category",
    "account_id",
    "to_account_id",
    "frequency",
    "start_date",
    "end_date",
    "next_due_date",
    "day_of_month",
    "month_of_year",
    "auto_execute",
    "is_active",
    "is_paused",
    "pause_until",
    "last_executed_date",
    "total_executions",
    "failed_executions",
    "consecutive_failures",
    "created_at",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


# =============================================================================
# CELL CONVERSION HELPERS
# =============================================================================

def _cell(row: list, index: int) -> str:
    """Read a cell, tolerating short rows."""
    try:
        return row[index] or ""
    except IndexError:
        return ""


def _opt_str(value) -> str:
    return "" if value is None else str(value)


def _opt_date(value: str) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def _opt_uuid(value: str) -> Optional[UUID]:
    return UUID(value) if value else None


def _opt_int(value: str) -> Optional[int]:
    return int(value) if value else None


def _bool(value: str) -> bool:
    return value.strip().lower() == "true"


def _iso(value: Optional[date]) -> str:
    return value.isoformat() if value else ""


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    @property
    def settings(self):
        return self._settings


class _SheetTable:
    """
    Row-per-entity table on one worksheet, keyed by the first column.

    Subclasses provide the worksheet title/columns and the row mapping.
    """

    columns: list[str] = []

    def __init__(self, client: GoogleSheetsClient, title: str):
        self._client = client
        self._title = title

    def _sheet(self):
        return self._client.get_worksheet(self._title, self.columns)

    def _data_rows(self) -> list[tuple[int, list]]:
        """(1-based sheet row number, row) for every non-empty data row."""
        all_rows = self._sheet().get_all_values()
        return [
            (idx, row)
            for idx, row in enumerate(all_rows[1:], start=2)  # Row 1 is header
            if row and row[0]
        ]

    def _find(self, key: UUID) -> Optional[tuple[int, list]]:
        for idx, row in self._data_rows():
            if row[0] == str(key):
                return idx, row
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(gspread.exceptions.APIError),
        reraise=True,
    )
    def _write_row(self, row: list) -> None:
        self._sheet().append_row(row, value_input_option="RAW")

    def _append(self, key: UUID, row: list) -> None:
        if self._find(key) is not None:
            raise DuplicateError(f"{self._title} row already exists: {key}")
        self._write_row(row)

    def _replace(self, entity_type: str, key: UUID, row: list) -> None:
        found = self._find(key)
        if found is None:
            raise NotFoundError(entity_type, key)
        idx, _ = found
        self._sheet().update(range_name=f"A{idx}", values=[row], value_input_option="RAW")

    def _remove(self, key: UUID) -> bool:
        found = self._find(key)
        if found is None:
            return False
        idx, _ = found
        self._sheet().delete_rows(idx)
        return True

    def _parse_all(self, parse: Callable[[list], object]) -> list:
        parsed = []
        for _, row in self._data_rows():
            try:
                parsed.append(parse(row))
            except (ValueError, KeyError, InvalidOperation):
                continue  # Skip malformed rows
        return parsed


def _wrap_storage_errors(action: str):
    """Re-raise unexpected backend failures as StorageError."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except (StorageError, NotFoundError):
                raise
            except Exception as e:
                raise StorageError(f"Failed to {action}: {e}") from e
        return wrapper
    return decorator


# =============================================================================
# PEOPLE
# =============================================================================

class GoogleSheetsPersonStorage(_SheetTable, PersonStorageInterface):
    """People with their budget periods JSON-serialized in one column."""

    columns = PEOPLE_COLUMNS

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        super().__init__(client, client.settings.people_sheet_name)

    @staticmethod
    def person_to_row(person: Person) -> list:
        return [
            str(person.id),
            person.name,
            str(person.budget_start_day),
            json.dumps([str(account_id) for account_id in person.account_ids]),
            json.dumps([period.model_dump(mode="json") for period in person.budget_periods]),
            person.created_at.isoformat(),
            person.updated_at.isoformat(),
            json.dumps([exception.model_dump(mode="json") for exception in person.budget_exceptions]),
        ]

    @staticmethod
    def row_to_person(row: list) -> Person:
        periods_json = _cell(row, 4)
        accounts_json = _cell(row, 3)
        exceptions_json = _cell(row, 7)
        return Person(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            budget_start_day=int(_cell(row, 2)),
            account_ids=[UUID(a) for a in json.loads(accounts_json)] if accounts_json else [],
            budget_periods=[
                BudgetPeriod.model_validate(p) for p in json.loads(periods_json)
            ] if periods_json else [],
            budget_exceptions=[
                BudgetPeriodException.model_validate(e) for e in json.loads(exceptions_json)
            ] if exceptions_json else [],
            created_at=datetime.fromisoformat(_cell(row, 5)),
            updated_at=datetime.fromisoformat(_cell(row, 6)),
        )

    @_wrap_storage_errors("save person")
    async def save_person(self, person: Person) -> bool:
        self._append(person.id, self.person_to_row(person))
        return True

    @_wrap_storage_errors("get person")
    async def get_person(self, person_id: UUID) -> Optional[Person]:
        found = self._find(person_id)
        return self.row_to_person(found[1]) if found else None

    @_wrap_storage_errors("update person")
    async def update_person(self, person: Person) -> bool:
        person.updated_at = utc_now()
        self._replace("person", person.id, self.person_to_row(person))
        return True

    @_wrap_storage_errors("delete person")
    async def delete_person(self, person_id: UUID) -> bool:
        return self._remove(person_id)

    @_wrap_storage_errors("list people")
    async def list_people(self) -> list[Person]:
        return self._parse_all(self.row_to_person)


# =============================================================================
# BUDGETS
# =============================================================================

class GoogleSheetsBudgetStorage(_SheetTable, BudgetStorageInterface):
    """Budgets, one per row; categories JSON-serialized."""

    columns = BUDGET_COLUMNS

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        super().__init__(client, client.settings.budgets_sheet_name)

    @staticmethod
    def budget_to_row(budget: Budget) -> list:
        return [
            str(budget.id),
            str(budget.person_id),
            budget.description,
            str(budget.amount),
            json.dumps(sorted(budget.categories)),
            budget.period_kind.value,
            budget.created_at.isoformat(),
            budget.updated_at.isoformat(),
        ]

    @staticmethod
    def row_to_budget(row: list) -> Budget:
        categories_json = _cell(row, 4)
        return Budget(
            id=UUID(_cell(row, 0)),
            person_id=UUID(_cell(row, 1)),
            description=_cell(row, 2),
            amount=Decimal(_cell(row, 3)),
            categories=set(json.loads(categories_json)) if categories_json else set(),
            period_kind=PeriodKind(_cell(row, 5) or PeriodKind.MONTHLY.value),
            created_at=datetime.fromisoformat(_cell(row, 6)),
            updated_at=datetime.fromisoformat(_cell(row, 7)),
        )

    @_wrap_storage_errors("save budget")
    async def save_budget(self, budget: Budget) -> bool:
        self._append(budget.id, self.budget_to_row(budget))
        return True

    @_wrap_storage_errors("get budget")
    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        found = self._find(budget_id)
        return self.row_to_budget(found[1]) if found else None

    @_wrap_storage_errors("update budget")
    async def update_budget(self, budget: Budget) -> bool:
        budget.updated_at = utc_now()
        self._replace("budget", budget.id, self.budget_to_row(budget))
        return True

    @_wrap_storage_errors("delete budget")
    async def delete_budget(self, budget_id: UUID) -> bool:
        return self._remove(budget_id)

    @_wrap_storage_errors("list budgets")
    async def list_budgets(self, person_id: Optional[UUID] = None) -> list[Budget]:
        budgets = self._parse_all(self.row_to_budget)
        return [b for b in budgets if person_id is None or b.person_id == person_id]


# =============================================================================
# TRANSACTIONS
# =============================================================================

class GoogleSheetsTransactionStorage(_SheetTable, TransactionStorageInterface):
    """Transactions, one per row."""

    columns = TRANSACTION_COLUMNS

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        super().__init__(client, client.settings.transactions_sheet_name)

    @staticmethod
    def transaction_to_row(transaction: Transaction) -> list:
        return [
            str(transaction.id),
            transaction.description,
            str(transaction.amount),
            transaction.type.value,
            transaction.category,
            transaction.date.isoformat(),
            str(transaction.account_id),
            _opt_str(transaction.to_account_id),
            str(transaction.is_reconciled),
            _opt_str(transaction.parent_transaction_id),
            _opt_str(transaction.recurring_series_id),
            transaction.created_at.isoformat(),
            transaction.updated_at.isoformat(),
        ]

    @staticmethod
    def row_to_transaction(row: list) -> Transaction:
        return Transaction(
            id=UUID(_cell(row, 0)),
            description=_cell(row, 1),
            amount=Decimal(_cell(row, 2)),
            type=TransactionType(_cell(row, 3)),
            category=_cell(row, 4),
            date=date.fromisoformat(_cell(row, 5)),
            account_id=UUID(_cell(row, 6)),
            to_account_id=_opt_uuid(_cell(row, 7)),
            is_reconciled=_bool(_cell(row, 8)),
            parent_transaction_id=_opt_uuid(_cell(row, 9)),
            recurring_series_id=_opt_uuid(_cell(row, 10)),
            created_at=datetime.fromisoformat(_cell(row, 11)),
            updated_at=datetime.fromisoformat(_cell(row, 12)),
        )

    @_wrap_storage_errors("save transaction")
    async def save_transaction(self, transaction: Transaction) -> bool:
        self._append(transaction.id, self.transaction_to_row(transaction))
        return True

    @_wrap_storage_errors("get transaction")
    async def get_transaction(self, transaction_id: UUID) -> Optional[Transaction]:
        found = self._find(transaction_id)
        return self.row_to_transaction(found[1]) if found else None

    @_wrap_storage_errors("update transaction")
    async def update_transaction(self, transaction: Transaction) -> bool:
        transaction.updated_at = utc_now()
        self._replace("transaction", transaction.id, self.transaction_to_row(transaction))
        return True

    @_wrap_storage_errors("delete transaction")
    async def delete_transaction(self, transaction_id: UUID) -> bool:
        return self._remove(transaction_id)

    @_wrap_storage_errors("list transactions")
    async def list_transactions(
        self,
        account_ids: Optional[list[UUID]] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        recurring_series_id: Optional[UUID] = None,
        parent_transaction_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        accounts = set(account_ids) if account_ids else None
        transactions = []
        for transaction in self._parse_all(self.row_to_transaction):
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
            transactions.append(transaction)

        transactions.sort(key=lambda t: (t.date, t.created_at))
        return transactions


# =============================================================================
# RECURRING SERIES
# =============================================================================

class GoogleSheetsRecurringSeriesStorage(_SheetTable, RecurringSeriesStorageInterface):
    """Recurring series, one per row."""

    columns = SERIES_COLUMNS

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        super().__init__(client, client.settings.recurring_sheet_name)

    @staticmethod
    def series_to_row(series: RecurringTransactionSeries) -> list:
        return [
            str(series.id),
            series.description,
            str(series.amount),
            series.type.value,
            series.category,
            str(series.account_id),
            _opt_str(series.to_account_id),
            series.frequency.value,
            series.start_date.isoformat(),
            _iso(series.end_date),
            _iso(series.next_due_date),
            _opt_str(series.day_of_month),
            _opt_str(series.month_of_year),
            str(series.auto_execute),
            str(series.is_active),
            str(series.is_paused),
            _iso(series.pause_until),
            _iso(series.last_executed_date),
            str(series.total_executions),
            str(series.failed_executions),
            str(series.consecutive_failures),
            series.created_at.isoformat(),
            series.updated_at.isoformat(),
        ]

    @staticmethod
    def row_to_series(row: list) -> RecurringTransactionSeries:
        return RecurringTransactionSeries(
            id=UUID(_cell(row, 0)),
            description=_cell(row, 1),
            amount=Decimal(_cell(row, 2)),
            type=TransactionType(_cell(row, 3)),
            category=_cell(row, 4),
            account_id=UUID(_cell(row, 5)),
            to_account_id=_opt_uuid(_cell(row, 6)),
            frequency=Frequency(_cell(row, 7)),
            start_date=date.fromisoformat(_cell(row, 8)),
            end_date=_opt_date(_cell(row, 9)),
            next_due_date=_opt_date(_cell(row, 10)),
            day_of_month=_opt_int(_cell(row, 11)),
            month_of_year=_opt_int(_cell(row, 12)),
            auto_execute=_bool(_cell(row, 13)),
            is_active=_bool(_cell(row, 14)),
            is_paused=_bool(_cell(row, 15)),
            pause_until=_opt_date(_cell(row, 16)),
            last_executed_date=_opt_date(_cell(row, 17)),
            total_executions=int(_cell(row, 18) or 0),
            failed_executions=int(_cell(row, 19) or 0),
            consecutive_failures=int(_cell(row, 20) or 0),
            created_at=datetime.fromisoformat(_cell(row, 21)),
            updated_at=datetime.fromisoformat(_cell(row, 22)),
        )

    @_wrap_storage_errors("save series")
    async def save_series(self, series: RecurringTransactionSeries) -> bool:
        self._append(series.id, self.series_to_row(series))
        return True

    @_wrap_storage_errors("get series")
    async def get_series(self, series_id: UUID) -> Optional[RecurringTransactionSeries]:
        found = self._find(series_id)
        return self.row_to_series(found[1]) if found else None

    @_wrap_storage_errors("update series")
    async def update_series(self, series: RecurringTransactionSeries) -> bool:
        series.updated_at = utc_now()
        self._replace("series", series.id, self.series_to_row(series))
        return True

    @_wrap_storage_errors("delete series")
    async def delete_series(self, series_id: UUID) -> bool:
        return self._remove(series_id)

    @_wrap_storage_errors("list series")
    async def list_series(self, active_only: bool = False) -> list[RecurringTransactionSeries]:
        series_list = self._parse_all(self.row_to_series)
        return [s for s in series_list if s.is_active or not active_only]


# =============================================================================
# AUDIT
# =============================================================================

class GoogleSheetsAuditStorage(_SheetTable, AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    columns = AUDIT_COLUMNS

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        client = client or GoogleSheetsClient()
        super().__init__(client, client.settings.audit_sheet_name)

    def _sheet(self):
        return self._client.get_worksheet(self._title, self.columns, rows=5000)

    @staticmethod
    def row_to_event(row: list) -> AuditEvent:
        details_json = _cell(row, 8)
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=_opt_uuid(_cell(row, 5)),
            correlation_id=_opt_uuid(_cell(row, 6)),
            description=_cell(row, 7),
            details=json.loads(details_json) if details_json else {},
            error_message=_cell(row, 9) or None,
            is_user_action=_bool(_cell(row, 10)),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}") from e

    @_wrap_storage_errors("get audit events")
    async def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self._parse_all(self.row_to_event)
            if e.correlation_id == correlation_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    @_wrap_storage_errors("get audit events")
    async def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        events = [
            e for e in self._parse_all(self.row_to_event)
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    @_wrap_storage_errors("get audit events")
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._parse_all(self.row_to_event), key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
