"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the durable storage backend because:
1. The user can view and correct their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for a personal ledger)
- No transactions: an admission check and the following insert are
  two separate calls, exactly as with any other store
- Limited query capabilities (we filter and sum in Python)

gspread is blocking, so every sheet call runs in a worker thread to keep
the event loop free for the other bulk workers.
"""

import asyncio
import json
from datetime import date, datetime
from typing import Optional
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from ledger.config import get_settings
from ledger.models.ledger import Budget, Transaction
from ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from ledger.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    StorageError,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)

BUDGET_COLUMNS = [
    "category",
    "limit",
]

TRANSACTION_COLUMNS = [
    "id",
    "amount",
    "category",
    "description",
    "date",
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
]


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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int,
    ) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_budgets_sheet(self) -> gspread.Worksheet:
        """Get or create the Budgets worksheet."""
        return self._get_or_create_sheet(
            self._settings.budgets_sheet_name, BUDGET_COLUMNS, rows=200
        )

    def get_transactions_sheet(self) -> gspread.Worksheet:
        """Get or create the Transactions worksheet."""
        return self._get_or_create_sheet(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, rows=5000
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create_sheet(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )


def _safe_get(row: list, index: int, default: str = "") -> str:
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsBudgetStorage(BudgetStorageInterface):
    """
    Google Sheets implementation of budget storage.

    One budget per row, keyed by the category column.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_budget(self, row: list) -> Budget:
        try:
            return Budget(category=_safe_get(row, 0), limit=float(_safe_get(row, 1)))
        except ValueError as e:
            raise StorageError(f"Malformed budget row {row!r}: {e}")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_rows(self) -> list[list]:
        return self._client.get_budgets_sheet().get_all_values()

    async def get_budget(self, category: str) -> Optional[Budget]:
        """
        Retrieve the budget for a category.

        Raises:
            StorageError: The sheet could not be read, or the
                category's row does not hold a valid limit
        """
        try:
            all_rows = (await asyncio.to_thread(self._read_rows))[1:]
        except Exception as e:
            raise StorageError(f"Failed to get budget: {e}")

        for row in all_rows:
            if row and row[0] == category:
                return self._row_to_budget(row)
        return None

    async def upsert_budget(self, budget: Budget) -> bool:
        """Insert a budget row or overwrite the limit in place."""

        @retry(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        )
        def _upsert() -> None:
            sheet = self._client.get_budgets_sheet()
            all_rows = sheet.get_all_values()
            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if row and row[0] == budget.category:
                    sheet.update_cell(idx, 2, str(budget.limit))
                    return
            sheet.append_row(
                [budget.category, str(budget.limit)],
                value_input_option="RAW",
            )

        try:
            await asyncio.to_thread(_upsert)
            return True
        except Exception as e:
            raise StorageError(f"Failed to save budget: {e}")

    async def list_budgets(self) -> list[Budget]:
        """List all budgets ordered by category. Malformed rows are skipped."""
        try:
            all_rows = (await asyncio.to_thread(self._read_rows))[1:]
        except Exception as e:
            raise StorageError(f"Failed to list budgets: {e}")

        budgets = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                budgets.append(self._row_to_budget(row))
            except StorageError as e:
                logger.warning("budget_row_skipped", error=str(e))
        budgets.sort(key=lambda b: b.category)
        return budgets


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of transaction storage.

    Ids are allocated as max(existing id) + 1. Allocation and append
    happen under one lock so concurrent inserts from this process
    never share an id.

    Sums and category discovery refuse to run over a malformed row:
    skipping it would under-count spend and let the budget gate
    admit past the limit. Plain listings skip such rows.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._insert_lock = asyncio.Lock()

    def _transaction_to_row(self, transaction: Transaction) -> list:
        return [
            str(transaction.id),
            str(transaction.amount),
            transaction.category,
            transaction.description,
            transaction.date.isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        return Transaction(
            id=int(_safe_get(row, 0, "0")),
            amount=float(_safe_get(row, 1, "0")),
            category=_safe_get(row, 2),
            description=_safe_get(row, 3),
            date=date.fromisoformat(_safe_get(row, 4)),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_rows(self) -> list[list]:
        return self._client.get_transactions_sheet().get_all_values()

    async def _load(self, strict: bool = False) -> list[Transaction]:
        """
        Parse every data row.

        With strict set, a malformed row raises StorageError;
        otherwise it is logged and skipped.
        """
        try:
            all_rows = (await asyncio.to_thread(self._read_rows))[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to read transactions: {e}")

        transactions = []
        for row_number, row in enumerate(all_rows, start=2):
            if not any(row):
                continue
            try:
                transactions.append(self._row_to_transaction(row))
            except ValueError as e:
                if strict:
                    raise StorageError(f"Malformed transaction row {row_number}: {e}")
                logger.warning("transaction_row_skipped", row=row_number, error=str(e))
        return transactions

    async def insert_transaction(self, transaction: Transaction) -> int:
        """Append a transaction row and return its new id."""

        # Not retried: a retry after a lost response would duplicate the row
        def _insert() -> int:
            sheet = self._client.get_transactions_sheet()
            ids = sheet.col_values(1)[1:]
            next_id = max((int(i) for i in ids if i.isdigit()), default=0) + 1
            sheet.append_row(
                self._transaction_to_row(transaction.with_id(next_id)),
                value_input_option="RAW",
            )
            return next_id

        async with self._insert_lock:
            try:
                return await asyncio.to_thread(_insert)
            except Exception as e:
                raise StorageError(f"Failed to save transaction: {e}")

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        for transaction in await self._load():
            if transaction.id == transaction_id:
                return transaction
        return None

    async def sum_by_category(
        self,
        category: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> float:
        """Sum amounts for a category within an optional date range."""
        total = 0.0
        for t in await self._load(strict=True):
            if t.category != category:
                continue
            if date_from and t.date < date_from:
                continue
            if date_to and t.date > date_to:
                continue
            total += t.amount
        return total

    async def list_distinct_categories(
        self,
        date_from: date,
        date_to: date,
    ) -> set[str]:
        transactions = await self._load(strict=True)
        return {t.category for t in transactions if date_from <= t.date <= date_to}

    async def list_transactions(self) -> list[Transaction]:
        transactions = await self._load()
        transactions.sort(key=lambda t: (t.date, t.id), reverse=True)
        return transactions


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=_safe_get(row, 5) or None,
            correlation_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            description=_safe_get(row, 7),
            details=json.loads(_safe_get(row, 8)) if _safe_get(row, 8) else {},
            error_message=_safe_get(row, 9) or None,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _read_rows(self) -> list[list]:
        return self._client.get_audit_sheet().get_all_values()

    async def _load(self) -> list[AuditEvent]:
        try:
            all_rows = (await asyncio.to_thread(self._read_rows))[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except ValueError as e:
                    logger.warning("audit_row_skipped", error=str(e))
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""

        @retry(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        )
        def _append() -> None:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")

        try:
            await asyncio.to_thread(_append)
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID, oldest first."""
        events = [e for e in await self._load() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events, newest first."""
        events = await self._load()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
