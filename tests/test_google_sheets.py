"""
Tests for the Google Sheets stores.

The gspread client is replaced by an in-memory worksheet double, so
these tests cover row parsing, id allocation and error mapping
without network access.
"""

import asyncio
from datetime import date
from uuid import uuid4

import pytest

from ledger.errors import AdmissionRejectedError
from ledger.ingestion import BulkIngestionEngine
from ledger.models.audit import AuditEventBuilder
from ledger.models.ledger import Budget, RejectionKind
from ledger.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsTransactionStorage,
    StorageError,
)
from ledger.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    BUDGET_COLUMNS,
    TRANSACTION_COLUMNS,
)
from ledger.validation import BudgetGate

from helpers import make_transaction


class FakeWorksheet:
    """The subset of gspread.Worksheet the stores use."""

    def __init__(self, rows):
        self.rows = [list(row) for row in rows]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def update_cell(self, row, col, value):
        self.rows[row - 1][col - 1] = str(value)

    def col_values(self, col):
        return [row[col - 1] if len(row) >= col else "" for row in self.rows]


class FakeSheetsClient:

    def __init__(self, budgets=(), transactions=(), audit=()):
        self.budgets = FakeWorksheet([BUDGET_COLUMNS, *budgets])
        self.transactions = FakeWorksheet([TRANSACTION_COLUMNS, *transactions])
        self.audit = FakeWorksheet([AUDIT_COLUMNS, *audit])

    def get_budgets_sheet(self):
        return self.budgets

    def get_transactions_sheet(self):
        return self.transactions

    def get_audit_sheet(self):
        return self.audit


def sheets_engine(client: FakeSheetsClient) -> BulkIngestionEngine:
    transactions = GoogleSheetsTransactionStorage(client)
    gate = BudgetGate(GoogleSheetsBudgetStorage(client), transactions)
    return BulkIngestionEngine(gate, transactions)


class TestBudgetSheet:

    @pytest.mark.asyncio
    async def test_upsert_appends_new_category(self):
        client = FakeSheetsClient(budgets=[["Food", "500.0"]])
        storage = GoogleSheetsBudgetStorage(client)

        await storage.upsert_budget(Budget(category="Rent", limit=1200))

        assert client.budgets.rows[-1] == ["Rent", "1200.0"]
        assert (await storage.get_budget("Rent")).limit == 1200

    @pytest.mark.asyncio
    async def test_upsert_overwrites_in_place(self):
        client = FakeSheetsClient(budgets=[["Food", "500.0"], ["Rent", "900.0"]])
        storage = GoogleSheetsBudgetStorage(client)

        await storage.upsert_budget(Budget(category="Food", limit=50))

        assert len(client.budgets.rows) == 3
        assert client.budgets.rows[1] == ["Food", "50.0"]
        assert (await storage.get_budget("Food")).limit == 50

    @pytest.mark.asyncio
    async def test_missing_category(self):
        storage = GoogleSheetsBudgetStorage(FakeSheetsClient(budgets=[["Food", "500"]]))
        assert await storage.get_budget("Travel") is None

    @pytest.mark.asyncio
    async def test_malformed_limit_raises_storage_error(self):
        storage = GoogleSheetsBudgetStorage(FakeSheetsClient(budgets=[["Food", "abc"]]))
        with pytest.raises(StorageError, match="could not convert"):
            await storage.get_budget("Food")

    @pytest.mark.asyncio
    async def test_list_skips_malformed_rows(self):
        client = FakeSheetsClient(budgets=[["Rent", "900"], ["Food", "abc"], ["Fun", "50"]])
        budgets = await GoogleSheetsBudgetStorage(client).list_budgets()
        assert [b.category for b in budgets] == ["Fun", "Rent"]

    @pytest.mark.asyncio
    async def test_commit_with_malformed_limit_raises_storage_error(self):
        client = FakeSheetsClient(budgets=[["Food", "abc"]])

        with pytest.raises(StorageError, match="could not convert"):
            await sheets_engine(client).commit_one(make_transaction(10))

        assert len(client.transactions.rows) == 1


class TestTransactionSheet:

    @pytest.mark.asyncio
    async def test_insert_allocates_next_id(self):
        client = FakeSheetsClient(
            transactions=[
                ["3", "10.0", "Food", "", "2025-03-01"],
                ["7", "20.0", "Food", "", "2025-03-02"],
            ]
        )
        storage = GoogleSheetsTransactionStorage(client)

        new_id = await storage.insert_transaction(make_transaction(5, description="tea"))

        assert new_id == 8
        assert client.transactions.rows[-1] == ["8", "5.0", "Food", "tea", "2025-03-10"]
        assert (await storage.get_transaction(8)).description == "tea"

    @pytest.mark.asyncio
    async def test_concurrent_inserts_get_distinct_ids(self):
        storage = GoogleSheetsTransactionStorage(FakeSheetsClient())

        ids = await asyncio.gather(
            *(storage.insert_transaction(make_transaction(1)) for _ in range(5))
        )

        assert sorted(ids) == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_sum_and_discovery_respect_range(self):
        storage = GoogleSheetsTransactionStorage(
            FakeSheetsClient(
                transactions=[
                    ["1", "100", "Food", "", "2025-02-28"],
                    ["2", "40", "Food", "", "2025-03-01"],
                    ["3", "60", "Food", "", "2025-03-31"],
                    ["4", "900", "Rent", "", "2025-04-01"],
                ]
            )
        )
        march = (date(2025, 3, 1), date(2025, 3, 31))

        assert await storage.sum_by_category("Food", *march) == 100
        assert await storage.sum_by_category("Food") == 200
        assert await storage.list_distinct_categories(*march) == {"Food"}

    @pytest.mark.asyncio
    async def test_list_is_newest_first(self):
        storage = GoogleSheetsTransactionStorage(
            FakeSheetsClient(
                transactions=[
                    ["1", "1", "Food", "", "2025-03-01"],
                    ["2", "2", "Food", "", "2025-03-20"],
                    ["3", "3", "Food", "", "2025-03-01"],
                ]
            )
        )
        listed = await storage.list_transactions()
        assert [t.id for t in listed] == [2, 3, 1]


class TestMalformedTransactionRows:
    """A row that cannot be parsed must never be counted as zero."""

    ROWS = [
        ["1", "700", "Food", "", "2025-03-01"],
        ["2", "900", "Food", "", "2025/03/02"],
    ]

    @pytest.mark.asyncio
    async def test_sum_raises(self):
        storage = GoogleSheetsTransactionStorage(FakeSheetsClient(transactions=self.ROWS))
        with pytest.raises(StorageError, match="row 3"):
            await storage.sum_by_category("Food")

    @pytest.mark.asyncio
    async def test_discovery_raises(self):
        storage = GoogleSheetsTransactionStorage(FakeSheetsClient(transactions=self.ROWS))
        with pytest.raises(StorageError):
            await storage.list_distinct_categories(date(2025, 3, 1), date(2025, 3, 31))

    @pytest.mark.asyncio
    async def test_listing_skips_the_row(self):
        storage = GoogleSheetsTransactionStorage(FakeSheetsClient(transactions=self.ROWS))
        listed = await storage.list_transactions()
        assert [t.id for t in listed] == [1]

    @pytest.mark.asyncio
    async def test_gate_does_not_admit_past_the_limit(self):
        client = FakeSheetsClient(budgets=[["Food", "1000"]], transactions=self.ROWS)
        engine = sheets_engine(client)

        result = await engine.bulk_add([make_transaction(200)])

        assert result.accepted == 0
        assert "Malformed transaction row 3" in result.errors[0]
        with pytest.raises(StorageError):
            await engine.commit_one(make_transaction(200))
        assert len(client.transactions.rows) == 3

    @pytest.mark.asyncio
    async def test_well_formed_sheet_still_admits(self):
        client = FakeSheetsClient(budgets=[["Food", "1000"]], transactions=self.ROWS[:1])
        engine = sheets_engine(client)

        with pytest.raises(AdmissionRejectedError) as exc_info:
            await engine.commit_one(make_transaction(301))
        committed = await engine.commit_one(make_transaction(300))

        assert exc_info.value.kind == RejectionKind.BUDGET_EXCEEDED
        assert committed.id == 2


class TestAuditSheet:

    @pytest.mark.asyncio
    async def test_append_and_lookup_by_correlation_id(self):
        client = FakeSheetsClient()
        storage = GoogleSheetsAuditStorage(client)
        correlation_id = uuid4()
        event = AuditEventBuilder.bulk_started(
            batch_size=3, worker_count=2, correlation_id=correlation_id
        )

        await storage.append_event(event)
        await storage.append_event(AuditEventBuilder.budget_set("Food", 100))

        found = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_id for e in found] == [event.event_id]
        assert found[0].details == event.details
        assert len(await storage.get_recent_events()) == 2

    @pytest.mark.asyncio
    async def test_unreadable_rows_are_skipped(self):
        client = FakeSheetsClient(audit=[["not-a-uuid", "yesterday", "budget_set"]])
        storage = GoogleSheetsAuditStorage(client)
        assert await storage.get_recent_events() == []
