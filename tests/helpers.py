"""
Builders and store doubles shared by the test modules.

All tests run against the in-memory stores; failures are injected
with small store subclasses rather than real backends.
"""

from datetime import date
from typing import Optional

from ledger.config import SpendScope
from ledger.ingestion import BulkIngestionEngine
from ledger.models.ledger import Budget, Transaction
from ledger.services.storage import (
    InMemoryBudgetStorage,
    InMemoryTransactionStorage,
    StorageError,
)
from ledger.validation import BudgetGate


MARCH_10 = date(2025, 3, 10)


def make_transaction(
    amount: float,
    category: str = "Food",
    day: date = MARCH_10,
    description: str = "",
) -> Transaction:
    return Transaction(amount=amount, category=category, date=day, description=description)


class FailingInsertStorage(InMemoryTransactionStorage):
    """Fails every insert for one category."""

    def __init__(self, failing_category: str, latency: float = 0.0):
        super().__init__(latency=latency)
        self._failing_category = failing_category

    async def insert_transaction(self, transaction: Transaction) -> int:
        if transaction.category == self._failing_category:
            raise StorageError("insert failed: disk full")
        return await super().insert_transaction(transaction)


class CountingTransactionStorage(InMemoryTransactionStorage):
    """Counts calls to the aggregation queries."""

    def __init__(self, latency: float = 0.0):
        super().__init__(latency=latency)
        self.discovery_calls = 0
        self.sum_calls: list[str] = []

    async def list_distinct_categories(self, date_from, date_to):
        self.discovery_calls += 1
        return await super().list_distinct_categories(date_from, date_to)

    async def sum_by_category(self, category, date_from=None, date_to=None):
        self.sum_calls.append(category)
        return await super().sum_by_category(category, date_from, date_to)


async def seed(
    budgets: InMemoryBudgetStorage,
    transactions: InMemoryTransactionStorage,
    limits: dict[str, float],
    spent: Optional[list[Transaction]] = None,
) -> None:
    for category, limit in limits.items():
        await budgets.upsert_budget(Budget(category=category, limit=limit))
    for transaction in spent or []:
        await transactions.insert_transaction(transaction)


def build_engine(
    budgets: InMemoryBudgetStorage,
    transactions: InMemoryTransactionStorage,
    spend_scope: SpendScope = SpendScope.MONTH,
    serialize_admissions: bool = False,
    audit_logger=None,
) -> BulkIngestionEngine:
    gate = BudgetGate(budgets, transactions, spend_scope=spend_scope)
    return BulkIngestionEngine(
        gate,
        transactions,
        audit_logger=audit_logger,
        serialize_admissions=serialize_admissions,
    )
