"""
In-Memory Storage Implementation

Used for tests and for running the ledger without a configured
backend. Data lives only as long as the process.

Every operation awaits an optional artificial latency before touching
the data. With a non-zero latency, concurrent callers interleave the
same way they would against a networked store, which makes the
unserialized check-then-act window observable in tests.
"""

import asyncio
from datetime import date
from itertools import count
from typing import Optional
from uuid import UUID

from ledger.models.ledger import Budget, Transaction
from ledger.models.audit import AuditEvent
from ledger.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    TransactionStorageInterface,
)


class InMemoryBudgetStorage(BudgetStorageInterface):
    """Budgets kept in a dict keyed by category."""

    def __init__(self, latency: float = 0.0):
        self._budgets: dict[str, Budget] = {}
        self._latency = latency

    async def get_budget(self, category: str) -> Optional[Budget]:
        await asyncio.sleep(self._latency)
        budget = self._budgets.get(category)
        return budget.model_copy() if budget else None

    async def upsert_budget(self, budget: Budget) -> bool:
        await asyncio.sleep(self._latency)
        self._budgets[budget.category] = budget.model_copy()
        return True

    async def list_budgets(self) -> list[Budget]:
        await asyncio.sleep(self._latency)
        return [self._budgets[c].model_copy() for c in sorted(self._budgets)]


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Transactions kept in insertion order; ids start at 1."""

    def __init__(self, latency: float = 0.0):
        self._transactions: list[Transaction] = []
        self._ids = count(1)
        self._latency = latency

    async def insert_transaction(self, transaction: Transaction) -> int:
        await asyncio.sleep(self._latency)
        transaction_id = next(self._ids)
        self._transactions.append(transaction.with_id(transaction_id))
        return transaction_id

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        await asyncio.sleep(self._latency)
        for transaction in self._transactions:
            if transaction.id == transaction_id:
                return transaction
        return None

    async def sum_by_category(
        self,
        category: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> float:
        await asyncio.sleep(self._latency)
        return sum(
            t.amount
            for t in self._transactions
            if t.category == category and _in_range(t.date, date_from, date_to)
        )

    async def list_distinct_categories(
        self,
        date_from: date,
        date_to: date,
    ) -> set[str]:
        await asyncio.sleep(self._latency)
        return {
            t.category
            for t in self._transactions
            if _in_range(t.date, date_from, date_to)
        }

    async def list_transactions(self) -> list[Transaction]:
        await asyncio.sleep(self._latency)
        return sorted(
            self._transactions,
            key=lambda t: (t.date, t.id),
            reverse=True,
        )


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]


def _in_range(value: date, date_from: Optional[date], date_to: Optional[date]) -> bool:
    if date_from and value < date_from:
        return False
    if date_to and value > date_to:
        return False
    return True
