"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for the ledger's stores.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the ingestion engine and the aggregator decoupled from storage

The interfaces are intentionally small - only the operations the
ledger core needs. Each call is expected to be independently atomic;
nothing here offers transactions spanning several calls.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from ledger.models.ledger import Budget, Transaction
from ledger.models.audit import AuditEvent


class BudgetStorageInterface(ABC):
    """
    Abstract interface for category budgets.

    At most one budget exists per category.
    """

    @abstractmethod
    async def get_budget(self, category: str) -> Optional[Budget]:
        """
        Retrieve the budget for a category.

        Returns:
            The budget if configured, None otherwise

        Raises:
            StorageError: If the lookup itself fails
        """
        pass

    @abstractmethod
    async def upsert_budget(self, budget: Budget) -> bool:
        """
        Insert a budget or replace the limit of an existing one.

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def list_budgets(self) -> list[Budget]:
        """List all budgets ordered by category."""
        pass


class TransactionStorageInterface(ABC):
    """
    Abstract interface for committed transactions.

    Committed transactions are immutable.
    """

    @abstractmethod
    async def insert_transaction(self, transaction: Transaction) -> int:
        """
        Commit a transaction.

        Returns:
            The id assigned to the transaction

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Retrieve a committed transaction by id, None if absent."""
        pass

    @abstractmethod
    async def sum_by_category(
        self,
        category: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> float:
        """
        Sum the amounts committed in a category.

        Args:
            category: Category to sum
            date_from: Inclusive lower bound (None = unbounded)
            date_to: Inclusive upper bound (None = unbounded)

        Returns:
            Total amount, 0.0 if nothing matches
        """
        pass

    @abstractmethod
    async def list_distinct_categories(
        self,
        date_from: date,
        date_to: date,
    ) -> set[str]:
        """Categories with at least one transaction dated within [date_from, date_to]."""
        pass

    @abstractmethod
    async def list_transactions(self) -> list[Transaction]:
        """List all transactions, newest date first, then highest id first."""
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
        """
        Get all events for a correlation ID (e.g., one bulk call).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
