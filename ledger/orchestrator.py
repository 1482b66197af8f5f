"""
Main Orchestrator for Budget Ledger

This module ties together all the components and defines the
ledger operations:
1. Budgets (set / get / list)
2. Transactions (single add through the budget gate / get / list)
3. Bulk add (worker pool over the budget gate)
4. Report summaries (cache-aside fan-out)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No transaction is committed without passing the budget gate
- Single adds and bulk adds share one gate, one spend scope and
  one locking policy
- Every step is audited
"""

import asyncio
from datetime import date
from typing import Optional, Sequence

import structlog

from ledger.audit import AuditLogger, create_correlation_id, set_log_level
from ledger.config import StorageBackend, get_settings
from ledger.ingestion import BulkIngestionEngine
from ledger.models.ledger import Budget, BulkResult, Summary, Transaction
from ledger.reports import SummaryAggregator
from ledger.services.cache import CacheInterface, InMemoryCache
from ledger.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryTransactionStorage,
    TransactionStorageInterface,
)
from ledger.validation import BudgetGate


logger = structlog.get_logger(__name__)


class LedgerService:
    """
    Facade over the ledger's stores and its two concurrent paths.

    Budgets and single-transaction reads are thin store calls.
    Writes go through the ingestion engine; summaries go through
    the aggregator.
    """

    def __init__(
        self,
        budget_storage: BudgetStorageInterface,
        transaction_storage: TransactionStorageInterface,
        engine: BulkIngestionEngine,
        aggregator: SummaryAggregator,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._budgets = budget_storage
        self._transactions = transaction_storage
        self._engine = engine
        self._aggregator = aggregator
        self._audit_logger = audit_logger

    @property
    def engine(self) -> BulkIngestionEngine:
        return self._engine

    @property
    def aggregator(self) -> SummaryAggregator:
        return self._aggregator

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def budget_add(self, budget: Budget) -> None:
        """Insert or replace the limit for a category."""
        await self._budgets.upsert_budget(budget)
        if self._audit_logger:
            await self._audit_logger.log_budget_set(budget.category, budget.limit)

    async def budget_get(self, category: str) -> Optional[Budget]:
        return await self._budgets.get_budget(category)

    async def budgets_list(self) -> dict[str, Budget]:
        """All budgets keyed by category."""
        budgets = await self._budgets.list_budgets()
        return {budget.category: budget for budget in budgets}

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def transaction_add(self, transaction: Transaction) -> int:
        """
        Admit and commit one transaction.

        Returns:
            The id assigned by the store

        Raises:
            AdmissionRejectedError: invalid transaction, no budget
                category, or budget exceeded
            StorageError: A store call failed
        """
        committed = await self._engine.commit_one(
            transaction,
            correlation_id=create_correlation_id(),
        )
        return committed.id

    async def transaction_get(self, transaction_id: int) -> Optional[Transaction]:
        return await self._transactions.get_transaction(transaction_id)

    async def transactions_list(self) -> list[Transaction]:
        return await self._transactions.list_transactions()

    async def bulk_add(
        self,
        transactions: Sequence[Transaction],
        worker_count: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> BulkResult:
        """See BulkIngestionEngine.bulk_add."""
        return await self._engine.bulk_add(
            transactions,
            worker_count=worker_count,
            cancel=cancel,
        )

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    async def get_summary(
        self,
        date_from: date,
        date_to: date,
        cancel: Optional[asyncio.Event] = None,
    ) -> Summary:
        """See SummaryAggregator.get_summary."""
        return await self._aggregator.get_summary(date_from, date_to, cancel=cancel)

    async def invalidate_summary(self, date_from: date, date_to: date) -> None:
        await self._aggregator.invalidate(date_from, date_to)


def create_app_components(
    use_storage: bool = True,
    cache: Optional[CacheInterface] = None,
) -> tuple[LedgerService, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the configured durable backend.
                    Set to False to force in-memory stores (testing).
        cache: Cache to use for summaries (default: process-local)

    Returns:
        (ledger_service, sheets_client)
    """
    settings = get_settings()
    set_log_level(settings.app.log_level)
    ledger_settings = settings.ledger

    sheets_client = None
    budget_storage: BudgetStorageInterface
    transaction_storage: TransactionStorageInterface
    audit_storage: AuditStorageInterface

    if use_storage and ledger_settings.storage_backend == StorageBackend.GOOGLE_SHEETS:
        try:
            sheets_client = GoogleSheetsClient()
            budget_storage = GoogleSheetsBudgetStorage(sheets_client)
            transaction_storage = GoogleSheetsTransactionStorage(sheets_client)
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None
            budget_storage = InMemoryBudgetStorage()
            transaction_storage = InMemoryTransactionStorage()
            audit_storage = InMemoryAuditStorage()
    else:
        budget_storage = InMemoryBudgetStorage()
        transaction_storage = InMemoryTransactionStorage()
        audit_storage = InMemoryAuditStorage()

    audit_logger = AuditLogger(audit_storage)

    gate = BudgetGate(
        budget_storage,
        transaction_storage,
        spend_scope=ledger_settings.spend_scope,
    )
    engine = BulkIngestionEngine(
        gate,
        transaction_storage,
        audit_logger=audit_logger,
        default_worker_count=ledger_settings.bulk_worker_count,
        serialize_admissions=ledger_settings.serialize_admissions,
    )
    aggregator = SummaryAggregator(
        transaction_storage,
        cache or InMemoryCache(),
        audit_logger=audit_logger,
        ttl_seconds=ledger_settings.summary_cache_ttl_seconds,
        key_prefix=ledger_settings.summary_cache_prefix,
        dedupe_inflight=ledger_settings.dedupe_inflight_summaries,
    )

    service = LedgerService(
        budget_storage,
        transaction_storage,
        engine,
        aggregator,
        audit_logger=audit_logger,
    )
    return service, sheets_client
