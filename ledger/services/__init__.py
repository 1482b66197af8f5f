"""Services package."""

from ledger.services.cache import (
    CacheError,
    CacheInterface,
    InMemoryCache,
)
from ledger.services.storage import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsBudgetStorage,
    GoogleSheetsClient,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryTransactionStorage,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    # Cache services
    "CacheError",
    "CacheInterface",
    "InMemoryCache",
    # Storage services
    "AuditStorageInterface",
    "BudgetStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBudgetStorage",
    "GoogleSheetsClient",
    "GoogleSheetsTransactionStorage",
    "InMemoryAuditStorage",
    "InMemoryBudgetStorage",
    "InMemoryTransactionStorage",
    "StorageError",
    "TransactionStorageInterface",
]
