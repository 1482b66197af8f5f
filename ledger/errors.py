"""
Ledger Exceptions

Call-level failures of the ledger core. Per-item failures of a bulk
submission are never raised; they are reported in BulkResult.errors.
Store and cache failures have their own hierarchies in ledger.services.
"""

from typing import Optional

from ledger.models.ledger import RejectionKind


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class AdmissionRejectedError(LedgerError):
    """The budget gate refused a single transaction."""

    def __init__(self, kind: RejectionKind, reason: Optional[str] = None):
        self.kind = kind
        self.reason = reason or kind.value
        super().__init__(self.reason)


class SummaryAggregationError(LedgerError):
    """A per-category sum failed while building a summary."""

    def __init__(self, category: str, message: str):
        self.category = category
        super().__init__(f"failed to sum category {category!r}: {message}")


class OperationCancelledError(LedgerError):
    """A cancellation signal fired before the operation finished."""
    pass


class InvalidDateRangeError(LedgerError, ValueError):
    """The start of a date range is after its end."""
    pass
