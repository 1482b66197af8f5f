"""
Core Data Models for Budget Ledger

These models define the schemas for all data flowing through the ledger.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Transaction amounts and categories are NOT constrained
at construction. A bulk submission may legitimately contain a negative
amount; the budget gate is the place that rejects it, so the rejection
shows up in the per-item accounting instead of as a construction error.
Budgets, on the other hand, are constrained at construction.
"""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================

class RejectionKind(str, Enum):
    """
    Why the budget gate refused a transaction.

    The string values double as the exact rejection reasons reported
    to callers, except STORE_ERROR which carries the store's message.
    """
    INVALID_TRANSACTION = "invalid transaction"
    NO_BUDGET_CATEGORY = "no budget category"
    BUDGET_EXCEEDED = "budget exceeded"
    STORE_ERROR = "store error"


# Reported for bulk jobs that were never started because the batch was cancelled
CANCELLED_REASON = "cancelled"


# =============================================================================
# LEDGER ENTITIES
# =============================================================================

class Transaction(BaseModel):
    """
    A single recorded expense.

    id is 0 until the transaction store assigns one on commit.
    Instances are frozen; committing produces a copy with the new id.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: int = Field(
        default=0,
        ge=0,
        description="Store-assigned id (0 before commit)"
    )
    amount: float = Field(
        ...,
        description="Amount spent; must be > 0 to be admitted"
    )
    category: str = Field(
        ...,
        max_length=200,
        description="Budget category; must be non-empty to be admitted"
    )
    description: str = Field(
        default="",
        max_length=1000,
    )
    date: dt.date = Field(
        default_factory=dt.date.today,
        description="Date of the expense (YYYY-MM-DD)"
    )

    @property
    def is_well_formed(self) -> bool:
        """Shape check used by the budget gate."""
        return self.amount > 0 and bool(self.category)

    def with_id(self, transaction_id: int) -> "Transaction":
        return self.model_copy(update={"id": transaction_id})


class Budget(BaseModel):
    """
    Spending limit for one category.

    At most one budget exists per category; setting a budget
    for an existing category replaces its limit.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    category: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Category this limit applies to (unique)"
    )
    limit: float = Field(
        ...,
        gt=0,
        description="Maximum spend allowed in the category"
    )


# =============================================================================
# ADMISSION
# =============================================================================

class AdmissionDecision(BaseModel):
    """Outcome of running one transaction through the budget gate."""

    accepted: bool
    kind: Optional[RejectionKind] = None
    reason: Optional[str] = None

    # What the decision was based on (absent when the gate stopped early)
    limit: Optional[float] = None
    spent: Optional[float] = None

    @classmethod
    def accept(cls, limit: float, spent: float) -> "AdmissionDecision":
        return cls(accepted=True, limit=limit, spent=spent)

    @classmethod
    def reject(
        cls,
        kind: RejectionKind,
        reason: Optional[str] = None,
        limit: Optional[float] = None,
        spent: Optional[float] = None,
    ) -> "AdmissionDecision":
        return cls(
            accepted=False,
            kind=kind,
            reason=reason or kind.value,
            limit=limit,
            spent=spent,
        )


# =============================================================================
# BULK INGESTION
# =============================================================================

class BulkJob(BaseModel):
    """
    One transaction of a bulk submission.

    index is the position in the submitted batch, not a sequence id.
    """

    index: int = Field(..., ge=0)
    transaction: Transaction


class JobOutcome(BaseModel):
    """What happened to one bulk job."""

    index: int = Field(..., ge=0)
    accepted: bool
    error_message: str = ""


class BulkResult(BaseModel):
    """
    Full accounting of a bulk submission.

    errors maps batch index -> rejection reason. Only the association
    between index and message is meaningful, not insertion order.
    """

    accepted: int = 0
    rejected: int = 0
    errors: dict[int, str] = Field(default_factory=dict)
    cancelled: bool = Field(
        default=False,
        description="True when a cancellation signal cut the batch short"
    )

    @property
    def total(self) -> int:
        return self.accepted + self.rejected


# =============================================================================
# REPORTING
# =============================================================================

class Summary(BaseModel):
    """Per-category totals for a date range."""

    categories: dict[str, float] = Field(default_factory=dict)
    from_cache: bool = False
