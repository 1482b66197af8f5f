"""
Budget Gate - Single-Transaction Admission Check

DESIGN DECISION: Admission happens in two distinct stages:

STAGE 1 - SHAPE VALIDATION:
- Amount strictly positive
- Category non-empty
- Needs no storage; a malformed transaction never touches a store

STAGE 2 - BUDGET VALIDATION:
- A budget must be configured for the category
- Already-spent amount in the configured period plus this amount
  must not exceed the limit (the boundary is inclusive)

IMPORTANT: The gate only decides. It never writes; the caller commits.
Because deciding and committing are separate store calls, two callers
can both be admitted against the same stale spend. Callers that need
serialization hold a per-category lock around admit + commit.
"""

import calendar
from datetime import date
from typing import Optional

import structlog

from ledger.config import SpendScope
from ledger.models.ledger import AdmissionDecision, RejectionKind, Transaction
from ledger.services.storage import (
    BudgetStorageInterface,
    TransactionStorageInterface,
)


logger = structlog.get_logger(__name__)


def month_bounds(day: date) -> tuple[date, date]:
    """First and last day of the calendar month containing day."""
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


class BudgetGate:
    """
    Decides whether a transaction may be committed.

    Stage 1: Shape validation (no storage)
    Stage 2: Budget validation (budget and transaction stores)
    """

    def __init__(
        self,
        budget_storage: BudgetStorageInterface,
        transaction_storage: TransactionStorageInterface,
        spend_scope: SpendScope = SpendScope.MONTH,
    ):
        self._budgets = budget_storage
        self._transactions = transaction_storage
        self._spend_scope = spend_scope

    @property
    def spend_scope(self) -> SpendScope:
        return self._spend_scope

    def spend_window(self, transaction: Transaction) -> tuple[Optional[date], Optional[date]]:
        """Date range whose committed spend counts against this transaction."""
        if self._spend_scope == SpendScope.MONTH:
            return month_bounds(transaction.date)
        return None, None

    def _validate_shape(self, transaction: Transaction) -> Optional[AdmissionDecision]:
        """Stage 1. Returns a rejection, or None when the shape is fine."""
        if not transaction.is_well_formed:
            return AdmissionDecision.reject(RejectionKind.INVALID_TRANSACTION)
        return None

    async def _validate_budget(self, transaction: Transaction) -> AdmissionDecision:
        """Stage 2. Any lookup failure becomes a rejection carrying its message."""
        try:
            budget = await self._budgets.get_budget(transaction.category)
        except Exception as e:
            logger.warning(
                "budget_lookup_failed",
                category=transaction.category,
                error=str(e),
            )
            return AdmissionDecision.reject(RejectionKind.STORE_ERROR, reason=str(e))

        if budget is None:
            return AdmissionDecision.reject(RejectionKind.NO_BUDGET_CATEGORY)

        date_from, date_to = self.spend_window(transaction)
        try:
            spent = await self._transactions.sum_by_category(
                transaction.category,
                date_from=date_from,
                date_to=date_to,
            )
        except Exception as e:
            logger.warning(
                "spend_lookup_failed",
                category=transaction.category,
                error=str(e),
            )
            return AdmissionDecision.reject(
                RejectionKind.STORE_ERROR, reason=str(e), limit=budget.limit
            )

        if spent + transaction.amount > budget.limit:
            return AdmissionDecision.reject(
                RejectionKind.BUDGET_EXCEEDED,
                limit=budget.limit,
                spent=spent,
            )

        return AdmissionDecision.accept(limit=budget.limit, spent=spent)

    async def admit(self, transaction: Transaction) -> AdmissionDecision:
        """
        Run both stages for one transaction.

        Never raises for lookup failures; they surface as a rejection
        of kind STORE_ERROR whose reason is the failure message.
        """
        rejection = self._validate_shape(transaction)
        if rejection is not None:
            return rejection
        return await self._validate_budget(transaction)
