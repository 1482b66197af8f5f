"""Tests for the budget gate admission check."""

from datetime import date
from unittest.mock import AsyncMock

import pytest

from ledger.config import SpendScope
from ledger.models.ledger import Budget, RejectionKind
from ledger.services.storage import (
    BudgetStorageInterface,
    InMemoryTransactionStorage,
    StorageError,
)
from ledger.validation import BudgetGate, month_bounds

from helpers import make_transaction, seed


class TestMonthBounds:

    def test_regular_month(self):
        assert month_bounds(date(2025, 3, 10)) == (date(2025, 3, 1), date(2025, 3, 31))

    def test_leap_february(self):
        assert month_bounds(date(2024, 2, 29)) == (date(2024, 2, 1), date(2024, 2, 29))


class TestShapeValidation:
    """Stage 1: malformed transactions never reach the stores."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5, -0.01])
    async def test_non_positive_amount_rejected(self, amount):
        budgets = AsyncMock(spec=BudgetStorageInterface)
        gate = BudgetGate(budgets, InMemoryTransactionStorage())

        decision = await gate.admit(make_transaction(amount))

        assert decision.accepted is False
        assert decision.reason == "invalid transaction"
        budgets.get_budget.assert_not_called()

    @pytest.mark.asyncio
    async def test_empty_category_rejected(self, budget_storage, transaction_storage):
        gate = BudgetGate(budget_storage, transaction_storage)
        decision = await gate.admit(make_transaction(10, category=""))
        assert decision.kind == RejectionKind.INVALID_TRANSACTION


class TestBudgetValidation:
    """Stage 2: limit and spend checks."""

    @pytest.mark.asyncio
    async def test_missing_budget(self, budget_storage, transaction_storage):
        gate = BudgetGate(budget_storage, transaction_storage)
        decision = await gate.admit(make_transaction(50, category="Unknown"))
        assert decision.accepted is False
        assert decision.reason == "no budget category"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "amount, accepted",
        [(299.99, True), (300, True), (301, False)],
    )
    async def test_limit_boundary_is_inclusive(
        self, budget_storage, transaction_storage, amount, accepted
    ):
        """Limit 1000, prior spend 700."""
        await seed(
            budget_storage,
            transaction_storage,
            {"Food": 1000},
            spent=[make_transaction(700)],
        )
        gate = BudgetGate(budget_storage, transaction_storage)

        decision = await gate.admit(make_transaction(amount))

        assert decision.accepted is accepted
        assert decision.spent == 700
        assert decision.limit == 1000
        if not accepted:
            assert decision.reason == "budget exceeded"

    @pytest.mark.asyncio
    async def test_gate_does_not_write(self, budget_storage, transaction_storage):
        await seed(budget_storage, transaction_storage, {"Food": 1000})
        gate = BudgetGate(budget_storage, transaction_storage)

        await gate.admit(make_transaction(100))

        assert await transaction_storage.list_transactions() == []

    @pytest.mark.asyncio
    async def test_budget_lookup_error_is_reported_verbatim(self, transaction_storage):
        budgets = AsyncMock(spec=BudgetStorageInterface)
        budgets.get_budget.side_effect = StorageError("connection refused")
        gate = BudgetGate(budgets, transaction_storage)

        decision = await gate.admit(make_transaction(10))

        assert decision.accepted is False
        assert decision.kind == RejectionKind.STORE_ERROR
        assert decision.reason == "connection refused"

    @pytest.mark.asyncio
    async def test_spend_lookup_error_is_reported_verbatim(self, budget_storage):
        await budget_storage.upsert_budget(Budget(category="Food", limit=100))
        transactions = AsyncMock(spec=InMemoryTransactionStorage)
        transactions.sum_by_category.side_effect = StorageError("query timeout")
        gate = BudgetGate(budget_storage, transactions)

        decision = await gate.admit(make_transaction(10))

        assert decision.kind == RejectionKind.STORE_ERROR
        assert decision.reason == "query timeout"

    @pytest.mark.asyncio
    async def test_unexpected_lookup_error_is_reported_verbatim(self, transaction_storage):
        """A store that fails with something other than StorageError."""
        budgets = AsyncMock(spec=BudgetStorageInterface)
        budgets.get_budget.side_effect = ValueError("could not convert string to float: 'abc'")
        gate = BudgetGate(budgets, transaction_storage)

        decision = await gate.admit(make_transaction(10))

        assert decision.kind == RejectionKind.STORE_ERROR
        assert decision.reason == "could not convert string to float: 'abc'"


class TestSpendScope:
    """Which prior transactions count against the limit."""

    async def _seeded(self, budget_storage, transaction_storage):
        await seed(
            budget_storage,
            transaction_storage,
            {"Food": 1000},
            spent=[
                make_transaction(600, day=date(2025, 2, 20)),
                make_transaction(300, day=date(2025, 3, 1)),
            ],
        )

    @pytest.mark.asyncio
    async def test_month_scope_ignores_other_months(self, budget_storage, transaction_storage):
        await self._seeded(budget_storage, transaction_storage)
        gate = BudgetGate(budget_storage, transaction_storage, spend_scope=SpendScope.MONTH)

        decision = await gate.admit(make_transaction(500, day=date(2025, 3, 31)))

        assert decision.accepted is True
        assert decision.spent == 300

    @pytest.mark.asyncio
    async def test_lifetime_scope_counts_everything(self, budget_storage, transaction_storage):
        await self._seeded(budget_storage, transaction_storage)
        gate = BudgetGate(budget_storage, transaction_storage, spend_scope=SpendScope.LIFETIME)

        decision = await gate.admit(make_transaction(500, day=date(2025, 3, 31)))

        assert decision.accepted is False
        assert decision.spent == 900
        assert decision.reason == "budget exceeded"
