"""Shared fixtures for Budget Ledger tests."""

import pytest

from ledger.services.storage import InMemoryBudgetStorage, InMemoryTransactionStorage


@pytest.fixture
def budget_storage() -> InMemoryBudgetStorage:
    return InMemoryBudgetStorage()


@pytest.fixture
def transaction_storage() -> InMemoryTransactionStorage:
    return InMemoryTransactionStorage()
