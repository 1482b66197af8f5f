"""
End-to-end tests through LedgerService, wired by create_app_components
against in-memory stores.
"""

from datetime import date

import pytest

from ledger.config import SpendScope, StorageBackend, get_settings, validate_all_settings
from ledger.errors import AdmissionRejectedError
from ledger.models.ledger import Budget, RejectionKind
from ledger.orchestrator import LedgerService, create_app_components

from helpers import make_transaction


@pytest.fixture
def clean_env(monkeypatch):
    for name in [
        "LEDGER_STORAGE_BACKEND",
        "LEDGER_BULK_WORKER_COUNT",
        "LEDGER_SPEND_SCOPE",
        "LEDGER_SERIALIZE_ADMISSIONS",
        "LEDGER_SUMMARY_CACHE_TTL_SECONDS",
        "LEDGER_DEDUPE_INFLIGHT_SUMMARIES",
        "LOG_LEVEL",
    ]:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture
def service(clean_env) -> LedgerService:
    service, sheets_client = create_app_components(use_storage=False)
    assert sheets_client is None
    return service


class TestSettings:

    def test_defaults(self, clean_env):
        ledger_settings = get_settings().ledger
        assert ledger_settings.storage_backend == StorageBackend.MEMORY
        assert ledger_settings.bulk_worker_count == 4
        assert ledger_settings.spend_scope == SpendScope.MONTH
        assert ledger_settings.serialize_admissions is False
        assert ledger_settings.summary_cache_ttl_seconds == 30
        assert ledger_settings.summary_cache_prefix == "report:summary"

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("LEDGER_SPEND_SCOPE", "lifetime")
        clean_env.setenv("LEDGER_BULK_WORKER_COUNT", "8")
        clean_env.setenv("LEDGER_SERIALIZE_ADMISSIONS", "true")

        ledger_settings = get_settings().ledger

        assert ledger_settings.spend_scope == SpendScope.LIFETIME
        assert ledger_settings.bulk_worker_count == 8
        assert ledger_settings.serialize_admissions is True

    def test_invalid_worker_count_reported(self, clean_env):
        clean_env.setenv("LEDGER_BULK_WORKER_COUNT", "0")
        results = validate_all_settings()
        assert results["ledger"] is False
        assert "ledger_error" in results

    def test_memory_backend_skips_sheets_check(self, clean_env):
        results = validate_all_settings()
        assert results["ledger"] is True
        assert results["app"] is True
        assert "google_sheets" not in results


class TestBudgets:

    @pytest.mark.asyncio
    async def test_add_get_list(self, service):
        await service.budget_add(Budget(category="Food", limit=500))
        await service.budget_add(Budget(category="Rent", limit=1200))

        assert (await service.budget_get("Food")).limit == 500
        assert await service.budget_get("Travel") is None
        budgets = await service.budgets_list()
        assert set(budgets) == {"Food", "Rent"}
        assert budgets["Rent"].limit == 1200

    @pytest.mark.asyncio
    async def test_add_replaces_limit(self, service):
        await service.budget_add(Budget(category="Food", limit=500))
        await service.budget_add(Budget(category="Food", limit=50))
        assert (await service.budget_get("Food")).limit == 50
        assert len(await service.budgets_list()) == 1


class TestTransactions:

    @pytest.mark.asyncio
    async def test_add_returns_id(self, service):
        await service.budget_add(Budget(category="Food", limit=500))

        first = await service.transaction_add(make_transaction(20))
        second = await service.transaction_add(make_transaction(30))

        assert (first, second) == (1, 2)
        stored = await service.transaction_get(second)
        assert stored.amount == 30
        assert await service.transaction_get(99) is None

    @pytest.mark.asyncio
    async def test_rejection_raises(self, service):
        with pytest.raises(AdmissionRejectedError) as exc_info:
            await service.transaction_add(make_transaction(20, category="Unknown"))
        assert exc_info.value.kind == RejectionKind.NO_BUDGET_CATEGORY
        assert await service.transactions_list() == []

    @pytest.mark.asyncio
    async def test_list_is_newest_first(self, service):
        await service.budget_add(Budget(category="Food", limit=10_000))
        await service.transaction_add(make_transaction(1, day=date(2025, 3, 1)))
        await service.transaction_add(make_transaction(2, day=date(2025, 3, 20)))
        await service.transaction_add(make_transaction(3, day=date(2025, 3, 1)))

        listed = await service.transactions_list()

        assert [t.amount for t in listed] == [2, 3, 1]

    @pytest.mark.asyncio
    async def test_bulk_uses_configured_workers(self, service):
        await service.budget_add(Budget(category="Food", limit=100))

        result = await service.bulk_add(
            [make_transaction(60), make_transaction(-1), make_transaction(10)]
        )

        assert result.accepted == 2
        assert result.errors == {1: "invalid transaction"}


class TestReports:

    @pytest.mark.asyncio
    async def test_summary_and_invalidate(self, service):
        await service.budget_add(Budget(category="Food", limit=1000))
        await service.budget_add(Budget(category="Rent", limit=1000))
        await service.transaction_add(make_transaction(40, "Food"))
        await service.transaction_add(make_transaction(700, "Rent"))
        march = (date(2025, 3, 1), date(2025, 3, 31))

        first = await service.get_summary(*march)
        await service.transaction_add(make_transaction(10, "Food"))
        stale = await service.get_summary(*march)
        await service.invalidate_summary(*march)
        fresh = await service.get_summary(*march)

        assert first.categories == {"Food": 40, "Rent": 700}
        assert stale.from_cache is True
        assert stale.categories == first.categories
        assert fresh.from_cache is False
        assert fresh.categories == {"Food": 50, "Rent": 700}
