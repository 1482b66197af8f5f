"""
Report Summary Aggregator

Cache-aside read path for per-category totals over a date range.

FLOW:
1. Look up the (from, to) key in the cache; a parseable hit is returned
   as-is without touching the store
2. On a miss, ask the store which categories have transactions in range
3. Fan out one task per category, each summing that category
4. Join all tasks, write the merged map back to the cache with a TTL

FAILURE POLICY:
- Cache failures are treated as misses and never reach the caller
- A failed category discovery aborts the call with the store error
- A failed per-category sum aborts the call; a category is never
  silently reported as zero and nothing is cached

KNOWN BEHAVIOUR: the cache is not locked. Concurrent identical misses
each recompute and each write (a stampede). dedupe_inflight makes
concurrent misses for the same key share one computation instead.
"""

import asyncio
import json
from datetime import date
from typing import Optional

import structlog

from ledger.audit import AuditLogger
from ledger.errors import (
    InvalidDateRangeError,
    OperationCancelledError,
    SummaryAggregationError,
)
from ledger.models.ledger import Summary
from ledger.services.cache import CacheInterface
from ledger.services.storage import StorageError, TransactionStorageInterface


logger = structlog.get_logger(__name__)


def _consume_outcome(future: asyncio.Future) -> None:
    """Mark a finished future's exception as retrieved."""
    if not future.cancelled():
        future.exception()


class _SharedComputation:
    """One in-flight summary computation and the callers awaiting it."""

    def __init__(self, future: asyncio.Future):
        self.future = future
        self.waiters = 0
        self.abandoned = False


class SummaryAggregator:
    """
    Builds and caches per-category summaries.

    GUARANTEES:
    - Either a complete summary or an exception, never a partial map
    - Cached and fresh results are indistinguishable apart from from_cache
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        cache: CacheInterface,
        audit_logger: Optional[AuditLogger] = None,
        ttl_seconds: int = 30,
        key_prefix: str = "report:summary",
        dedupe_inflight: bool = False,
    ):
        self._transactions = transaction_storage
        self._cache = cache
        self._audit_logger = audit_logger
        self._ttl_seconds = ttl_seconds
        self._key_prefix = key_prefix
        self._dedupe_inflight = dedupe_inflight
        self._inflight: dict[str, _SharedComputation] = {}

    def cache_key(self, date_from: date, date_to: date) -> str:
        return f"{self._key_prefix}:{date_from.isoformat()}:{date_to.isoformat()}"

    # -------------------------------------------------------------------------
    # Cache access (failures degrade to a miss)
    # -------------------------------------------------------------------------

    @staticmethod
    def _decode(payload: bytes) -> Optional[dict[str, float]]:
        """Parse a cached payload; None if it is not a str -> number object."""
        try:
            data = json.loads(payload)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        categories = {}
        for category, amount in data.items():
            if isinstance(amount, bool) or not isinstance(amount, (int, float)):
                return None
            categories[category] = float(amount)
        return categories

    async def _read_cache(self, key: str) -> Optional[dict[str, float]]:
        try:
            payload = await self._cache.get(key)
        except Exception as e:
            logger.warning("summary_cache_get_failed", key=key, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_cache_error("get", key, str(e))
            return None

        if payload is None:
            return None
        categories = self._decode(payload)
        if categories is None:
            logger.warning("summary_cache_payload_unparseable", key=key)
        return categories

    async def _write_cache(self, key: str, categories: dict[str, float]) -> None:
        payload = json.dumps(categories, sort_keys=True).encode("utf-8")
        try:
            await self._cache.set(key, payload, self._ttl_seconds)
        except Exception as e:
            logger.warning("summary_cache_set_failed", key=key, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_cache_error("set", key, str(e))

    async def invalidate(self, date_from: date, date_to: date) -> None:
        """Drop the cached summary for one range, if any."""
        key = self.cache_key(date_from, date_to)
        try:
            await self._cache.delete(key)
        except Exception as e:
            logger.warning("summary_cache_delete_failed", key=key, error=str(e))
            if self._audit_logger:
                await self._audit_logger.log_cache_error("delete", key, str(e))

    # -------------------------------------------------------------------------
    # Store fan-out
    # -------------------------------------------------------------------------

    async def _fan_out(
        self,
        categories: list[str],
        date_from: date,
        date_to: date,
        cancel: Optional[asyncio.Event],
    ) -> dict[str, float]:
        """
        Sum every category concurrently and join.

        The first failing category cancels the rest. A fired cancel
        event cancels all outstanding queries.
        """
        totals: dict[str, float] = {}
        totals_lock = asyncio.Lock()

        async def sum_category(category: str) -> None:
            try:
                amount = await self._transactions.sum_by_category(
                    category,
                    date_from=date_from,
                    date_to=date_to,
                )
            except Exception as e:
                raise SummaryAggregationError(category, str(e)) from e
            async with totals_lock:
                totals[category] = amount

        if cancel is not None and cancel.is_set():
            raise OperationCancelledError("summary aggregation cancelled")
        if not categories:
            return totals

        tasks = [
            asyncio.create_task(sum_category(c), name=f"summary-sum-{c}")
            for c in categories
        ]
        barrier = asyncio.gather(*tasks)
        barrier.add_done_callback(_consume_outcome)
        stop = asyncio.ensure_future(cancel.wait()) if cancel is not None else None

        try:
            waiters = {barrier} if stop is None else {barrier, stop}
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            if barrier in done:
                # Raises the first per-category failure, if any
                barrier.result()
                return totals
            raise OperationCancelledError("summary aggregation cancelled")
        finally:
            if stop is not None and not stop.done():
                stop.cancel()
            if not barrier.done():
                barrier.cancel()
            for task in tasks:
                if not task.done():
                    task.cancel()

    async def _compute(
        self,
        key: str,
        date_from: date,
        date_to: date,
        cancel: Optional[asyncio.Event],
    ) -> dict[str, float]:
        try:
            categories = await self._transactions.list_distinct_categories(
                date_from, date_to
            )
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_store_error(
                    operation="list_distinct_categories",
                    error_message=str(e),
                )
            raise

        try:
            totals = await self._fan_out(sorted(categories), date_from, date_to, cancel)
        except SummaryAggregationError as e:
            if self._audit_logger:
                await self._audit_logger.log_store_error(
                    operation="sum_by_category",
                    error_message=str(e),
                )
            raise

        await self._write_cache(key, totals)
        if self._audit_logger:
            await self._audit_logger.log_summary_computed(key, len(totals))
        return totals

    def _forget_inflight(self, key: str, shared: _SharedComputation) -> None:
        if self._inflight.get(key) is shared:
            del self._inflight[key]

    @staticmethod
    async def _await_shared(
        shared: _SharedComputation,
        cancel: Optional[asyncio.Event],
    ) -> dict[str, float]:
        """
        Wait for a shared computation on behalf of one caller.

        The caller's own cancel event, or its own task cancellation,
        only detaches that caller. The computation keeps running for
        the remaining waiters and is cancelled once none are left.
        """
        shared.waiters += 1
        shielded = asyncio.shield(shared.future)
        stop = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        try:
            waiters = {shielded} if stop is None else {shielded, stop}
            done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            if shielded in done:
                return shielded.result()
            raise OperationCancelledError("summary aggregation cancelled")
        finally:
            if stop is not None and not stop.done():
                stop.cancel()
            if not shielded.done():
                shielded.cancel()
            shared.waiters -= 1
            if shared.waiters == 0 and not shared.future.done():
                shared.abandoned = True
                shared.future.cancel()

    async def get_summary(
        self,
        date_from: date,
        date_to: date,
        cancel: Optional[asyncio.Event] = None,
    ) -> Summary:
        """
        Per-category totals for transactions dated within [date_from, date_to].

        Raises:
            InvalidDateRangeError: date_from is after date_to
            StorageError: Category discovery failed
            SummaryAggregationError: A per-category sum failed
            OperationCancelledError: cancel fired before the summary was built
        """
        if date_from > date_to:
            raise InvalidDateRangeError(
                f"date_from {date_from.isoformat()} is after date_to {date_to.isoformat()}"
            )

        key = self.cache_key(date_from, date_to)
        cached = await self._read_cache(key)
        if cached is not None:
            logger.debug("summary_from_cache", key=key)
            if self._audit_logger:
                await self._audit_logger.log_summary_cache_hit(key, len(cached))
            return Summary(categories=cached, from_cache=True)

        logger.debug("summary_from_store", key=key)
        if self._audit_logger:
            await self._audit_logger.log_summary_cache_miss(key)

        if not self._dedupe_inflight:
            totals = await self._compute(key, date_from, date_to, cancel)
            return Summary(categories=totals, from_cache=False)

        # Concurrent misses for the same key share one computation.
        # It runs without any caller's cancel event; each caller
        # watches its own.
        shared = self._inflight.get(key)
        if shared is None or shared.abandoned:
            shared = _SharedComputation(
                asyncio.ensure_future(self._compute(key, date_from, date_to, None))
            )
            self._inflight[key] = shared
            shared.future.add_done_callback(_consume_outcome)
            shared.future.add_done_callback(
                lambda f, s=shared: self._forget_inflight(key, s)
            )
        totals = await self._await_shared(shared, cancel)
        return Summary(categories=dict(totals), from_cache=False)
