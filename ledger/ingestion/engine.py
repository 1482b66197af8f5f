"""
Bulk Transaction Ingestion Engine

Validates and commits many transactions concurrently against a shared,
mutating budget constraint.

FLOW:
1. A feeder task enqueues one BulkJob per submitted transaction, in
   submission order, then one close marker per worker
2. A fixed pool of worker tasks drains the job queue; per job:
   budget gate -> commit -> JobOutcome
3. A closer task waits for every worker, then closes the result queue
4. The caller drains the result queue into an owned collector

GUARANTEES:
- accepted + rejected == number of submitted transactions
- Every batch index is counted exactly once
- Per-item failures never abort the batch and are never retried

KNOWN BEHAVIOUR: admission and commit are separate store calls. Two
workers may both read the same spend for a category and both commit,
overshooting the limit. With serialize_admissions enabled, a
per-category lock is held across admission and commit instead.
"""

import asyncio
import threading
from typing import Optional, Sequence
from uuid import UUID

import structlog

from ledger.audit import AuditLogger, create_correlation_id
from ledger.errors import AdmissionRejectedError
from ledger.models.ledger import (
    CANCELLED_REASON,
    AdmissionDecision,
    BulkJob,
    BulkResult,
    JobOutcome,
    RejectionKind,
    Transaction,
)
from ledger.services.storage import StorageError, TransactionStorageInterface
from ledger.validation import BudgetGate


logger = structlog.get_logger(__name__)

# End-of-stream marker for both queues
_CLOSE = object()

# Recorded for jobs lost without a cancellation signal (a worker died)
_WORKER_FAILED_REASON = "worker failed"


class _OutcomeCollector:
    """
    Accumulates job outcomes into a BulkResult.

    Safe to call from several drainers at once; an index that was
    already recorded is ignored rather than counted twice.
    """

    def __init__(self, batch_size: int):
        self._batch_size = batch_size
        self._lock = threading.Lock()
        self._accepted = 0
        self._rejected = 0
        self._errors: dict[int, str] = {}
        self._seen: set[int] = set()

    def record(self, outcome: JobOutcome) -> None:
        with self._lock:
            if outcome.index in self._seen:
                logger.warning("duplicate_outcome_ignored", index=outcome.index)
                return
            self._seen.add(outcome.index)
            if outcome.accepted:
                self._accepted += 1
            else:
                self._rejected += 1
                self._errors[outcome.index] = outcome.error_message

    def fill_missing(self, reason: str) -> int:
        """Reject every index that produced no outcome. Returns how many."""
        with self._lock:
            missing = [i for i in range(self._batch_size) if i not in self._seen]
            for index in missing:
                self._seen.add(index)
                self._rejected += 1
                self._errors[index] = reason
            return len(missing)

    def result(self, cancelled: bool = False) -> BulkResult:
        with self._lock:
            return BulkResult(
                accepted=self._accepted,
                rejected=self._rejected,
                errors=dict(self._errors),
                cancelled=cancelled,
            )


class BulkIngestionEngine:
    """
    Bounded worker pool that admits and commits transactions.

    Also exposes commit_one(), the single-transaction path, so both
    paths share the same gate, spend scope and locking policy.
    """

    def __init__(
        self,
        gate: BudgetGate,
        transaction_storage: TransactionStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        default_worker_count: int = 4,
        serialize_admissions: bool = False,
    ):
        if default_worker_count < 1:
            raise ValueError("default_worker_count must be >= 1")
        self._gate = gate
        self._transactions = transaction_storage
        self._audit_logger = audit_logger
        self._default_worker_count = default_worker_count
        self._serialize_admissions = serialize_admissions
        self._category_locks: dict[str, asyncio.Lock] = {}

    @property
    def serialize_admissions(self) -> bool:
        return self._serialize_admissions

    # -------------------------------------------------------------------------
    # Admission + commit
    # -------------------------------------------------------------------------

    def _lock_for(self, category: str) -> asyncio.Lock:
        return self._category_locks.setdefault(category, asyncio.Lock())

    async def _admit_and_commit(
        self,
        transaction: Transaction,
    ) -> tuple[AdmissionDecision, Optional[Transaction]]:
        """
        Gate then commit. Raises StorageError only if the insert fails;
        lookup failures come back as a STORE_ERROR decision.
        """
        if self._serialize_admissions:
            async with self._lock_for(transaction.category):
                return await self._admit_then_insert(transaction)
        return await self._admit_then_insert(transaction)

    async def _admit_then_insert(
        self,
        transaction: Transaction,
    ) -> tuple[AdmissionDecision, Optional[Transaction]]:
        decision = await self._gate.admit(transaction)
        if not decision.accepted:
            return decision, None
        transaction_id = await self._transactions.insert_transaction(transaction)
        return decision, transaction.with_id(transaction_id)

    async def commit_one(
        self,
        transaction: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> Transaction:
        """
        Admit and commit a single transaction.

        Returns:
            The committed transaction, carrying its new id

        Raises:
            AdmissionRejectedError: The gate refused it
            StorageError: A store call failed
        """
        try:
            decision, committed = await self._admit_and_commit(transaction)
        except StorageError as e:
            if self._audit_logger:
                await self._audit_logger.log_store_error(
                    operation="insert_transaction",
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if not decision.accepted:
            if decision.kind == RejectionKind.STORE_ERROR:
                if self._audit_logger:
                    await self._audit_logger.log_store_error(
                        operation="admission_check",
                        error_message=decision.reason,
                        correlation_id=correlation_id,
                    )
                raise StorageError(decision.reason)
            if self._audit_logger:
                await self._audit_logger.log_transaction_rejected(
                    category=transaction.category,
                    amount=transaction.amount,
                    reason=decision.reason,
                    correlation_id=correlation_id,
                )
            raise AdmissionRejectedError(decision.kind, decision.reason)

        if self._audit_logger:
            await self._audit_logger.log_transaction_committed(
                transaction_id=committed.id,
                category=committed.category,
                amount=committed.amount,
                correlation_id=correlation_id,
            )
        return committed

    # -------------------------------------------------------------------------
    # Worker pool
    # -------------------------------------------------------------------------

    async def _process(self, job: BulkJob, correlation_id: UUID) -> JobOutcome:
        """Run one job to an outcome. Never raises for per-item failures."""
        transaction = job.transaction
        try:
            decision, committed = await self._admit_and_commit(transaction)
        except StorageError as e:
            message = str(e)
        except Exception as e:
            logger.exception("bulk_job_failed", index=job.index)
            message = str(e) or type(e).__name__
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type=type(e).__name__,
                    error_message=message,
                    details={"index": job.index, "category": transaction.category},
                    correlation_id=correlation_id,
                )
        else:
            if decision.accepted:
                if self._audit_logger:
                    await self._audit_logger.log_transaction_committed(
                        transaction_id=committed.id,
                        category=committed.category,
                        amount=committed.amount,
                        correlation_id=correlation_id,
                    )
                return JobOutcome(index=job.index, accepted=True)
            message = decision.reason

        if self._audit_logger:
            await self._audit_logger.log_transaction_rejected(
                category=transaction.category,
                amount=transaction.amount,
                reason=message,
                index=job.index,
                correlation_id=correlation_id,
            )
        return JobOutcome(index=job.index, accepted=False, error_message=message)

    @staticmethod
    async def _next_job(jobs: asyncio.Queue, cancel: asyncio.Event):
        """Wait for the next job; None if cancellation fired first."""
        get = asyncio.ensure_future(jobs.get())
        stop = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {get, stop},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (get, stop):
                if not task.done():
                    task.cancel()
        if get in done:
            return get.result()
        return None

    async def _worker(
        self,
        worker_id: int,
        jobs: asyncio.Queue,
        results: asyncio.Queue,
        cancel: asyncio.Event,
        correlation_id: UUID,
    ) -> None:
        while True:
            # Cancellation is only observed between jobs
            if cancel.is_set():
                logger.debug("bulk_worker_exit", worker=worker_id, reason="cancelled")
                return
            job = await self._next_job(jobs, cancel)
            if job is None:
                logger.debug("bulk_worker_exit", worker=worker_id, reason="cancelled")
                return
            if job is _CLOSE:
                logger.debug("bulk_worker_exit", worker=worker_id, reason="drained")
                return
            outcome = await self._process(job, correlation_id)
            await results.put(outcome)

    @staticmethod
    async def _feed(
        jobs: asyncio.Queue,
        transactions: Sequence[Transaction],
        worker_count: int,
    ) -> None:
        for index, transaction in enumerate(transactions):
            await jobs.put(BulkJob(index=index, transaction=transaction))
        for _ in range(worker_count):
            await jobs.put(_CLOSE)

    async def _close(
        self,
        workers: list[asyncio.Task],
        feeder: asyncio.Task,
        results: asyncio.Queue,
        correlation_id: UUID,
    ) -> None:
        finished = await asyncio.gather(*workers, return_exceptions=True)
        for worker_id, outcome in enumerate(finished):
            if isinstance(outcome, BaseException):
                logger.error("bulk_worker_crashed", worker=worker_id, error=repr(outcome))
                if self._audit_logger:
                    await self._audit_logger.log_error(
                        error_type="bulk_worker_crashed",
                        error_message=repr(outcome),
                        details={"worker": worker_id},
                        correlation_id=correlation_id,
                    )
        # Workers that left early on cancellation may leave the feeder
        # blocked on a full job queue
        feeder.cancel()
        await results.put(_CLOSE)

    async def bulk_add(
        self,
        transactions: Sequence[Transaction],
        worker_count: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> BulkResult:
        """
        Admit and commit a batch of transactions concurrently.

        Args:
            transactions: The batch, in submission order
            worker_count: Number of concurrent workers (default from settings)
            cancel: Set it to stop workers from starting further jobs.
                    Jobs already running finish; jobs never started are
                    rejected with reason "cancelled".

        Returns:
            BulkResult with one entry per submitted transaction

        Raises:
            ValueError: worker_count < 1
        """
        if worker_count is None:
            worker_count = self._default_worker_count
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")

        batch_size = len(transactions)
        collector = _OutcomeCollector(batch_size)
        if batch_size == 0:
            return collector.result()

        cancel = cancel or asyncio.Event()
        correlation_id = create_correlation_id()
        if self._audit_logger:
            await self._audit_logger.log_bulk_started(
                batch_size=batch_size,
                worker_count=worker_count,
                correlation_id=correlation_id,
            )

        jobs: asyncio.Queue = asyncio.Queue(maxsize=batch_size)
        results: asyncio.Queue = asyncio.Queue(maxsize=batch_size)

        workers = [
            asyncio.create_task(
                self._worker(worker_id, jobs, results, cancel, correlation_id),
                name=f"bulk-worker-{worker_id}",
            )
            for worker_id in range(worker_count)
        ]
        feeder = asyncio.create_task(
            self._feed(jobs, transactions, worker_count),
            name="bulk-feeder",
        )
        closer = asyncio.create_task(
            self._close(workers, feeder, results, correlation_id),
            name="bulk-closer",
        )

        try:
            while True:
                item = await results.get()
                if item is _CLOSE:
                    break
                collector.record(item)
            await closer
        finally:
            for task in (*workers, feeder, closer):
                if not task.done():
                    task.cancel()

        reason = CANCELLED_REASON if cancel.is_set() else _WORKER_FAILED_REASON
        missing = collector.fill_missing(reason)
        if missing:
            logger.warning("bulk_jobs_not_started", count=missing, reason=reason)

        result = collector.result(cancelled=bool(missing) and cancel.is_set())
        if self._audit_logger:
            await self._audit_logger.log_bulk_completed(
                correlation_id=correlation_id,
                accepted=result.accepted,
                rejected=result.rejected,
                cancelled=result.cancelled,
            )
        return result
