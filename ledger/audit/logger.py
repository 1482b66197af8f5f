"""
Audit Logger

DESIGN DECISION: Every significant ledger action is logged.
This provides:
1. Complete traceability of admitted and rejected transactions
2. Debugging capability for bulk runs and cache behaviour
3. A persisted history when an audit store is configured

The audit logger:
- Is async so it can be awaited from worker tasks
- Gracefully handles failures (doesn't break ingestion if logging fails)
- Supports correlation IDs to trace all jobs of one bulk call
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ledger.models.audit import AuditEvent, AuditEventBuilder
from ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def set_log_level(level: str) -> None:
    """Route structlog output through stdlib logging at the given level."""
    logging.basicConfig(format="%(message)s", level=level.upper())
    logging.getLogger().setLevel(level.upper())


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence), when configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("ledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_budget_set(self, category: str, limit: float) -> None:
        """Log a budget upsert."""
        await self.log(AuditEventBuilder.budget_set(category=category, limit=limit))

    async def log_transaction_committed(
        self,
        transaction_id: int,
        category: str,
        amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a committed transaction."""
        event = AuditEventBuilder.transaction_committed(
            transaction_id=transaction_id,
            category=category,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_rejected(
        self,
        category: str,
        amount: float,
        reason: str,
        index: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a rejected transaction."""
        event = AuditEventBuilder.transaction_rejected(
            category=category,
            amount=amount,
            reason=reason,
            index=index,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bulk_started(
        self,
        batch_size: int,
        worker_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log the start of a bulk call."""
        event = AuditEventBuilder.bulk_started(
            batch_size=batch_size,
            worker_count=worker_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_bulk_completed(
        self,
        correlation_id: UUID,
        accepted: int,
        rejected: int,
        cancelled: bool,
    ) -> None:
        """Log the end of a bulk call."""
        event = AuditEventBuilder.bulk_completed(
            correlation_id=correlation_id,
            accepted=accepted,
            rejected=rejected,
            cancelled=cancelled,
        )
        await self.log(event)

    async def log_summary_cache_hit(self, cache_key: str, category_count: int) -> None:
        await self.log(AuditEventBuilder.summary_cache_hit(cache_key, category_count))

    async def log_summary_cache_miss(self, cache_key: str) -> None:
        await self.log(AuditEventBuilder.summary_cache_miss(cache_key))

    async def log_summary_computed(self, cache_key: str, category_count: int) -> None:
        await self.log(AuditEventBuilder.summary_computed(cache_key, category_count))

    async def log_cache_error(
        self,
        operation: str,
        cache_key: str,
        error_message: str,
    ) -> None:
        """Log a cache failure that was degraded to a miss."""
        event = AuditEventBuilder.cache_error(
            operation=operation,
            cache_key=cache_key,
            error_message=error_message,
        )
        await self.log(event)

    async def log_store_error(
        self,
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a store failure."""
        event = AuditEventBuilder.store_error(
            operation=operation,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new ledger operation (e.g., a bulk add).
    Pass it through all subsequent operations.
    """
    return uuid4()
