"""
Audit Models for Budget Ledger

Every significant action in the ledger is logged for audit purposes.
This provides:
1. Traceability of every admitted and rejected transaction
2. Debugging information when bulk runs or summaries misbehave
3. Ability to reconstruct what a bulk call actually did

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Budgets
    BUDGET_SET = "budget_set"

    # Transactions
    TRANSACTION_COMMITTED = "transaction_committed"
    TRANSACTION_REJECTED = "transaction_rejected"

    # Bulk ingestion
    BULK_STARTED = "bulk_started"
    BULK_COMPLETED = "bulk_completed"
    BULK_CANCELLED = "bulk_cancelled"

    # Reporting
    SUMMARY_CACHE_HIT = "summary_cache_hit"
    SUMMARY_CACHE_MISS = "summary_cache_miss"
    SUMMARY_COMPUTED = "summary_computed"

    # Failures
    CACHE_ERROR = "cache_error"
    STORE_ERROR = "store_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'budget', 'summary')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID or key of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all jobs of one bulk call)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.budget_set("Food", 1000.0)
        event = AuditEventBuilder.bulk_completed(correlation_id, 10, 2, False)
    """

    @staticmethod
    def budget_set(category: str, limit: float) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_SET,
            entity_type="budget",
            entity_id=category,
            description=f"Budget set: {category} = {limit:.2f}",
            details={"category": category, "limit": limit},
        )

    @staticmethod
    def transaction_committed(
        transaction_id: int,
        category: str,
        amount: float,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_COMMITTED,
            entity_type="transaction",
            entity_id=str(transaction_id),
            correlation_id=correlation_id,
            description=f"Transaction committed: {category} - {amount:.2f}",
            details={"category": category, "amount": amount},
        )

    @staticmethod
    def transaction_rejected(
        category: str,
        amount: float,
        reason: str,
        index: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        details: dict[str, Any] = {"category": category, "amount": amount, "reason": reason}
        if index is not None:
            details["index"] = index
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Transaction rejected: {reason}",
            details=details,
        )

    @staticmethod
    def bulk_started(
        batch_size: int,
        worker_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BULK_STARTED,
            entity_type="bulk",
            correlation_id=correlation_id,
            description=f"Bulk add started: {batch_size} transactions, {worker_count} workers",
            details={"batch_size": batch_size, "worker_count": worker_count},
        )

    @staticmethod
    def bulk_completed(
        correlation_id: UUID,
        accepted: int,
        rejected: int,
        cancelled: bool,
    ) -> AuditEvent:
        if cancelled:
            return AuditEvent(
                event_type=AuditEventType.BULK_CANCELLED,
                severity=AuditSeverity.WARNING,
                entity_type="bulk",
                correlation_id=correlation_id,
                description=f"Bulk add cancelled: {accepted} accepted, {rejected} rejected",
                details={"accepted": accepted, "rejected": rejected},
            )
        return AuditEvent(
            event_type=AuditEventType.BULK_COMPLETED,
            entity_type="bulk",
            correlation_id=correlation_id,
            description=f"Bulk add completed: {accepted} accepted, {rejected} rejected",
            details={"accepted": accepted, "rejected": rejected},
        )

    @staticmethod
    def summary_cache_hit(cache_key: str, category_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUMMARY_CACHE_HIT,
            entity_type="summary",
            entity_id=cache_key,
            description=f"Summary served from cache ({category_count} categories)",
            details={"category_count": category_count},
        )

    @staticmethod
    def summary_cache_miss(cache_key: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUMMARY_CACHE_MISS,
            severity=AuditSeverity.DEBUG,
            entity_type="summary",
            entity_id=cache_key,
            description="Summary not cached; computing from store",
        )

    @staticmethod
    def summary_computed(cache_key: str, category_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUMMARY_COMPUTED,
            entity_type="summary",
            entity_id=cache_key,
            description=f"Summary computed from store ({category_count} categories)",
            details={"category_count": category_count},
        )

    @staticmethod
    def cache_error(operation: str, cache_key: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_ERROR,
            severity=AuditSeverity.WARNING,
            entity_type="cache",
            entity_id=cache_key,
            description=f"Cache {operation} failed; continuing without cache",
            error_message=error_message,
            details={"operation": operation},
        )

    @staticmethod
    def store_error(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Store error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
