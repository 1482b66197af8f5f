"""Data models package."""

from ledger.models.ledger import (
    CANCELLED_REASON,
    AdmissionDecision,
    Budget,
    BulkJob,
    BulkResult,
    JobOutcome,
    RejectionKind,
    Summary,
    Transaction,
)
from ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "CANCELLED_REASON",
    "AdmissionDecision",
    "Budget",
    "BulkJob",
    "BulkResult",
    "JobOutcome",
    "RejectionKind",
    "Summary",
    "Transaction",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
