"""Bulk transaction ingestion package."""

from ledger.ingestion.engine import BulkIngestionEngine

__all__ = ["BulkIngestionEngine"]
