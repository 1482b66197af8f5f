"""Reporting package."""

from ledger.reports.summary import SummaryAggregator

__all__ = ["SummaryAggregator"]
