"""
Budget Ledger - Source Package

Records transactions against category budgets and produces
period summaries.

DESIGN PRINCIPLES:
1. Every transaction passes the budget gate before it is committed
2. Bulk submissions always return a full accounting
3. Per-item failures never abort a batch
4. Summaries are cache-aside; the store stays authoritative
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Ledger Team"
