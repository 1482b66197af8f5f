"""Admission validation package."""

from ledger.validation.gate import BudgetGate, month_bounds

__all__ = ["BudgetGate", "month_bounds"]
