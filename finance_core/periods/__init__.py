"""Budget period lifecycle."""

from finance_core.periods.manager import BudgetPeriodManager

__all__ = ["BudgetPeriodManager"]
