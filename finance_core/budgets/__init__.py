"""Budget spend aggregation."""

from finance_core.budgets.aggregator import BudgetAggregator, health_for

__all__ = ["BudgetAggregator", "health_for"]
