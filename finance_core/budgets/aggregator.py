"""
Budget Aggregator

Computes how much of a budget has been spent in a period.

Only expenses count. Income and transfers never do. Amounts are the
reconciliation-aware effective amounts, so an expense partly refunded
through a link counts only its remainder and the refund itself counts
nothing.

The reconciliation graph is always built from the full transaction list
handed in, before any period or category filtering, so a refund dated in
a later period still reduces the expense it offsets.
"""

from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from finance_core.clock import Clock, SystemClock
from finance_core.dates import PeriodBounds, current_period_bounds
from finance_core.models.finance import (
    Budget,
    BudgetPeriod,
    Person,
    Transaction,
    TransactionType,
)
from finance_core.models.reports import BudgetHealth, BudgetStatus, PeriodTotals
from finance_core.periods.manager import BudgetPeriodManager
from finance_core.reconciliation.engine import ReconciliationGraph


ZERO = Decimal("0")

# Percentage thresholds
IN_PROGRESS_AT = 60
NEAR_LIMIT_AT = 80
OVERSPENT_AT = 100


def health_for(percentage: float) -> BudgetHealth:
    if percentage >= OVERSPENT_AT:
        return BudgetHealth.OVERSPENT
    if percentage >= NEAR_LIMIT_AT:
        return BudgetHealth.NEAR_LIMIT
    if percentage >= IN_PROGRESS_AT:
        return BudgetHealth.IN_PROGRESS
    return BudgetHealth.ON_TRACK


class BudgetAggregator:
    """Read-only budget computations over transactions already loaded."""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()

    @staticmethod
    def filter_transactions_for_budget(
        transactions: Iterable[Transaction],
        budget: Budget,
        bounds: PeriodBounds,
        account_ids: Optional[Iterable[UUID]] = None,
    ) -> list[Transaction]:
        """Expenses in the budget's categories, inside `bounds`, on the given accounts."""
        accounts = set(account_ids) if account_ids else None
        return [
            t for t in transactions
            if t.type == TransactionType.EXPENSE
            and t.category in budget.categories
            and bounds.contains(t.date)
            and (accounts is None or t.account_id in accounts)
        ]

    def current_spent(
        self,
        transactions: list[Transaction],
        budget: Budget,
        bounds: PeriodBounds,
        account_ids: Optional[Iterable[UUID]] = None,
        graph: Optional[ReconciliationGraph] = None,
    ) -> Decimal:
        graph = graph or ReconciliationGraph(transactions)
        matching = self.filter_transactions_for_budget(transactions, budget, bounds, account_ids)
        return sum((graph.effective_amount(t) for t in matching), ZERO)

    def _bounds(self, person: Person, period: Optional[BudgetPeriod]) -> PeriodBounds:
        if period is None:
            return current_period_bounds(self._clock.today(), person.budget_start_day)
        return BudgetPeriodManager.bounds_for(period, person)

    def calculate_budget_status(
        self,
        budget: Budget,
        person: Person,
        transactions: list[Transaction],
        period: Optional[BudgetPeriod] = None,
    ) -> BudgetStatus:
        """
        Spend, remaining and health of `budget`.

        Without a period the calendar-current period for today is used.
        """
        bounds = self._bounds(person, period)
        spent = self.current_spent(transactions, budget, bounds, person.account_ids)
        percentage = float(spent / budget.amount * 100) if budget.amount > 0 else 0.0

        return BudgetStatus(
            budget_id=budget.id,
            current_spent=spent,
            percentage=percentage,
            remaining=budget.amount - spent,
            period_start=bounds.start,
            period_end=bounds.end,
            health=health_for(percentage),
            is_period_completed=period is not None and period.end_date is not None,
        )

    def summarize_period(
        self,
        person: Person,
        period: BudgetPeriod,
        budgets: Iterable[Budget],
        transactions: list[Transaction],
    ) -> PeriodTotals:
        """Totals across all of a person's budgets for one period."""
        bounds = self._bounds(person, period)
        graph = ReconciliationGraph(transactions)
        active_budgets = [b for b in budgets if b.person_id == person.id and b.amount > 0]

        total_budget = ZERO
        total_spent = ZERO
        for budget in active_budgets:
            total_budget += budget.amount
            total_spent += self.current_spent(
                transactions, budget, bounds, person.account_ids, graph=graph
            )

        tracked = Budget(
            person_id=person.id,
            description="all tracked categories",
            amount=ZERO,
            categories=set().union(*(b.categories for b in active_budgets)),
        )
        category_spending: dict[str, Decimal] = {}
        for t in self.filter_transactions_for_budget(transactions, tracked, bounds, person.account_ids):
            category_spending[t.category] = category_spending.get(t.category, ZERO) + graph.effective_amount(t)

        return PeriodTotals(
            person_id=person.id,
            period_start=bounds.start,
            period_end=bounds.end,
            total_budget=total_budget,
            total_spent=total_spent,
            total_saved=max(ZERO, total_budget - total_spent),
            category_spending=category_spending,
        )
