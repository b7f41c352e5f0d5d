"""Transaction reconciliation (linking) package."""

from finance_core.reconciliation.engine import (
    ParentSelection,
    ReconciliationEngine,
    ReconciliationGraph,
    select_parent,
)

__all__ = [
    "ParentSelection",
    "ReconciliationEngine",
    "ReconciliationGraph",
    "select_parent",
]
