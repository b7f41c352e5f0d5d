"""Recurring transaction scheduling and execution."""

from finance_core.recurring.executor import RecurringExecutor
from finance_core.recurring.schedule import (
    days_overdue,
    is_due,
    is_effectively_paused,
    is_executable,
    is_past_end,
    next_due_date,
)

__all__ = [
    "RecurringExecutor",
    "days_overdue",
    "is_due",
    "is_effectively_paused",
    "is_executable",
    "is_past_end",
    "next_due_date",
]
