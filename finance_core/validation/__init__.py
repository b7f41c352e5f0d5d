"""Input validation package."""

from finance_core.validation.validator import SeriesValidator, TransactionValidator

__all__ = ["SeriesValidator", "TransactionValidator"]
