"""
Error Hierarchy

DESIGN DECISION: Every error the engine raises derives from FinanceError
so a host application can catch the whole family in one place, while
still telling the categories apart:

- ValidationError: rejected synchronously, nothing was mutated
- NotFoundError: a referenced entity does not exist (no retry)
- RecoverableExecutionError: one recurring series failed during a pass
- InvariantViolation: stored data is corrupt; the engine refuses to
  proceed for the affected entity instead of repairing it
"""

from typing import Optional
from uuid import UUID


class FinanceError(Exception):
    """Base exception for the finance engine."""
    pass


class ValidationError(FinanceError):
    """
    Input rejected before any mutation happened.

    `issues` carries the individual problems when the validator
    produced them (see finance_core.validation).
    """

    def __init__(self, message: str, issues: Optional[list] = None):
        super().__init__(message)
        self.issues = issues or []


class InvalidStateError(ValidationError):
    """The operation is not allowed in the entity's current state."""
    pass


class NotFoundError(FinanceError):
    """Entity not found in storage."""

    def __init__(self, entity_type: str, entity_id: UUID):
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class RecoverableExecutionError(FinanceError):
    """
    A single recurring series failed to execute.

    The series keeps its due date and is retried on the next pass.
    """

    def __init__(self, series_id: UUID, reason: str):
        super().__init__(f"Execution of series {series_id} failed: {reason}")
        self.series_id = series_id
        self.reason = reason


class InvariantViolation(FinanceError):
    """
    Stored data breaks an invariant (bug or data corruption).

    Never caught and repaired by the engine.
    """

    def __init__(self, message: str, entity_type: str, entity_id: Optional[UUID] = None):
        super().__init__(message)
        self.entity_type = entity_type
        self.entity_id = entity_id
