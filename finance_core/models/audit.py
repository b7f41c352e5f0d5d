"""
Audit Models for Finance Core

Every mutation the engine performs is logged for audit purposes.
This provides:
1. Complete traceability of all operations
2. Debugging information when things go wrong
3. Ability to reconstruct history (e.g. why a series was auto-paused)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_core.models.finance import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every engine operation that mutates state has its own event type.
    """
    # Budget periods
    PERIOD_STARTED = "period_started"
    PERIOD_COMPLETED = "period_completed"
    PERIOD_ROLLED_OVER = "period_rolled_over"
    PERIOD_DELETED = "period_deleted"
    BUDGET_EXCEPTION_ADDED = "budget_exception_added"
    BUDGET_EXCEPTION_REMOVED = "budget_exception_removed"

    # Transactions
    TRANSACTION_RECORDED = "transaction_recorded"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"

    # Reconciliation
    TRANSACTIONS_LINKED = "transactions_linked"
    TRANSACTIONS_UNLINKED = "transactions_unlinked"

    # Recurring series
    SERIES_CREATED = "series_created"
    SERIES_EXECUTED = "series_executed"
    SERIES_EXECUTION_FAILED = "series_execution_failed"
    SERIES_PAUSED = "series_paused"
    SERIES_RESUMED = "series_resumed"
    SERIES_AUTO_PAUSED = "series_auto_paused"
    SERIES_DEACTIVATED = "series_deactivated"
    SERIES_DELETED = "series_deleted"
    DUE_PASS_COMPLETED = "due_pass_completed"

    # System events
    INVARIANT_VIOLATION = "invariant_violation"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _jsonable(value: Any) -> Any:
    """Make detail values safe for json.dumps."""
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(item) for item in value]
    return value


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'person', 'transaction', 'series')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all executions in one due pass)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": _jsonable(self.details),
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(_jsonable(self.details)) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.period_completed(person_id, period_id, end_date)
        event = AuditEventBuilder.series_executed(series_id, transaction_id, ...)
    """

    # -------------------------------------------------------------------------
    # Budget periods
    # -------------------------------------------------------------------------

    @staticmethod
    def period_started(
        person_id: UUID,
        period_id: UUID,
        start_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIOD_STARTED,
            entity_type="person",
            entity_id=person_id,
            correlation_id=correlation_id,
            description=f"Budget period started on {start_date.isoformat()}",
            details={
                "period_id": period_id,
                "start_date": start_date,
            },
            is_user_action=True,
        )

    @staticmethod
    def period_completed(
        person_id: UUID,
        period_id: UUID,
        end_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIOD_COMPLETED,
            entity_type="person",
            entity_id=person_id,
            correlation_id=correlation_id,
            description=f"Budget period completed on {end_date.isoformat()}",
            details={
                "period_id": period_id,
                "end_date": end_date,
            },
            is_user_action=True,
        )

    @staticmethod
    def period_rolled_over(
        person_id: UUID,
        closed_period_id: Optional[UUID],
        new_period_id: UUID,
        new_start: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIOD_ROLLED_OVER,
            entity_type="person",
            entity_id=person_id,
            correlation_id=correlation_id,
            description=f"Budget period rolled over to {new_start.isoformat()}",
            details={
                "closed_period_id": closed_period_id,
                "new_period_id": new_period_id,
                "new_start_date": new_start,
            },
        )

    @staticmethod
    def period_deleted(
        person_id: UUID,
        period_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIOD_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="person",
            entity_id=person_id,
            description="Budget period deleted",
            details={"period_id": period_id},
            is_user_action=True,
        )

    @staticmethod
    def budget_exception_added(
        person_id: UUID,
        exception_id: UUID,
        exception_date: date,
        reason: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_EXCEPTION_ADDED,
            entity_type="person",
            entity_id=person_id,
            description=f"Budget period exception set for {exception_date.isoformat()}",
            details={
                "exception_id": exception_id,
                "exception_date": exception_date,
                "reason": reason,
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_exceptions_removed(
        person_id: UUID,
        exception_ids: list[UUID],
        is_user_action: bool = True,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_EXCEPTION_REMOVED,
            entity_type="person",
            entity_id=person_id,
            description=f"{len(exception_ids)} budget period exception(s) removed",
            details={"exception_ids": exception_ids},
            is_user_action=is_user_action,
        )

    # -------------------------------------------------------------------------
    # Transactions and reconciliation
    # -------------------------------------------------------------------------

    @staticmethod
    def transaction_recorded(
        transaction_id: UUID,
        transaction_type: str,
        amount: Decimal,
        series_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_RECORDED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"{transaction_type.capitalize()} of {amount} recorded",
            details={
                "type": transaction_type,
                "amount": amount,
                "recurring_series_id": series_id,
            },
            is_user_action=series_id is None,
        )

    @staticmethod
    def transaction_updated(transaction_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_UPDATED,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction updated",
            is_user_action=True,
        )

    @staticmethod
    def transaction_deleted(
        transaction_id: UUID,
        was_reconciled: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=transaction_id,
            description="Transaction deleted",
            details={"was_reconciled": was_reconciled},
            is_user_action=True,
        )

    @staticmethod
    def transactions_linked(
        parent_id: UUID,
        child_id: UUID,
        remaining_amount: Decimal,
        parent_selection: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_LINKED,
            entity_type="transaction",
            entity_id=parent_id,
            description=f"Transactions linked, {remaining_amount} remaining on parent",
            details={
                "parent_id": parent_id,
                "child_id": child_id,
                "remaining_amount": remaining_amount,
                "parent_selection": parent_selection,
            },
            is_user_action=True,
        )

    @staticmethod
    def transactions_unlinked(
        parent_id: UUID,
        child_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTIONS_UNLINKED,
            entity_type="transaction",
            entity_id=parent_id,
            description="Transactions unlinked",
            details={
                "parent_id": parent_id,
                "child_id": child_id,
            },
            is_user_action=True,
        )

    # -------------------------------------------------------------------------
    # Recurring series
    # -------------------------------------------------------------------------

    @staticmethod
    def series_created(
        series_id: UUID,
        frequency: str,
        next_due_date: date,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_CREATED,
            entity_type="series",
            entity_id=series_id,
            description=f"Recurring series created ({frequency})",
            details={
                "frequency": frequency,
                "next_due_date": next_due_date,
            },
            is_user_action=True,
        )

    @staticmethod
    def series_executed(
        series_id: UUID,
        transaction_id: UUID,
        amount: Decimal,
        next_due_date: Optional[date],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_EXECUTED,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description=f"Recurring series executed for {amount}",
            details={
                "transaction_id": transaction_id,
                "amount": amount,
                "next_due_date": next_due_date,
            },
        )

    @staticmethod
    def series_execution_failed(
        series_id: UUID,
        error_message: str,
        failed_executions: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_EXECUTION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description="Recurring series execution failed",
            details={"failed_executions": failed_executions},
            error_message=error_message,
        )

    @staticmethod
    def series_paused(
        series_id: UUID,
        pause_until: Optional[date],
    ) -> AuditEvent:
        until = pause_until.isoformat() if pause_until else "further notice"
        return AuditEvent(
            event_type=AuditEventType.SERIES_PAUSED,
            entity_type="series",
            entity_id=series_id,
            description=f"Recurring series paused until {until}",
            details={"pause_until": pause_until},
            is_user_action=True,
        )

    @staticmethod
    def series_resumed(series_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_RESUMED,
            entity_type="series",
            entity_id=series_id,
            description="Recurring series resumed",
            is_user_action=True,
        )

    @staticmethod
    def series_auto_paused(
        series_id: UUID,
        consecutive_failures: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_AUTO_PAUSED,
            severity=AuditSeverity.WARNING,
            entity_type="series",
            entity_id=series_id,
            correlation_id=correlation_id,
            description=f"Recurring series paused after {consecutive_failures} consecutive failures",
            details={"consecutive_failures": consecutive_failures},
        )

    @staticmethod
    def series_deactivated(series_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_DEACTIVATED,
            entity_type="series",
            entity_id=series_id,
            description="Recurring series deactivated",
        )

    @staticmethod
    def series_deleted(
        series_id: UUID,
        orphaned_transactions: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SERIES_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="series",
            entity_id=series_id,
            description="Recurring series deleted",
            details={"orphaned_transactions": orphaned_transactions},
            is_user_action=True,
        )

    @staticmethod
    def due_pass_completed(
        correlation_id: UUID,
        processed: int,
        succeeded: int,
        failed: int,
        dry_run: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUE_PASS_COMPLETED,
            severity=AuditSeverity.WARNING if failed else AuditSeverity.INFO,
            entity_type="due_pass",
            correlation_id=correlation_id,
            description=f"Due pass processed {processed} series ({failed} failed)",
            details={
                "processed": processed,
                "succeeded": succeeded,
                "failed": failed,
                "dry_run": dry_run,
            },
        )

    # -------------------------------------------------------------------------
    # System
    # -------------------------------------------------------------------------

    @staticmethod
    def invariant_violation(
        entity_type: str,
        entity_id: Optional[UUID],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INVARIANT_VIOLATION,
            severity=AuditSeverity.CRITICAL,
            entity_type=entity_type,
            entity_id=entity_id,
            description="Stored data violates an engine invariant",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"System error: {error_type}",
            details=details or {},
            error_message=error_message,
        )
