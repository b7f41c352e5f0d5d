"""
Transaction Ledger

Validated create/update/delete of individual transactions.

Link fields (`is_reconciled`, `parent_transaction_id`) are owned by the
reconciliation engine: the ledger never changes them on update, and
deleting a linked transaction unlinks it first so no pointer is left
dangling.
"""

from typing import Optional
from uuid import UUID

import structlog

from finance_core.audit import AuditLogger
from finance_core.clock import Clock
from finance_core.errors import NotFoundError, ValidationError
from finance_core.locks import EntityLocks
from finance_core.models.audit import AuditEventBuilder
from finance_core.models.finance import Transaction
from finance_core.reconciliation import ReconciliationEngine
from finance_core.services.storage import TransactionStorageInterface
from finance_core.validation import TransactionValidator


logger = structlog.get_logger(__name__)


class TransactionLedger:
    """
    Validated single-transaction writes.

    Usage:
        ledger = TransactionLedger(storage, audit_logger=AuditLogger(storage))
        transaction = await ledger.record(transaction)
        await ledger.delete(transaction.id)
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        reconciliation: Optional[ReconciliationEngine] = None,
        locks: Optional[EntityLocks] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
    ):
        self._storage = transaction_storage
        self._locks = locks or EntityLocks()
        self._audit = audit_logger or AuditLogger()
        self._reconciliation = reconciliation or ReconciliationEngine(
            transaction_storage, locks=self._locks, audit_logger=self._audit
        )
        self._validator = TransactionValidator(clock=clock)

    async def _load(self, transaction_id: UUID) -> Transaction:
        transaction = await self._storage.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError("transaction", transaction_id)
        return transaction

    def _validate(self, transaction: Transaction) -> None:
        result = self._validator.ensure_valid(transaction)
        if result.warnings:
            logger.warning(
                "transaction_validation_warnings",
                transaction_id=str(transaction.id),
                warnings=result.warnings,
            )

    async def record(self, transaction: Transaction) -> Transaction:
        """Store a new, unlinked transaction."""
        if transaction.is_reconciled or transaction.parent_transaction_id is not None:
            raise ValidationError("New transactions are recorded unlinked; link them afterwards")
        self._validate(transaction)

        await self._storage.save_transaction(transaction)
        await self._audit.log(
            AuditEventBuilder.transaction_recorded(
                transaction.id,
                transaction.type.value,
                transaction.amount,
                series_id=transaction.recurring_series_id,
            )
        )
        return transaction

    async def update(self, transaction: Transaction) -> Transaction:
        """
        Replace a stored transaction.

        Raises:
            ValidationError: Invalid fields, or a reconciled transaction
                             changing its amount or type
        """
        async with self._locks.lock("transaction", transaction.id):
            existing = await self._load(transaction.id)
            if existing.is_reconciled and (
                transaction.amount != existing.amount or transaction.type != existing.type
            ):
                raise ValidationError(
                    "Amount and type of a reconciled transaction cannot change; unlink it first"
                )

            transaction.is_reconciled = existing.is_reconciled
            transaction.parent_transaction_id = existing.parent_transaction_id
            self._validate(transaction)
            await self._storage.update_transaction(transaction)

        await self._audit.log(AuditEventBuilder.transaction_updated(transaction.id))
        return transaction

    async def delete(self, transaction_id: UUID) -> bool:
        """Delete a transaction, unlinking it first when reconciled."""
        existing = await self._load(transaction_id)
        if existing.is_reconciled:
            await self._reconciliation.unlink(transaction_id)

        async with self._locks.lock("transaction", transaction_id):
            deleted = await self._storage.delete_transaction(transaction_id)

        if deleted:
            await self._audit.log(
                AuditEventBuilder.transaction_deleted(transaction_id, existing.is_reconciled)
            )
        return deleted
