"""
Transaction Reconciliation Engine

Reconciliation pairs a transaction with an opposite-type counterpart, for
example an expense later offset by a refund. The larger side (the parent)
keeps a remaining amount; the other side (the child) is fully absorbed.

DESIGN DECISION: The link is stored as a back-pointer on the child
(`parent_transaction_id`), but all reasoning goes through an explicit
adjacency map (parent id -> set of child ids). The map already supports
several children per parent, even though `link()` only creates pairs.

EFFECTIVE AMOUNT RULE (what budgets count):
- child                      -> 0 (its amount already reduced the parent)
- reconciled parent/unlinked -> remaining amount
- not reconciled             -> full amount

Counting the child's amount as well would subtract it twice.
"""

from collections import defaultdict
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID

import structlog

from finance_core.audit import AuditLogger
from finance_core.errors import InvalidStateError, InvariantViolation, NotFoundError, ValidationError
from finance_core.locks import EntityLocks
from finance_core.models.audit import AuditEventBuilder
from finance_core.models.finance import Transaction
from finance_core.services.storage import TransactionStorageInterface


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


class ParentSelection(str, Enum):
    """Which side of a new link becomes the parent."""
    INITIATOR = "initiator"          # the first argument to link()
    LARGER_AMOUNT = "larger_amount"  # larger amount, then earlier date/creation, then smaller id


def select_parent(
    first: Transaction,
    second: Transaction,
    selection: ParentSelection = ParentSelection.LARGER_AMOUNT,
) -> tuple[Transaction, Transaction]:
    """Return (parent, child) for a prospective link."""
    if selection == ParentSelection.INITIATOR:
        return first, second

    ordered = sorted(
        (first, second),
        key=lambda t: (-t.amount, t.date, t.created_at, str(t.id)),
    )
    return ordered[0], ordered[1]


class ReconciliationGraph:
    """
    Read-only view of reconciliation links over a set of transactions.

    Build it from the complete transaction set of interest. A parent
    whose children were filtered out would report too large a remainder.
    """

    def __init__(self, transactions: Iterable[Transaction]):
        self._by_id: dict[UUID, Transaction] = {}
        self.children: dict[UUID, set[UUID]] = defaultdict(set)
        self.parent_of: dict[UUID, UUID] = {}

        for transaction in transactions:
            self._by_id[transaction.id] = transaction
            if transaction.parent_transaction_id is not None:
                self.children[transaction.parent_transaction_id].add(transaction.id)
                self.parent_of[transaction.id] = transaction.parent_transaction_id

    def __contains__(self, transaction_id: UUID) -> bool:
        return transaction_id in self._by_id

    def get(self, transaction_id: UUID) -> Optional[Transaction]:
        return self._by_id.get(transaction_id)

    def is_parent_transaction(self, transaction: Transaction) -> bool:
        """True iff other transactions point at this one."""
        return bool(self.children.get(transaction.id))

    def is_child_transaction(self, transaction: Transaction) -> bool:
        return transaction.id in self.parent_of

    def children_total(self, transaction: Transaction) -> Decimal:
        return sum(
            (self._by_id[child_id].amount
             for child_id in self.children.get(transaction.id, ())
             if child_id in self._by_id),
            ZERO,
        )

    def get_remaining_amount(self, transaction: Transaction) -> Decimal:
        """Parent: amount minus children, floored at 0. Child: 0. Unlinked: amount."""
        if self.is_child_transaction(transaction):
            return ZERO
        if self.is_parent_transaction(transaction):
            return max(ZERO, transaction.amount - self.children_total(transaction))
        return transaction.amount

    def has_available_amount(self, transaction: Transaction) -> bool:
        return self.is_parent_transaction(transaction) and self.get_remaining_amount(transaction) > 0

    def should_fade(self, transaction: Transaction) -> bool:
        """Display rule: reconciled children and fully consumed parents render de-emphasised."""
        if not transaction.is_reconciled:
            return False
        if self.is_child_transaction(transaction):
            return True
        return (
            self.is_parent_transaction(transaction)
            and self.get_remaining_amount(transaction) == ZERO
        )

    def effective_amount(self, transaction: Transaction) -> Decimal:
        """Amount that counts toward budget totals."""
        if self.is_child_transaction(transaction):
            return ZERO
        if transaction.is_reconciled:
            return self.get_remaining_amount(transaction)
        return transaction.amount

    def check_invariants(self, transaction: Transaction) -> None:
        """
        Raise InvariantViolation if this transaction's links are corrupt.

        Checks children exceeding the parent amount and pointers to
        transactions that are not in the graph.
        """
        parent_id = transaction.parent_transaction_id
        if parent_id is not None and parent_id not in self._by_id:
            raise InvariantViolation(
                f"Transaction {transaction.id} points at missing parent {parent_id}",
                "transaction",
                transaction.id,
            )

        if parent_id is not None and not transaction.is_reconciled:
            raise InvariantViolation(
                f"Transaction {transaction.id} is linked but not marked reconciled",
                "transaction",
                transaction.id,
            )

        if self.is_parent_transaction(transaction):
            total = self.children_total(transaction)
            if total > transaction.amount:
                raise InvariantViolation(
                    f"Children of {transaction.id} total {total}, "
                    f"more than its amount {transaction.amount}",
                    "transaction",
                    transaction.id,
                )

    def check_all(self) -> None:
        """Check every transaction plus every parent referenced by a child."""
        for transaction in self._by_id.values():
            self.check_invariants(transaction)
        for parent_id in self.children:
            if parent_id not in self._by_id:
                child_id = next(iter(self.children[parent_id]))
                raise InvariantViolation(
                    f"Transaction {child_id} points at missing parent {parent_id}",
                    "transaction",
                    child_id,
                )


class ReconciliationEngine:
    """
    Links and unlinks transactions.

    Both participants are locked (sorted id order) and re-read under the
    lock before anything is written. If the second write fails, the first
    is restored, so a half-linked pair is never left behind.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        locks: Optional[EntityLocks] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = transaction_storage
        self._locks = locks or EntityLocks()
        self._audit = audit_logger or AuditLogger()

    async def _load(self, transaction_id: UUID) -> Transaction:
        transaction = await self._storage.get_transaction(transaction_id)
        if transaction is None:
            raise NotFoundError("transaction", transaction_id)
        return transaction

    @staticmethod
    def _check_linkable(first: Transaction, second: Transaction) -> None:
        if first.is_transfer or second.is_transfer:
            raise ValidationError("Transfers cannot be reconciled")
        if first.type == second.type:
            raise ValidationError(
                f"Only opposite types can be linked (both are {first.type.value})"
            )
        for transaction in (first, second):
            if transaction.is_reconciled or transaction.parent_transaction_id is not None:
                raise ValidationError(f"Transaction {transaction.id} is already reconciled")

    async def _write_all(self, updated: list[Transaction], originals: list[Transaction]) -> None:
        """Write `updated` in order; on failure restore what was already written."""
        written: list[Transaction] = []
        try:
            for transaction in updated:
                await self._storage.update_transaction(transaction)
                written.append(transaction)
        except Exception as e:
            by_id = {t.id: t for t in originals}
            for transaction in reversed(written):
                await self._storage.update_transaction(by_id[transaction.id].model_copy(deep=True))
            logger.error("reconciliation_write_failed", error=str(e), restored=len(written))
            raise

    async def link(
        self,
        first_id: UUID,
        second_id: UUID,
        parent_selection: ParentSelection = ParentSelection.LARGER_AMOUNT,
    ) -> tuple[Transaction, Transaction]:
        """
        Link two transactions.

        Returns:
            (parent, child) as written

        Raises:
            NotFoundError: Either transaction does not exist
            ValidationError: Same transaction, transfer, same type, already
                             reconciled, or parent amount smaller than child
        """
        if first_id == second_id:
            raise ValidationError("A transaction cannot be linked to itself")

        async with self._locks.lock_many("transaction", [first_id, second_id]):
            first = await self._load(first_id)
            second = await self._load(second_id)
            self._check_linkable(first, second)

            parent, child = select_parent(first, second, parent_selection)
            if parent.amount < child.amount:
                raise ValidationError(
                    f"Parent amount {parent.amount} is smaller than child amount {child.amount}"
                )

            originals = [parent.model_copy(deep=True), child.model_copy(deep=True)]
            parent.is_reconciled = True
            child.is_reconciled = True
            child.parent_transaction_id = parent.id
            await self._write_all([parent, child], originals)

        remaining = parent.amount - child.amount
        await self._audit.log(
            AuditEventBuilder.transactions_linked(
                parent.id,
                child.id,
                remaining,
                parent_selection.value,
            )
        )
        return parent, child

    async def _pair_ids(self, transaction: Transaction) -> tuple[UUID, list[UUID]]:
        """(parent id, child ids) of the link `transaction` takes part in."""
        if transaction.parent_transaction_id is not None:
            return transaction.parent_transaction_id, [transaction.id]

        children = await self._storage.list_transactions(parent_transaction_id=transaction.id)
        if not children:
            message = f"Transaction {transaction.id} is reconciled but has no counterpart"
            await self._audit.log_invariant_violation("transaction", transaction.id, message)
            raise InvariantViolation(message, "transaction", transaction.id)
        return transaction.id, [c.id for c in children]

    async def unlink(self, transaction_id: UUID) -> list[Transaction]:
        """
        Remove the link `transaction_id` takes part in.

        Unlinking a child frees it and releases its share of the parent.
        Unlinking a parent frees every child. Returns the updated
        transactions.

        Raises:
            ValidationError: The transaction is not reconciled
        """
        transaction = await self._load(transaction_id)
        if not transaction.is_reconciled:
            raise ValidationError(f"Transaction {transaction_id} is not reconciled")

        parent_id, child_ids = await self._pair_ids(transaction)

        async with self._locks.lock_many("transaction", [parent_id, *child_ids]):
            transaction = await self._load(transaction_id)
            if (parent_id, child_ids) != await self._pair_ids(transaction):
                raise InvalidStateError(
                    f"Links of transaction {transaction_id} changed concurrently; retry"
                )

            parent = await self._storage.get_transaction(parent_id)
            if parent is None:
                message = f"Transaction {transaction_id} points at missing parent {parent_id}"
                await self._audit.log_invariant_violation("transaction", transaction_id, message)
                raise InvariantViolation(message, "transaction", transaction_id)

            children = [await self._load(child_id) for child_id in child_ids]
            siblings = await self._storage.list_transactions(parent_transaction_id=parent_id)
            originals = [t.model_copy(deep=True) for t in (*children, parent)]

            for child in children:
                child.is_reconciled = False
                child.parent_transaction_id = None
            parent.is_reconciled = len(siblings) > len(children)
            await self._write_all([*children, parent], originals)

        for child in children:
            await self._audit.log(AuditEventBuilder.transactions_unlinked(parent.id, child.id))
        return [*children, parent]

    async def graph(self, account_ids: Optional[list[UUID]] = None) -> ReconciliationGraph:
        """Graph over stored transactions, optionally limited to some accounts."""
        return ReconciliationGraph(await self._storage.list_transactions(account_ids=account_ids))

    async def remaining_for(self, transaction_id: UUID) -> Decimal:
        """Remaining amount of one stored transaction, after an invariant check."""
        transaction = await self._load(transaction_id)
        graph = await self.graph()
        try:
            graph.check_invariants(transaction)
        except InvariantViolation as e:
            await self._audit.log_invariant_violation(e.entity_type, e.entity_id, str(e))
            raise
        return graph.get_remaining_amount(transaction)
