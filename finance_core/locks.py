"""
Entity Locks

One asyncio.Lock per entity, created on first use.

Every read-decide-mutate on a person's periods, a recurring series or a
reconciliation pair runs under the entity's lock, so two concurrent
callers can never both advance a due date or both link a transaction.
Locks are process-local.

A lock is dropped again once nobody holds it or waits for it, so the
registry only ever holds entities that are in use right now.
"""

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Iterable
from uuid import UUID


class EntityLocks:
    """
    Keyed lock registry.

    Usage:
        async with locks.lock("series", series_id):
            ...
        async with locks.lock_many("transaction", [a_id, b_id]):
            ...
    """

    def __init__(self) -> None:
        self._locks: dict[tuple[str, UUID], asyncio.Lock] = {}
        # Holders plus waiters per key
        self._users: dict[tuple[str, UUID], int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def lock(self, kind: str, entity_id: UUID) -> AsyncIterator[None]:
        key = (kind, entity_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    @asynccontextmanager
    async def lock_many(self, kind: str, entity_ids: Iterable[UUID]) -> AsyncIterator[None]:
        """Hold several locks of one kind, acquired in sorted id order."""
        async with AsyncExitStack() as stack:
            for entity_id in sorted(set(entity_ids), key=str):
                await stack.enter_async_context(self.lock(kind, entity_id))
            yield

    def is_locked(self, kind: str, entity_id: UUID) -> bool:
        lock = self._locks.get((kind, entity_id))
        return lock is not None and lock.locked()
