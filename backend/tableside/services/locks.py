"""
Per-key locking for queue and playlist partitions.

LOCKING STRATEGY
================

Every operation that changes the order of a partition (a restaurant's active
queue, a playlist's entries) must be serialized per partition. Two layers:

  1. An in-process asyncio.Lock per key. Handlers in the same worker queue
     up here instead of piling into the database.
  2. On PostgreSQL, pg_advisory_xact_lock per key, taken inside the
     transaction and released on commit/rollback. This is what serializes
     handlers running in different workers.

The ordinal store additionally locks the partition head row with
SELECT ... FOR UPDATE.

Lock ordering:
  Admission needs the user lock (the daily quota spans restaurants) and the
  restaurant queue lock. Keys are always acquired user first, then
  partition, then by name, so two handlers can never wait on each other in
  a cycle.

Different partitions never share a key, so they proceed in parallel.
"""

import asyncio
import hashlib
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Iterable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

USER_RANK = 0
PARTITION_RANK = 1


@dataclass(frozen=True)
class LockKey:
    rank: int
    name: str

    @property
    def advisory_id(self) -> int:
        """Stable signed 64-bit id for pg_advisory_xact_lock."""
        digest = hashlib.blake2b(self.name.encode(), digest_size=8).digest()
        return int.from_bytes(digest, "big", signed=True)


def user_lock(user_id: str) -> LockKey:
    return LockKey(USER_RANK, f"user:{user_id}")


def partition_lock(collection: str, partition_id: str) -> LockKey:
    return LockKey(PARTITION_RANK, f"{collection}:{partition_id}")


def lock_order(keys: Iterable[LockKey]) -> list[LockKey]:
    return sorted(set(keys), key=lambda k: (k.rank, k.name))


class LockRegistry:
    """
    asyncio locks keyed by name.

    Held in a WeakValueDictionary: a lock lives as long as someone holds or
    waits on it, then disappears, so idle partitions cost nothing.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _get(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    @asynccontextmanager
    async def hold(self, *keys: LockKey) -> AsyncIterator[list[LockKey]]:
        ordered = lock_order(keys)
        locks = [self._get(key.name) for key in ordered]
        async with AsyncExitStack() as stack:
            for lock in locks:
                await stack.enter_async_context(lock)
            yield ordered


registry = LockRegistry()


async def acquire_advisory_locks(db: AsyncSession, keys: list[LockKey]) -> None:
    """Transaction-scoped advisory locks, PostgreSQL only. Keys must already be ordered."""
    if db.bind is None or db.bind.dialect.name != "postgresql":
        return
    for key in keys:
        await db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": key.advisory_id})
