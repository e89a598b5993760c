"""
Atomic, retried execution of queue operations.

run_atomic() is the single transaction boundary of the engine:

  1. Take the in-process locks for the given keys (fixed global order).
  2. Take the matching advisory locks inside the transaction (PostgreSQL).
  3. Run the operation. It must read everything it needs from scratch.
  4. Commit.

Lock contention detected by the database (serialization failure, deadlock,
lock not available, a unique index tripping mid-shift, SQLite's "database is
locked") rolls the whole thing back and runs it again from step 1, with
exponential backoff plus jitter. Operations are never resumed half way: a
partially applied shift would break position density.

Domain errors (QueueError) roll back and propagate untouched. Any other
database error becomes PersistenceFailure and is not retried here.
"""

import asyncio
import random
import time
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.config import get_settings
from tableside.core.errors import ConcurrencyConflict, PersistenceFailure, QueueError
from tableside.core.logging import get_logger
from tableside.core.metrics import operation_latency, record_retry
from tableside.services.locks import LockKey, acquire_advisory_locks, registry

logger = get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}
UNIQUE_VIOLATION = "23505"


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_conflict(exc: DBAPIError) -> bool:
    """True when the failure is contention that a clean retry can resolve."""
    state = _sqlstate(exc)
    message = str(exc.orig).lower()
    if isinstance(exc, IntegrityError):
        return state == UNIQUE_VIOLATION or "unique" in message
    if state in CONFLICT_SQLSTATES:
        return True
    return "database is locked" in message


def backoff_delay(attempt: int) -> float:
    base = get_settings().RETRY_BACKOFF_SECONDS
    return base * (2 ** (attempt - 1)) + random.uniform(0, base)


async def run_atomic(
    db: AsyncSession,
    operation: Callable[[], Awaitable[T]],
    *,
    lock_keys: Iterable[LockKey],
    name: str,
) -> T:
    settings = get_settings()
    keys = list(lock_keys)
    started = time.perf_counter()

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        try:
            async with registry.hold(*keys) as ordered:
                try:
                    await acquire_advisory_locks(db, ordered)
                    result = await operation()
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
        except QueueError:
            raise
        except DBAPIError as exc:
            if not is_conflict(exc):
                logger.error("persistence_failure", operation=name, error=str(exc.orig))
                raise PersistenceFailure(f"{name} failed: the database rejected the operation") from exc

            record_retry(name)
            logger.info(
                "operation_retry",
                operation=name,
                attempt=attempt,
                sqlstate=_sqlstate(exc),
            )
            if attempt < settings.MAX_RETRY_ATTEMPTS:
                await asyncio.sleep(backoff_delay(attempt))
            continue

        operation_latency.labels(operation=name).observe(time.perf_counter() - started)
        return result

    logger.warning("operation_conflict_exhausted", operation=name, attempts=settings.MAX_RETRY_ATTEMPTS)
    raise ConcurrencyConflict(
        f"{name} could not complete due to concurrent updates. Please try again.",
        attempts=settings.MAX_RETRY_ATTEMPTS,
    )
