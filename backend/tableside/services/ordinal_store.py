"""
Ordinal position store: dense 1..N ranking inside a partition.

A partition is one restaurant's active queue or one playlist's entries.
The invariant is the same for both: members hold positions exactly
{1, ..., N}, no gaps, no duplicates.

HOW A MUTATION RUNS
===================

All mutating functions here run inside the caller's transaction and must be
called from an operation executed by unit_of_work.run_atomic(), which holds
the partition lock. Each one:

  1. Locks the partition head row (SELECT ... FOR UPDATE) and reads its
     `size`, the explicit sequence. "Next position" is always size + 1,
     never a MAX() over the members.
  2. Shifts the members that have to move with set-based UPDATEs.
  3. Writes the new/moved member and bumps size/version.

Shifting in two steps:
  UPDATE ... SET position = position + 1 trips a unique index on most
  databases, because uniqueness is checked row by row while the statement
  runs. So shifts first move the affected rows into the negative range
  (position = -(position + delta)), then flip them back (position =
  -position). Neither statement can produce a transient duplicate.

Self-healing:
  A gap or duplicate is a bug, not a normal error. read_ordered() checks
  density on every read, logs at critical and renumbers the partition;
  lock_partition() does the same when the sequence and the member count
  disagree.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.errors import InvalidPosition, NotFound
from tableside.core.logging import get_logger
from tableside.core.metrics import record_ordinal_operation, record_repair
from tableside.models import ACTIVE_STATUSES, OrdinalPartition, PlaylistEntry, SongRequest
from tableside.services.locks import LockKey, partition_lock

logger = get_logger(__name__)


@dataclass(frozen=True)
class OrderedCollection:
    """Describes where a partition's members and positions live."""

    name: str
    model: Any
    partition_attr: str
    position_attr: str
    # Tie-breaker when renumbering a corrupted partition
    order_attr: str
    # Extra membership criterion, e.g. "status is active"
    membership: Optional[Callable[[], Any]] = None

    @property
    def position(self):
        return getattr(self.model, self.position_attr)

    def scope(self, partition_id: str) -> list:
        criteria = [getattr(self.model, self.partition_attr) == partition_id]
        if self.membership is not None:
            criteria.append(self.membership())
        return criteria

    def lock_key(self, partition_id: str) -> LockKey:
        return partition_lock(self.name, partition_id)


REQUEST_QUEUE = OrderedCollection(
    name="restaurant_queue",
    model=SongRequest,
    partition_attr="restaurant_id",
    position_attr="queue_position",
    order_attr="requested_at",
    membership=lambda: SongRequest.status.in_(ACTIVE_STATUSES),
)

PLAYLIST_ENTRIES = OrderedCollection(
    name="playlist",
    model=PlaylistEntry,
    partition_attr="playlist_id",
    position_attr="position",
    order_attr="added_at",
)


def is_dense(positions: list[int]) -> bool:
    return sorted(positions) == list(range(1, len(positions) + 1))


async def count_members(db: AsyncSession, collection: OrderedCollection, partition_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(collection.model).where(*collection.scope(partition_id))
    )
    return result.scalar_one()


async def load_ordered(db: AsyncSession, collection: OrderedCollection, partition_id: str) -> list:
    """Members by ascending position, without the density check."""
    result = await db.execute(
        select(collection.model)
        .where(*collection.scope(partition_id))
        .order_by(
            collection.position,
            getattr(collection.model, collection.order_attr),
            collection.model.id,
        )
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def lock_partition(
    db: AsyncSession,
    collection: OrderedCollection,
    partition_id: str,
) -> OrdinalPartition:
    """Lock (creating on first use) the head row of a partition."""
    result = await db.execute(
        select(OrdinalPartition)
        .where(
            OrdinalPartition.collection == collection.name,
            OrdinalPartition.partition_id == partition_id,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    head = result.scalar_one_or_none()
    members = await count_members(db, collection, partition_id)

    if head is None:
        head = OrdinalPartition(collection=collection.name, partition_id=partition_id, size=members, version=1)
        db.add(head)
        await db.flush()
        # Members that predate the sequence row still have to be dense
        if members:
            await repair(db, collection, partition_id, head)
    elif head.size != members:
        logger.critical(
            "ordinal_sequence_drift",
            collection=collection.name,
            partition_id=partition_id,
            sequence=head.size,
            members=members,
        )
        await repair(db, collection, partition_id, head)

    return head


async def _reload(db: AsyncSession, collection: OrderedCollection, partition_id: str, member):
    """Reload `member` under the partition lock, with its current position."""
    result = await db.execute(
        select(collection.model)
        .where(*collection.scope(partition_id), collection.model.id == member.id)
        .execution_options(populate_existing=True)
    )
    current = result.scalars().first()
    if current is None:
        raise NotFound(f"{member.id} is not in {collection.name} {partition_id}")
    return current


async def _shift(
    db: AsyncSession,
    collection: OrderedCollection,
    partition_id: str,
    *,
    start: int,
    delta: int,
    end: Optional[int] = None,
) -> None:
    """Move members in [start, end] by delta, via the negative range."""
    position = collection.position
    criteria = [*collection.scope(partition_id), position >= start]
    if end is not None:
        criteria.append(position <= end)

    await db.execute(
        update(collection.model)
        .where(*criteria)
        .values({collection.position_attr: -(position + delta)})
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        update(collection.model)
        .where(*collection.scope(partition_id), position < 0)
        .values({collection.position_attr: -position})
        .execution_options(synchronize_session=False)
    )


async def insert_at(
    db: AsyncSession,
    collection: OrderedCollection,
    partition_id: str,
    member,
    position: Optional[int] = None,
) -> int:
    """
    Place a new member and return its position.

    `member` must not be in the session yet: it is added after the shift so
    autoflush cannot write it into a slot that is still taken.
    """
    if position is not None and position < 1:
        raise InvalidPosition(f"Position must be 1 or greater, got {position}", position=position)

    head = await lock_partition(db, collection, partition_id)

    if position is None or position > head.size:
        position = head.size + 1
    else:
        await _shift(db, collection, partition_id, start=position, delta=1)

    setattr(member, collection.partition_attr, partition_id)
    setattr(member, collection.position_attr, position)
    db.add(member)
    head.size += 1
    head.version += 1
    await db.flush()

    record_ordinal_operation(collection.name, "insert")
    logger.debug("ordinal_inserted", collection=collection.name, partition_id=partition_id, position=position)
    return position


async def remove_and_compact(
    db: AsyncSession,
    collection: OrderedCollection,
    partition_id: str,
    member,
    release: Callable[[Any], Awaitable[None]],
):
    """
    Take `member` out of the partition and close the gap.

    `release` does the actual removal: delete the row, or move a request to
    a terminal status. The position is read after the partition is locked,
    so a repair done by the lock is taken into account. Returns the member.
    """
    head = await lock_partition(db, collection, partition_id)
    member = await _reload(db, collection, partition_id, member)
    position = getattr(member, collection.position_attr)

    await release(member)
    await db.flush()
    await _shift(db, collection, partition_id, start=position + 1, delta=-1)

    head.size -= 1
    head.version += 1
    await db.flush()

    record_ordinal_operation(collection.name, "remove")
    logger.debug("ordinal_removed", collection=collection.name, partition_id=partition_id, position=position)
    return member


async def move_to(
    db: AsyncSession,
    collection: OrderedCollection,
    partition_id: str,
    member,
    to_position: int,
):
    """Move `member` to to_position; positions past the end clamp to the end."""
    if to_position < 1:
        raise InvalidPosition(f"Position must be 1 or greater, got {to_position}", position=to_position)

    head = await lock_partition(db, collection, partition_id)
    member = await _reload(db, collection, partition_id, member)
    from_position = getattr(member, collection.position_attr)

    to_position = min(to_position, head.size)
    if to_position == from_position:
        return member

    # Park the member outside 1..N while the others slide
    setattr(member, collection.position_attr, 0)
    await db.flush()

    if from_position < to_position:
        await _shift(db, collection, partition_id, start=from_position + 1, end=to_position, delta=-1)
    else:
        await _shift(db, collection, partition_id, start=to_position, end=from_position - 1, delta=1)

    setattr(member, collection.position_attr, to_position)
    head.version += 1
    await db.flush()

    record_ordinal_operation(collection.name, "move")
    logger.debug(
        "ordinal_moved",
        collection=collection.name,
        partition_id=partition_id,
        from_position=from_position,
        to_position=to_position,
    )
    return member


async def repair(
    db: AsyncSession,
    collection: OrderedCollection,
    partition_id: str,
    head: Optional[OrdinalPartition] = None,
) -> int:
    """
    Renumber members 1..N keeping their relative order and reset the
    sequence. Returns how many members changed position.
    """
    if head is None:
        head = await lock_partition(db, collection, partition_id)

    members = await load_ordered(db, collection, partition_id)
    moved = [
        (rank, member)
        for rank, member in enumerate(members, start=1)
        if getattr(member, collection.position_attr) != rank
    ]

    if moved:
        for rank, member in moved:
            setattr(member, collection.position_attr, -rank)
        await db.flush()
        for rank, member in moved:
            setattr(member, collection.position_attr, rank)

    if moved or head.size != len(members):
        head.size = len(members)
        head.version += 1
        record_repair(collection.name)
        record_ordinal_operation(collection.name, "repair")
        logger.warning(
            "ordinal_partition_repaired",
            collection=collection.name,
            partition_id=partition_id,
            renumbered=len(moved),
            size=head.size,
        )
    await db.flush()
    return len(moved)


async def read_ordered(db: AsyncSession, collection: OrderedCollection, partition_id: str) -> list:
    """
    Members by ascending position, repairing the partition first if the
    positions are not exactly 1..N.

    Read paths only: the repair runs its own atomic operation and commits,
    so this must not be called from inside run_atomic.
    """
    # Imported here: unit_of_work sits above the store
    from tableside.services.unit_of_work import run_atomic

    members = await load_ordered(db, collection, partition_id)
    positions = [getattr(m, collection.position_attr) for m in members]
    if is_dense(positions):
        return members

    logger.critical(
        "ordinal_invariant_violated",
        collection=collection.name,
        partition_id=partition_id,
        positions=positions,
    )

    async def heal():
        await repair(db, collection, partition_id)

    await run_atomic(
        db,
        heal,
        lock_keys=[collection.lock_key(partition_id)],
        name=f"repair_{collection.name}",
    )
    return await load_ordered(db, collection, partition_id)


async def partition_version(db: AsyncSession, collection: OrderedCollection, partition_id: str) -> int:
    result = await db.execute(
        select(OrdinalPartition.version).where(
            OrdinalPartition.collection == collection.name,
            OrdinalPartition.partition_id == partition_id,
        )
    )
    return result.scalar_one_or_none() or 0


async def drop_partition(db: AsyncSession, collection: OrderedCollection, partition_id: str) -> None:
    """Forget a partition's sequence, e.g. when its playlist is deleted."""
    await db.execute(
        delete(OrdinalPartition).where(
            OrdinalPartition.collection == collection.name,
            OrdinalPartition.partition_id == partition_id,
        )
    )
