"""
Request lifecycle: admission, queue position and status transitions.

STATE MACHINE
=============

    pending ──> playing ──> completed
       │           │
       │           └──────> cancelled
       ├──────────────────> completed   (skipped by the player)
       └──────────────────> cancelled

completed and cancelled are terminal.

Every request holding pending or playing owns one slot in its restaurant's
queue partition. Leaving the active set is the only way a slot is freed,
and the status change, the compaction of the positions behind it and the
stats update commit as one unit (unit_of_work.run_atomic). A request that
starts playing keeps its position.

Locks:
  create_request   user lock + restaurant queue lock (admission re-checks
                   the daily quota, which spans restaurants)
  advance_request  restaurant queue lock

The cached queue view of the restaurant is invalidated after every commit.
"""

from datetime import datetime, timedelta
from typing import Optional, Union

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.config import get_settings
from tableside.core.errors import InvalidTransition, NotFound
from tableside.core.logging import get_logger
from tableside.core.metrics import record_admission, record_transition
from tableside.db.base import utcnow
from tableside.models import Restaurant, Song, SongRequest, RequestStatus
from tableside.services import ordinal_store, stats_service
from tableside.services.admission_service import check_admission
from tableside.services.cache_service import invalidate_queue_cache
from tableside.services.locks import user_lock
from tableside.services.ordinal_store import REQUEST_QUEUE
from tableside.services.unit_of_work import run_atomic

logger = get_logger(__name__)

TRANSITIONS: dict[RequestStatus, frozenset] = {
    RequestStatus.PENDING: frozenset({RequestStatus.PLAYING, RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
    RequestStatus.PLAYING: frozenset({RequestStatus.COMPLETED, RequestStatus.CANCELLED}),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

STATS_PERIODS = {
    "1h": timedelta(hours=1),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "all": None,
}


async def get_request(db: AsyncSession, request_id: str) -> SongRequest:
    result = await db.execute(
        select(SongRequest)
        .where(SongRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    request = result.scalar_one_or_none()
    if request is None:
        raise NotFound(f"Request {request_id} not found")
    return request


async def create_request(
    db: AsyncSession,
    restaurant_id: str,
    user_id: str,
    song_id: str,
    user_table: Optional[str] = None,
) -> SongRequest:
    """
    Admit a song request and append it to the restaurant's queue.

    Raises the matching AdmissionRejected subclass when turned away.
    """

    async def admit_and_enqueue() -> SongRequest:
        decision = await check_admission(db, user_id, restaurant_id, song_id)
        if not decision.admitted:
            record_admission(decision.result)
            logger.warning(
                "request_rejected",
                restaurant_id=restaurant_id,
                user_id=user_id,
                song_id=song_id,
                reason=decision.result,
            )
            decision.raise_for_rejection()

        request = SongRequest(
            user_id=user_id,
            song_id=song_id,
            user_table=user_table,
            status=RequestStatus.PENDING,
            requested_at=utcnow(),
        )
        await ordinal_store.insert_at(db, REQUEST_QUEUE, restaurant_id, request)
        return request

    request = await run_atomic(
        db,
        admit_and_enqueue,
        lock_keys=[user_lock(user_id), REQUEST_QUEUE.lock_key(restaurant_id)],
        name="create_request",
    )
    await invalidate_queue_cache(restaurant_id)

    record_admission("admitted")
    logger.info(
        "request_created",
        request_id=request.id,
        restaurant_id=restaurant_id,
        user_id=user_id,
        song_id=song_id,
        queue_position=request.queue_position,
    )
    return request


async def advance_request(
    db: AsyncSession,
    request_id: str,
    target_status: Union[RequestStatus, str],
) -> SongRequest:
    try:
        target = RequestStatus(target_status)
    except ValueError:
        raise InvalidTransition(f"Unknown request status '{target_status}'") from None

    # restaurant_id never changes, so it is safe to read before locking
    restaurant_id = (await get_request(db, request_id)).restaurant_id

    async def transition() -> SongRequest:
        request = await get_request(db, request_id)
        current = request.status
        if target not in TRANSITIONS[current]:
            raise InvalidTransition(
                f"Cannot change status from {current.value} to {target.value}",
                current=current.value,
                target=target.value,
            )

        now = utcnow()
        if target == RequestStatus.PLAYING:
            request.status = target
            request.started_playing_at = now
            await db.flush()
            return request

        async def leave_queue(member: SongRequest) -> None:
            member.status = target
            if target == RequestStatus.COMPLETED:
                member.completed_at = now

        await ordinal_store.remove_and_compact(
            db, REQUEST_QUEUE, restaurant_id, request, release=leave_queue
        )
        if target == RequestStatus.COMPLETED:
            await stats_service.record_play(db, request.song_id)
        return request

    request = await run_atomic(
        db,
        transition,
        lock_keys=[REQUEST_QUEUE.lock_key(restaurant_id)],
        name="advance_request",
    )
    await invalidate_queue_cache(restaurant_id)

    record_transition(target.value)
    logger.info(
        "request_advanced",
        request_id=request_id,
        restaurant_id=restaurant_id,
        status=target.value,
        queue_position=request.queue_position,
    )
    return request


async def cancel_request(db: AsyncSession, request_id: str) -> SongRequest:
    return await advance_request(db, request_id, RequestStatus.CANCELLED)


async def get_queue_version(db: AsyncSession, restaurant_id: str) -> int:
    """Bumped by every queue mutation; 0 before the first one."""
    return await ordinal_store.partition_version(db, REQUEST_QUEUE, restaurant_id)


async def get_restaurant_queue(db: AsyncSession, restaurant_id: str) -> tuple[list[SongRequest], int]:
    """Active requests in queue order, plus the queue's version counter."""
    if await db.get(Restaurant, restaurant_id) is None:
        raise NotFound(f"Restaurant {restaurant_id} not found")

    requests = await ordinal_store.read_ordered(db, REQUEST_QUEUE, restaurant_id)
    version = await ordinal_store.partition_version(db, REQUEST_QUEUE, restaurant_id)
    return requests, version


async def get_user_requests(
    db: AsyncSession,
    user_id: str,
    restaurant_id: Optional[str] = None,
    status: Optional[RequestStatus] = None,
    limit: int = 20,
) -> list[SongRequest]:
    """A diner's requests, newest first."""
    query = select(SongRequest).where(SongRequest.user_id == user_id)
    if restaurant_id:
        query = query.where(SongRequest.restaurant_id == restaurant_id)
    if status:
        query = query.where(SongRequest.status == status)

    result = await db.execute(
        query.order_by(SongRequest.requested_at.desc()).limit(limit).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_request_stats(
    db: AsyncSession,
    restaurant_id: str,
    period: str = "24h",
    now: Optional[datetime] = None,
) -> dict:
    """Request counts per status, unique users and top songs over a period."""
    if await db.get(Restaurant, restaurant_id) is None:
        raise NotFound(f"Restaurant {restaurant_id} not found")

    criteria = [SongRequest.restaurant_id == restaurant_id]
    window = STATS_PERIODS[period]
    if window is not None:
        criteria.append(SongRequest.requested_at >= (now or utcnow()) - window)

    def count_status(status: RequestStatus):
        return func.count(case((SongRequest.status == status, 1)))

    totals = (
        await db.execute(
            select(
                func.count(SongRequest.id),
                count_status(RequestStatus.PENDING),
                count_status(RequestStatus.PLAYING),
                count_status(RequestStatus.COMPLETED),
                count_status(RequestStatus.CANCELLED),
                func.count(func.distinct(SongRequest.user_id)),
            ).where(*criteria)
        )
    ).one()
    total, pending, playing, completed, cancelled, unique_users = (int(v) for v in totals)

    request_count = func.count(SongRequest.id).label("request_count")
    top_rows = await db.execute(
        select(Song.id, Song.title, Song.artist, request_count)
        .join(SongRequest, SongRequest.song_id == Song.id)
        .where(*criteria)
        .group_by(Song.id, Song.title, Song.artist)
        .order_by(request_count.desc(), Song.title)
        .limit(10)
    )

    return {
        "period": period,
        "total_requests": total,
        "pending_requests": pending,
        "playing_requests": playing,
        "completed_requests": completed,
        "cancelled_requests": cancelled,
        "unique_users": unique_users,
        "completion_rate": round(completed / total * 100, 2) if total else 0.0,
        "top_songs": [
            {"song_id": row.id, "title": row.title, "artist": row.artist, "request_count": row.request_count}
            for row in top_rows
        ],
    }


def estimated_wait_minutes(queue_position: int) -> int:
    return queue_position * get_settings().AVERAGE_SONG_MINUTES
