"""
Admission control for song requests.

check_admission() answers "may this user queue this song here, right now?"
with an explicit AdmissionDecision. Checks run in order and stop at the
first failure:

  1. The song exists, belongs to the restaurant and is active   -> song_unavailable
  2. The restaurant is active                                    -> restaurant_inactive
  3. The user's requests today (all restaurants) < daily limit   -> quota_exceeded
  4. The restaurant's active queue < queue_limit                 -> queue_full
  5. The user has no active request for the same song there      -> duplicate_request

An unknown restaurant is not a rejection: it raises NotFound.

Check-then-act:
  A decision is only authoritative inside the locked transaction that
  inserts the request (request_service.create_request holds the user lock
  and the restaurant queue lock while it re-runs this check). Called on its
  own it is advisory, e.g. to grey out a "request" button.

Quota policy:
  Every request made today counts, whatever its status. Cancelling does not
  give the slot back; the request already occupied the queue.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.config import get_settings
from tableside.core.errors import REJECTIONS, ErrorKind, NotFound
from tableside.core.logging import get_logger
from tableside.db.base import utcnow
from tableside.models import ACTIVE_STATUSES, Restaurant, Song, SongRequest
from tableside.services.ordinal_store import REQUEST_QUEUE, count_members

logger = get_logger(__name__)


@dataclass(frozen=True)
class AdmissionDecision:
    admitted: bool
    reason: Optional[ErrorKind] = None
    detail: str = ""
    requests_today: int = 0
    queue_size: int = 0

    @property
    def result(self) -> str:
        return "admitted" if self.admitted else self.reason.value

    def raise_for_rejection(self) -> None:
        if not self.admitted:
            raise REJECTIONS[self.reason](self.detail)


def quota_window(now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """Start and end (UTC) of the calendar day containing `now` in QUOTA_TIMEZONE."""
    tz = ZoneInfo(get_settings().QUOTA_TIMEZONE)
    local = (now or utcnow()).astimezone(tz)
    start = local.replace(hour=0, minute=0, second=0, microsecond=0)
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


async def count_requests_today(db: AsyncSession, user_id: str, now: Optional[datetime] = None) -> int:
    start, end = quota_window(now)
    result = await db.execute(
        select(func.count(SongRequest.id)).where(
            SongRequest.user_id == user_id,
            SongRequest.requested_at >= start,
            SongRequest.requested_at < end,
        )
    )
    return result.scalar_one()


async def check_admission(
    db: AsyncSession,
    user_id: str,
    restaurant_id: str,
    song_id: str,
    now: Optional[datetime] = None,
) -> AdmissionDecision:
    restaurant = await db.get(Restaurant, restaurant_id, populate_existing=True)
    if restaurant is None:
        raise NotFound(f"Restaurant {restaurant_id} not found")

    song = await db.get(Song, song_id, populate_existing=True)
    if song is None or song.restaurant_id != restaurant_id or not song.is_active:
        return AdmissionDecision(
            admitted=False,
            reason=ErrorKind.SONG_UNAVAILABLE,
            detail="Song not found in this restaurant",
        )

    if not restaurant.is_active:
        return AdmissionDecision(
            admitted=False,
            reason=ErrorKind.RESTAURANT_INACTIVE,
            detail="Restaurant is not accepting requests",
        )

    requests_today = await count_requests_today(db, user_id, now)
    if requests_today >= restaurant.max_requests_per_user:
        return AdmissionDecision(
            admitted=False,
            reason=ErrorKind.QUOTA_EXCEEDED,
            detail=f"Maximum {restaurant.max_requests_per_user} requests per day reached",
            requests_today=requests_today,
        )

    queue_size = await count_members(db, REQUEST_QUEUE, restaurant_id)
    if queue_size >= restaurant.queue_limit:
        return AdmissionDecision(
            admitted=False,
            reason=ErrorKind.QUEUE_FULL,
            detail="Queue is full, please try again later",
            requests_today=requests_today,
            queue_size=queue_size,
        )

    duplicate = await db.execute(
        select(SongRequest.id)
        .where(
            SongRequest.restaurant_id == restaurant_id,
            SongRequest.user_id == user_id,
            SongRequest.song_id == song_id,
            SongRequest.status.in_(ACTIVE_STATUSES),
        )
        .limit(1)
    )
    if duplicate.scalar_one_or_none() is not None:
        return AdmissionDecision(
            admitted=False,
            reason=ErrorKind.DUPLICATE_REQUEST,
            detail="You have already requested this song",
            requests_today=requests_today,
            queue_size=queue_size,
        )

    return AdmissionDecision(admitted=True, requests_today=requests_today, queue_size=queue_size)
