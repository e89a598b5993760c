"""
Restaurant queue view (Redis cached) and request statistics.
"""

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.config import get_settings
from tableside.db.session import get_db
from tableside.schemas.request import QueueEntry, QueueResponse, RequestStatsResponse
from tableside.services.request_service import (
    estimated_wait_minutes,
    get_queue_version,
    get_request_stats,
    get_restaurant_queue,
)
from tableside.services.cache_service import get_cached_queue, set_cached_queue
from tableside.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()
router = APIRouter(prefix="/restaurants", tags=["Restaurants"])


@router.get("/{restaurant_id}/queue", response_model=QueueResponse)
async def get_queue(
    restaurant_id: str,
    db: AsyncSession = Depends(get_db),
):
    """
    Active requests in play order with their estimated wait.

    A cached view is served only while its version matches the queue's
    current version, and a view is cached only when no mutation committed
    while it was being read.
    """
    current_version = await get_queue_version(db, restaurant_id)
    cached = await get_cached_queue(restaurant_id)
    if cached and cached.get("version") == current_version:
        logger.info("queue_view_cache_hit", restaurant_id=restaurant_id)
        cached["cached"] = True
        return QueueResponse(**cached)

    requests, version = await get_restaurant_queue(db, restaurant_id)

    entries = [
        QueueEntry(
            id=r.id,
            song_id=r.song_id,
            user_id=r.user_id,
            user_table=r.user_table,
            status=r.status,
            queue_position=r.queue_position,
            requested_at=r.requested_at,
            estimated_wait_minutes=estimated_wait_minutes(r.queue_position),
        )
        for r in requests[: settings.QUEUE_VIEW_LIMIT]
    ]
    response = QueueResponse(
        restaurant_id=restaurant_id,
        version=version,
        requests=entries,
        total=len(requests),
        cached=False,
    )

    if version == current_version:
        await set_cached_queue(restaurant_id, response.model_dump(mode="json"))
    return response


@router.get("/{restaurant_id}/requests/stats", response_model=RequestStatsResponse)
async def get_stats(
    restaurant_id: str,
    period: Literal["1h", "24h", "7d", "30d", "all"] = Query("24h"),
    db: AsyncSession = Depends(get_db),
):
    stats = await get_request_stats(db, restaurant_id, period)
    return RequestStatsResponse(restaurant_id=restaurant_id, **stats)
