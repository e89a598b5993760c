"""
Song request endpoints: admission into the queue and status changes.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.db.session import get_db
from tableside.schemas.request import RequestCreate, RequestResponse, RequestStatusUpdate
from tableside.services.request_service import (
    advance_request,
    cancel_request,
    create_request,
    get_request,
)
from tableside.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/requests", tags=["Requests"])


@router.post("/", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request_endpoint(
    request_data: RequestCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Request a song.

    Admission checks the song, the restaurant, the diner's daily quota, the
    queue limit and duplicates, then appends the request to the end of the
    restaurant's queue. Rejections come back as 404/409/429 with the reason
    in the `error` field.
    """
    return await create_request(
        db,
        restaurant_id=request_data.restaurant_id,
        user_id=request_data.user_id,
        song_id=request_data.song_id,
        user_table=request_data.user_table,
    )


@router.get("/{request_id}", response_model=RequestResponse)
async def get_request_endpoint(
    request_id: str,
    db: AsyncSession = Depends(get_db),
):
    return await get_request(db, request_id)


@router.patch("/{request_id}/status", response_model=RequestResponse)
async def update_request_status(
    request_id: str,
    update: RequestStatusUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Move a request to playing, completed or cancelled."""
    return await advance_request(db, request_id, update.status)


@router.delete("/{request_id}", response_model=RequestResponse)
async def cancel_request_endpoint(
    request_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Cancel a request. Cancelled requests still count toward the day's quota."""
    return await cancel_request(db, request_id)
