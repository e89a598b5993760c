"""
A diner's own requests.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.db.session import get_db
from tableside.models import RequestStatus
from tableside.schemas.request import RequestResponse, UserRequestsResponse
from tableside.services.admission_service import count_requests_today
from tableside.services.request_service import get_user_requests

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/{user_id}/requests", response_model=UserRequestsResponse)
async def list_user_requests(
    user_id: str,
    restaurant_id: Optional[str] = Query(None),
    status: Optional[RequestStatus] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Newest first, with how many are still active and how many were made today."""
    requests = await get_user_requests(db, user_id, restaurant_id=restaurant_id, status=status, limit=limit)
    requests_today = await count_requests_today(db, user_id)

    return UserRequestsResponse(
        user_id=user_id,
        requests=[RequestResponse.model_validate(r) for r in requests],
        total=len(requests),
        active=sum(1 for r in requests if r.is_active),
        requests_today=requests_today,
    )
