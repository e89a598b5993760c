"""
Pydantic schemas for song request validation and queue views.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from tableside.db.base import ensure_utc, utcnow
from tableside.models.request import RequestStatus


class RequestCreate(BaseModel):
    restaurant_id: str = Field(..., min_length=1, max_length=36)
    user_id: str = Field(..., min_length=1, max_length=64)
    song_id: str = Field(..., min_length=1, max_length=36)
    user_table: Optional[str] = Field(None, max_length=50)


class RequestStatusUpdate(BaseModel):
    status: Literal["playing", "completed", "cancelled"]

    model_config = ConfigDict(extra="forbid")


class RequestResponse(BaseModel):
    id: str
    restaurant_id: str
    user_id: str
    song_id: str
    status: RequestStatus
    queue_position: int
    user_table: Optional[str]
    requested_at: datetime
    started_playing_at: Optional[datetime]
    completed_at: Optional[datetime]

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def wait_time_minutes(self) -> int:
        """Whole minutes since the request was made."""
        return max(int((utcnow() - ensure_utc(self.requested_at)).total_seconds() // 60), 0)


class QueueEntry(BaseModel):
    id: str
    song_id: str
    user_id: str
    user_table: Optional[str]
    status: RequestStatus
    queue_position: int
    requested_at: datetime
    estimated_wait_minutes: int


class QueueResponse(BaseModel):
    restaurant_id: str
    version: int
    requests: list[QueueEntry]
    total: int
    cached: bool = False


class UserRequestsResponse(BaseModel):
    user_id: str
    requests: list[RequestResponse]
    total: int
    active: int
    requests_today: int


class TopSong(BaseModel):
    song_id: str
    title: str
    artist: str
    request_count: int


class RequestStatsResponse(BaseModel):
    restaurant_id: str
    period: str
    total_requests: int
    pending_requests: int
    playing_requests: int
    completed_requests: int
    cancelled_requests: int
    unique_users: int
    completion_rate: float
    top_songs: list[TopSong]
