"""
Pydantic schemas for playlists and their ordered entries.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PlaylistCreate(BaseModel):
    owner_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    is_public: bool = False
    is_collaborative: bool = False


class PlaylistUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    is_public: Optional[bool] = None
    is_collaborative: Optional[bool] = None

    # song_count/total_duration are derived and never accepted from clients
    model_config = ConfigDict(extra="forbid")

    @field_validator("name", "is_public", "is_collaborative")
    @classmethod
    def reject_null(cls, value):
        # These columns are NOT NULL: omit the field to leave it unchanged
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class PlaylistResponse(BaseModel):
    id: str
    owner_id: str
    name: str
    description: Optional[str]
    is_public: bool
    is_collaborative: bool
    song_count: int
    total_duration: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class PlaylistEntryCreate(BaseModel):
    song_id: str = Field(..., min_length=1, max_length=36)
    # Omitted means append; values past the end are appended too
    position: Optional[int] = None
    added_by: Optional[str] = Field(None, max_length=64)


class PlaylistEntryMove(BaseModel):
    position: int


class PlaylistEntryResponse(BaseModel):
    id: str
    playlist_id: str
    song_id: str
    position: int
    added_by: Optional[str]
    added_at: datetime

    model_config = {"from_attributes": True}


class PlaylistDetailResponse(PlaylistResponse):
    entries: list[PlaylistEntryResponse]
