"""
Playlist endpoints. Entry order is kept dense (1..M) by the service layer.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.db.session import get_db
from tableside.schemas.playlist import (
    PlaylistCreate,
    PlaylistDetailResponse,
    PlaylistEntryCreate,
    PlaylistEntryMove,
    PlaylistEntryResponse,
    PlaylistResponse,
    PlaylistUpdate,
)
from tableside.services import playlist_service
from tableside.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/playlists", tags=["Playlists"])


async def _detail(db: AsyncSession, playlist_id: str) -> PlaylistDetailResponse:
    playlist = await playlist_service.get_playlist(db, playlist_id)
    entries = await playlist_service.get_entries(db, playlist_id)
    return PlaylistDetailResponse(
        **PlaylistResponse.model_validate(playlist).model_dump(),
        entries=[PlaylistEntryResponse.model_validate(e) for e in entries],
    )


@router.post("/", response_model=PlaylistResponse, status_code=status.HTTP_201_CREATED)
async def create_playlist_endpoint(
    playlist_data: PlaylistCreate,
    db: AsyncSession = Depends(get_db),
):
    return await playlist_service.create_playlist(db, playlist_data.owner_id, playlist_data)


@router.get("/", response_model=list[PlaylistResponse])
async def list_playlists_endpoint(
    owner_id: str = Query(..., min_length=1),
    public_only: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    return await playlist_service.list_playlists(db, owner_id, public_only, limit, offset)


@router.get("/{playlist_id}", response_model=PlaylistDetailResponse)
async def get_playlist_endpoint(
    playlist_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Playlist metadata plus its entries in position order."""
    return await _detail(db, playlist_id)


@router.patch("/{playlist_id}", response_model=PlaylistResponse)
async def update_playlist_endpoint(
    playlist_id: str,
    changes: PlaylistUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update name, description or visibility. Derived counters are read-only."""
    return await playlist_service.update_playlist(db, playlist_id, changes)


@router.delete("/{playlist_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_playlist_endpoint(
    playlist_id: str,
    db: AsyncSession = Depends(get_db),
):
    await playlist_service.delete_playlist(db, playlist_id)


@router.post("/{playlist_id}/songs", response_model=PlaylistDetailResponse, status_code=status.HTTP_201_CREATED)
async def add_song_endpoint(
    playlist_id: str,
    entry_data: PlaylistEntryCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Add a song at `position`, shifting the songs at and after it down by one.
    Without a position (or past the end) the song is appended.
    """
    await playlist_service.add_song(
        db,
        playlist_id,
        entry_data.song_id,
        position=entry_data.position,
        added_by=entry_data.added_by,
    )
    return await _detail(db, playlist_id)


@router.delete("/{playlist_id}/songs/{entry_id}", response_model=PlaylistDetailResponse)
async def remove_song_endpoint(
    playlist_id: str,
    entry_id: str,
    db: AsyncSession = Depends(get_db),
):
    await playlist_service.remove_song(db, entry_id, playlist_id)
    return await _detail(db, playlist_id)


@router.patch("/{playlist_id}/songs/{entry_id}", response_model=PlaylistDetailResponse)
async def move_song_endpoint(
    playlist_id: str,
    entry_id: str,
    move: PlaylistEntryMove,
    db: AsyncSession = Depends(get_db),
):
    await playlist_service.move_song(db, entry_id, move.position, playlist_id)
    return await _detail(db, playlist_id)
