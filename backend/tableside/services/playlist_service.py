"""
Playlist service: playlist metadata and the order of songs inside it.

Entry ordering goes through the ordinal store with the playlist as the
partition, so add/remove/move keep positions at exactly 1..M. Every
membership change reconciles song_count and total_duration in the same
transaction.
"""

from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.errors import NotFound
from tableside.core.logging import get_logger
from tableside.models import Playlist, PlaylistEntry, Song
from tableside.schemas.playlist import PlaylistCreate, PlaylistUpdate
from tableside.services import ordinal_store, stats_service
from tableside.services.ordinal_store import PLAYLIST_ENTRIES
from tableside.services.unit_of_work import run_atomic

logger = get_logger(__name__)


async def get_playlist(db: AsyncSession, playlist_id: str) -> Playlist:
    playlist = await db.get(Playlist, playlist_id, populate_existing=True)
    if playlist is None:
        raise NotFound(f"Playlist {playlist_id} not found")
    return playlist


async def get_entry(db: AsyncSession, entry_id: str, playlist_id: Optional[str] = None) -> PlaylistEntry:
    entry = await db.get(PlaylistEntry, entry_id, populate_existing=True)
    if entry is None or (playlist_id is not None and entry.playlist_id != playlist_id):
        raise NotFound(f"Playlist entry {entry_id} not found")
    return entry


async def create_playlist(db: AsyncSession, owner_id: str, data: PlaylistCreate) -> Playlist:
    playlist = Playlist(
        owner_id=owner_id,
        name=data.name,
        description=data.description,
        is_public=data.is_public,
        is_collaborative=data.is_collaborative,
    )
    db.add(playlist)
    await db.flush()
    await db.refresh(playlist)

    logger.info("playlist_created", playlist_id=playlist.id, owner_id=owner_id)
    return playlist


async def list_playlists(
    db: AsyncSession,
    owner_id: str,
    public_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> list[Playlist]:
    query = select(Playlist).where(Playlist.owner_id == owner_id)
    if public_only:
        query = query.where(Playlist.is_public.is_(True))
    result = await db.execute(query.order_by(Playlist.created_at.desc()).offset(offset).limit(limit))
    return list(result.scalars().all())


async def update_playlist(db: AsyncSession, playlist_id: str, changes: PlaylistUpdate) -> Playlist:
    """Apply only the fields the caller actually sent."""
    playlist = await get_playlist(db, playlist_id)
    updates = changes.model_dump(exclude_unset=True)
    for field, value in updates.items():
        setattr(playlist, field, value)
    await db.flush()
    await db.refresh(playlist)

    logger.info("playlist_updated", playlist_id=playlist_id, fields=sorted(updates))
    return playlist


async def delete_playlist(db: AsyncSession, playlist_id: str) -> None:
    await get_playlist(db, playlist_id)

    async def remove_all() -> None:
        await db.execute(delete(PlaylistEntry).where(PlaylistEntry.playlist_id == playlist_id))
        await db.execute(delete(Playlist).where(Playlist.id == playlist_id))
        await ordinal_store.drop_partition(db, PLAYLIST_ENTRIES, playlist_id)

    await run_atomic(
        db,
        remove_all,
        lock_keys=[PLAYLIST_ENTRIES.lock_key(playlist_id)],
        name="delete_playlist",
    )
    logger.info("playlist_deleted", playlist_id=playlist_id)


async def get_entries(db: AsyncSession, playlist_id: str) -> list[PlaylistEntry]:
    await get_playlist(db, playlist_id)
    return await ordinal_store.read_ordered(db, PLAYLIST_ENTRIES, playlist_id)


async def add_song(
    db: AsyncSession,
    playlist_id: str,
    song_id: str,
    position: Optional[int] = None,
    added_by: Optional[str] = None,
) -> PlaylistEntry:
    """Insert a song at `position` (default: the end), shifting later entries down."""

    async def insert() -> PlaylistEntry:
        await get_playlist(db, playlist_id)
        if await db.get(Song, song_id) is None:
            raise NotFound(f"Song {song_id} not found")

        entry = PlaylistEntry(song_id=song_id, added_by=added_by)
        await ordinal_store.insert_at(db, PLAYLIST_ENTRIES, playlist_id, entry, position)
        await stats_service.reconcile_playlist(db, playlist_id)
        return entry

    entry = await run_atomic(
        db,
        insert,
        lock_keys=[PLAYLIST_ENTRIES.lock_key(playlist_id)],
        name="add_playlist_song",
    )
    logger.info(
        "playlist_song_added",
        playlist_id=playlist_id,
        song_id=song_id,
        entry_id=entry.id,
        position=entry.position,
    )
    return entry


async def remove_song(db: AsyncSession, entry_id: str, playlist_id: Optional[str] = None) -> Playlist:
    """Delete an entry and close the gap. Returns the reconciled playlist."""
    playlist_id = (await get_entry(db, entry_id, playlist_id)).playlist_id

    async def remove() -> Playlist:
        entry = await get_entry(db, entry_id, playlist_id)
        await ordinal_store.remove_and_compact(
            db, PLAYLIST_ENTRIES, playlist_id, entry, release=db.delete
        )
        return await stats_service.reconcile_playlist(db, playlist_id)

    playlist = await run_atomic(
        db,
        remove,
        lock_keys=[PLAYLIST_ENTRIES.lock_key(playlist_id)],
        name="remove_playlist_song",
    )
    logger.info("playlist_song_removed", playlist_id=playlist_id, entry_id=entry_id)
    return playlist


async def move_song(
    db: AsyncSession,
    entry_id: str,
    new_position: int,
    playlist_id: Optional[str] = None,
) -> PlaylistEntry:
    playlist_id = (await get_entry(db, entry_id, playlist_id)).playlist_id

    async def move() -> PlaylistEntry:
        entry = await get_entry(db, entry_id, playlist_id)
        await ordinal_store.move_to(db, PLAYLIST_ENTRIES, playlist_id, entry, new_position)
        await stats_service.reconcile_playlist(db, playlist_id)
        logger.info(
            "playlist_song_moved",
            playlist_id=playlist_id,
            entry_id=entry_id,
            to_position=entry.position,
        )
        return entry

    return await run_atomic(
        db,
        move,
        lock_keys=[PLAYLIST_ENTRIES.lock_key(playlist_id)],
        name="move_playlist_song",
    )
