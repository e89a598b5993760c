"""
Tests for playlist ordering and the reconciled playlist counters.
"""

import pytest
from sqlalchemy import delete, select

from tableside.core.errors import InvalidPosition, NotFound
from tableside.db.base import new_id
from tableside.models import OrdinalPartition, PlaylistEntry
from tableside.schemas.playlist import PlaylistCreate, PlaylistUpdate
from tableside.services import playlist_service, stats_service


async def song_order(db, playlist_id):
    entries = await playlist_service.get_entries(db, playlist_id)
    return [(e.position, e.song_id) for e in entries]


@pytest.mark.asyncio
async def test_scenario_insert_then_remove_in_the_middle(db_session, playlist, open_songs):
    """[A,B,C] + D at 2 gives [A,D,B,C]; removing D gives [A,B,C] back."""
    a, b, c, d = (s.id for s in open_songs[:4])
    for song_id in (a, b, c):
        await playlist_service.add_song(db_session, playlist.id, song_id)

    entry_d = await playlist_service.add_song(db_session, playlist.id, d, position=2)

    assert entry_d.position == 2
    assert await song_order(db_session, playlist.id) == [(1, a), (2, d), (3, b), (4, c)]

    await playlist_service.remove_song(db_session, entry_d.id)

    assert await song_order(db_session, playlist.id) == [(1, a), (2, b), (3, c)]


@pytest.mark.asyncio
async def test_counters_follow_membership(db_session, playlist, open_songs):
    first = await playlist_service.add_song(db_session, playlist.id, open_songs[0].id)
    await playlist_service.add_song(db_session, playlist.id, open_songs[1].id)

    refreshed = await playlist_service.get_playlist(db_session, playlist.id)
    assert refreshed.song_count == 2
    assert refreshed.total_duration == open_songs[0].duration_seconds + open_songs[1].duration_seconds

    after = await playlist_service.remove_song(db_session, first.id)
    assert after.song_count == 1
    assert after.total_duration == open_songs[1].duration_seconds


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(db_session, playlist, open_songs):
    for song in open_songs[:3]:
        await playlist_service.add_song(db_session, playlist.id, song.id)

    once = await stats_service.reconcile_playlist(db_session, playlist.id)
    first = (once.song_count, once.total_duration)
    twice = await stats_service.reconcile_playlist(db_session, playlist.id)

    assert (twice.song_count, twice.total_duration) == first


@pytest.mark.asyncio
async def test_reconcile_empty_playlist(db_session, playlist):
    result = await stats_service.reconcile_playlist(db_session, playlist.id)

    assert (result.song_count, result.total_duration) == (0, 0)


@pytest.mark.asyncio
async def test_move_song(db_session, playlist, open_songs):
    a, b, c = (s.id for s in open_songs[:3])
    entries = [await playlist_service.add_song(db_session, playlist.id, song_id) for song_id in (a, b, c)]

    moved = await playlist_service.move_song(db_session, entries[2].id, 1, playlist.id)

    assert moved.position == 1
    assert await song_order(db_session, playlist.id) == [(1, c), (2, a), (3, b)]


@pytest.mark.asyncio
async def test_move_after_sequence_drift_moves_the_requested_entry(db_session, playlist, open_songs):
    a, b, c, d = (s.id for s in open_songs[:4])
    entries = [await playlist_service.add_song(db_session, playlist.id, song_id) for song_id in (a, b, c, d)]
    await db_session.execute(delete(PlaylistEntry).where(PlaylistEntry.id == entries[1].id))
    await db_session.commit()

    moved = await playlist_service.move_song(db_session, entries[2].id, 1, playlist.id)

    assert moved.id == entries[2].id
    assert moved.position == 1
    assert await song_order(db_session, playlist.id) == [(1, c), (2, a), (3, d)]


@pytest.mark.asyncio
async def test_move_rejects_zero(db_session, playlist, open_songs):
    entry = await playlist_service.add_song(db_session, playlist.id, open_songs[0].id)

    with pytest.raises(InvalidPosition):
        await playlist_service.move_song(db_session, entry.id, 0)


@pytest.mark.asyncio
async def test_add_rejects_zero_and_leaves_playlist_unchanged(db_session, playlist, open_songs):
    await playlist_service.add_song(db_session, playlist.id, open_songs[0].id)

    with pytest.raises(InvalidPosition):
        await playlist_service.add_song(db_session, playlist.id, open_songs[1].id, position=0)

    assert await song_order(db_session, playlist.id) == [(1, open_songs[0].id)]


@pytest.mark.asyncio
async def test_same_song_may_appear_twice(db_session, playlist, open_songs):
    await playlist_service.add_song(db_session, playlist.id, open_songs[0].id)
    await playlist_service.add_song(db_session, playlist.id, open_songs[0].id)

    assert [p for p, _ in await song_order(db_session, playlist.id)] == [1, 2]


@pytest.mark.asyncio
async def test_add_to_unknown_playlist_or_song(db_session, playlist):
    with pytest.raises(NotFound):
        await playlist_service.add_song(db_session, new_id(), new_id())
    with pytest.raises(NotFound):
        await playlist_service.add_song(db_session, playlist.id, new_id())


@pytest.mark.asyncio
async def test_entry_must_belong_to_playlist(db_session, playlist, open_songs):
    other = await playlist_service.create_playlist(db_session, "owner-2", PlaylistCreate(owner_id="owner-2", name="Other"))
    entry = await playlist_service.add_song(db_session, other.id, open_songs[0].id)

    with pytest.raises(NotFound):
        await playlist_service.remove_song(db_session, entry.id, playlist.id)


@pytest.mark.asyncio
async def test_create_list_and_update_playlist(db_session):
    created = await playlist_service.create_playlist(
        db_session, "owner-9", PlaylistCreate(owner_id="owner-9", name="Brunch", is_public=True)
    )
    await playlist_service.create_playlist(db_session, "owner-9", PlaylistCreate(owner_id="owner-9", name="Late"))
    await db_session.commit()

    public = await playlist_service.list_playlists(db_session, "owner-9", public_only=True)
    everything = await playlist_service.list_playlists(db_session, "owner-9")

    assert [p.id for p in public] == [created.id]
    assert len(everything) == 2

    updated = await playlist_service.update_playlist(db_session, created.id, PlaylistUpdate(description="Sunday mornings"))

    assert updated.description == "Sunday mornings"
    assert updated.name == "Brunch"
    assert updated.is_public is True


@pytest.mark.asyncio
async def test_delete_playlist_removes_entries_and_sequence(db_session, playlist, open_songs):
    for song in open_songs[:2]:
        await playlist_service.add_song(db_session, playlist.id, song.id)

    await playlist_service.delete_playlist(db_session, playlist.id)

    entries = await db_session.execute(select(PlaylistEntry).where(PlaylistEntry.playlist_id == playlist.id))
    heads = await db_session.execute(select(OrdinalPartition).where(OrdinalPartition.partition_id == playlist.id))
    assert entries.scalars().all() == []
    assert heads.scalars().all() == []
    with pytest.raises(NotFound):
        await playlist_service.get_playlist(db_session, playlist.id)
