"""
Stats reconciler: derived aggregates recomputed after a committed mutation.

Runs inside the mutating operation's transaction, so the aggregate commits
together with the change that produced it.

- reconcile_playlist() and reconcile_restaurant_rating() recompute from the
  source rows. They are idempotent: running them twice without an
  intervening mutation writes the same values.
- record_play() is the one incremental update. It is called exactly once
  per request, on its transition to completed (never on cancelled).
"""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.core.errors import NotFound
from tableside.core.logging import get_logger
from tableside.models import Playlist, PlaylistEntry, Restaurant, Review, Song

logger = get_logger(__name__)


async def reconcile_playlist(db: AsyncSession, playlist_id: str) -> Playlist:
    """song_count = count(entries), total_duration = sum(song durations)."""
    playlist = await db.get(Playlist, playlist_id)
    if playlist is None:
        raise NotFound(f"Playlist {playlist_id} not found")

    result = await db.execute(
        select(
            func.count(PlaylistEntry.id),
            func.coalesce(func.sum(Song.duration_seconds), 0),
        )
        .select_from(PlaylistEntry)
        .outerjoin(Song, Song.id == PlaylistEntry.song_id)
        .where(PlaylistEntry.playlist_id == playlist_id)
    )
    song_count, total_duration = result.one()

    playlist.song_count = int(song_count)
    playlist.total_duration = int(total_duration)
    await db.flush()

    logger.debug(
        "playlist_stats_reconciled",
        playlist_id=playlist_id,
        song_count=playlist.song_count,
        total_duration=playlist.total_duration,
    )
    return playlist


async def record_play(db: AsyncSession, song_id: str) -> None:
    await db.execute(
        update(Song)
        .where(Song.id == song_id)
        .values(play_count=Song.play_count + 1)
        .execution_options(synchronize_session=False)
    )
    logger.debug("song_play_recorded", song_id=song_id)


async def reconcile_restaurant_rating(db: AsyncSession, restaurant_id: str) -> Restaurant:
    """rating = avg(review rating) to two decimals, total_reviews = count(reviews)."""
    restaurant = await db.get(Restaurant, restaurant_id)
    if restaurant is None:
        raise NotFound(f"Restaurant {restaurant_id} not found")

    result = await db.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(Review.restaurant_id == restaurant_id)
    )
    avg_rating, total = result.one()

    restaurant.rating = round(float(avg_rating or 0), 2)
    restaurant.total_reviews = int(total)
    await db.flush()

    logger.debug(
        "restaurant_rating_reconciled",
        restaurant_id=restaurant_id,
        rating=restaurant.rating,
        total_reviews=restaurant.total_reviews,
    )
    return restaurant
