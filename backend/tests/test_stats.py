"""
Tests for the stats reconciler outside of playlists.
"""

import pytest

from tableside.core.errors import NotFound
from tableside.db.base import new_id
from tableside.models import Review, Song
from tableside.services import stats_service


@pytest.mark.asyncio
async def test_restaurant_rating_is_rounded_average(db_session, restaurant):
    db_session.add_all([
        Review(restaurant_id=restaurant.id, user_id="U1", rating=5),
        Review(restaurant_id=restaurant.id, user_id="U2", rating=4),
        Review(restaurant_id=restaurant.id, user_id="U3", rating=4),
    ])
    await db_session.commit()

    updated = await stats_service.reconcile_restaurant_rating(db_session, restaurant.id)

    assert updated.rating == 4.33
    assert updated.total_reviews == 3


@pytest.mark.asyncio
async def test_restaurant_without_reviews(db_session, restaurant):
    updated = await stats_service.reconcile_restaurant_rating(db_session, restaurant.id)

    assert updated.rating == 0.0
    assert updated.total_reviews == 0


@pytest.mark.asyncio
async def test_rating_reconcile_is_idempotent(db_session, restaurant):
    db_session.add(Review(restaurant_id=restaurant.id, user_id="U1", rating=3))
    await db_session.commit()

    first = await stats_service.reconcile_restaurant_rating(db_session, restaurant.id)
    snapshot = (first.rating, first.total_reviews)
    second = await stats_service.reconcile_restaurant_rating(db_session, restaurant.id)

    assert (second.rating, second.total_reviews) == snapshot == (3.0, 1)


@pytest.mark.asyncio
async def test_unknown_targets(db_session):
    with pytest.raises(NotFound):
        await stats_service.reconcile_restaurant_rating(db_session, new_id())
    with pytest.raises(NotFound):
        await stats_service.reconcile_playlist(db_session, new_id())


@pytest.mark.asyncio
async def test_record_play_increments(db_session, songs):
    await stats_service.record_play(db_session, songs[0].id)
    await stats_service.record_play(db_session, songs[0].id)
    await db_session.commit()

    song = await db_session.get(Song, songs[0].id, populate_existing=True)
    assert song.play_count == 2
