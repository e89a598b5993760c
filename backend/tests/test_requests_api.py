"""
Tests for request, queue, stats and user endpoints.
"""

import pytest
from httpx import AsyncClient

from tableside.api.routes import requests as request_routes
from tableside.api.routes import restaurants as restaurant_routes
from tableside.core.errors import ConcurrencyConflict, PersistenceFailure
from tableside.models import Song


async def post_request(client, restaurant_id, user_id, song_id, **extra):
    return await client.post(
        "/api/v1/requests/",
        json={"restaurant_id": restaurant_id, "user_id": user_id, "song_id": song_id, **extra},
    )


@pytest.mark.asyncio
async def test_create_request(client: AsyncClient, restaurant, songs):
    """An admitted request starts pending at the end of the queue."""
    response = await post_request(client, restaurant.id, "U1", songs[0].id, user_table="12")

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert data["queue_position"] == 1
    assert data["user_table"] == "12"
    assert data["wait_time_minutes"] == 0
    assert data["started_playing_at"] is None


@pytest.mark.asyncio
async def test_quota_exceeded_returns_429(client: AsyncClient, restaurant, songs):
    await post_request(client, restaurant.id, "U1", songs[0].id)
    await post_request(client, restaurant.id, "U1", songs[1].id)

    response = await post_request(client, restaurant.id, "U1", songs[2].id)

    assert response.status_code == 429
    assert response.json()["error"] == "quota_exceeded"


@pytest.mark.asyncio
async def test_unknown_restaurant_returns_404(client: AsyncClient, songs):
    response = await post_request(client, "no-such-restaurant", "U1", songs[0].id)

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_unavailable_song_returns_404(client: AsyncClient, restaurant):
    response = await post_request(client, restaurant.id, "U1", "no-such-song")

    assert response.status_code == 404
    assert response.json()["error"] == "song_unavailable"


@pytest.mark.asyncio
async def test_inactive_restaurant_returns_409(client: AsyncClient, db_session, inactive_restaurant):
    song = Song(restaurant_id=inactive_restaurant.id, title="Closed", artist="Nobody")
    db_session.add(song)
    await db_session.commit()

    response = await post_request(client, inactive_restaurant.id, "U1", song.id)

    assert response.status_code == 409
    assert response.json()["error"] == "restaurant_inactive"


@pytest.mark.asyncio
async def test_duplicate_returns_409(client: AsyncClient, restaurant, songs):
    await post_request(client, restaurant.id, "U1", songs[0].id)

    response = await post_request(client, restaurant.id, "U1", songs[0].id)

    assert response.status_code == 409
    assert response.json()["error"] == "duplicate_request"


@pytest.mark.asyncio
async def test_missing_fields_return_422(client: AsyncClient, restaurant):
    response = await client.post("/api/v1/requests/", json={"restaurant_id": restaurant.id})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_request(client: AsyncClient, restaurant, songs):
    created = (await post_request(client, restaurant.id, "U1", songs[0].id)).json()

    response = await client.get(f"/api/v1/requests/{created['id']}")

    assert response.status_code == 200
    assert response.json()["id"] == created["id"]
    assert (await client.get("/api/v1/requests/missing")).status_code == 404


@pytest.mark.asyncio
async def test_advance_through_the_queue(client: AsyncClient, open_restaurant, open_songs):
    ids = [
        (await post_request(client, open_restaurant.id, f"U{i}", open_songs[i].id)).json()["id"]
        for i in range(3)
    ]

    playing = await client.patch(f"/api/v1/requests/{ids[0]}/status", json={"status": "playing"})
    assert playing.status_code == 200
    assert playing.json()["started_playing_at"] is not None
    assert playing.json()["queue_position"] == 1

    done = await client.patch(f"/api/v1/requests/{ids[0]}/status", json={"status": "completed"})
    assert done.status_code == 200
    assert done.json()["status"] == "completed"

    queue = (await client.get(f"/api/v1/restaurants/{open_restaurant.id}/queue")).json()
    assert [r["id"] for r in queue["requests"]] == ids[1:]
    assert [r["queue_position"] for r in queue["requests"]] == [1, 2]


@pytest.mark.asyncio
async def test_invalid_transition_returns_409(client: AsyncClient, restaurant, songs):
    request_id = (await post_request(client, restaurant.id, "U1", songs[0].id)).json()["id"]
    await client.delete(f"/api/v1/requests/{request_id}")

    response = await client.patch(f"/api/v1/requests/{request_id}/status", json={"status": "playing"})

    assert response.status_code == 409
    assert response.json()["error"] == "invalid_transition"


@pytest.mark.asyncio
async def test_unknown_status_value_returns_422(client: AsyncClient, restaurant, songs):
    request_id = (await post_request(client, restaurant.id, "U1", songs[0].id)).json()["id"]

    response = await client.patch(f"/api/v1/requests/{request_id}/status", json={"status": "pending"})
    assert response.status_code == 422

    response = await client.patch(
        f"/api/v1/requests/{request_id}/status", json={"status": "playing", "queue_position": 5}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_cancel_request(client: AsyncClient, restaurant, songs):
    first = (await post_request(client, restaurant.id, "U1", songs[0].id)).json()
    second = (await post_request(client, restaurant.id, "U2", songs[1].id)).json()

    response = await client.delete(f"/api/v1/requests/{first['id']}")

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    moved_up = (await client.get(f"/api/v1/requests/{second['id']}")).json()
    assert moved_up["queue_position"] == 1


@pytest.mark.asyncio
async def test_queue_view(client: AsyncClient, open_restaurant, open_songs):
    for i in range(3):
        await post_request(client, open_restaurant.id, f"U{i}", open_songs[i].id, user_table=str(i))

    response = await client.get(f"/api/v1/restaurants/{open_restaurant.id}/queue")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 3
    assert data["cached"] is False
    assert data["version"] == 4
    assert [r["queue_position"] for r in data["requests"]] == [1, 2, 3]
    assert [r["estimated_wait_minutes"] for r in data["requests"]] == [3, 6, 9]


class FakeQueueCache:
    def __init__(self, stored=None):
        self.stored = stored
        self.writes = []

    async def get(self, restaurant_id):
        return self.stored

    async def set(self, restaurant_id, data):
        self.writes.append(data)


@pytest.fixture
def queue_cache(monkeypatch):
    cache = FakeQueueCache()
    monkeypatch.setattr(restaurant_routes, "get_cached_queue", cache.get)
    monkeypatch.setattr(restaurant_routes, "set_cached_queue", cache.set)
    return cache


@pytest.mark.asyncio
async def test_queue_view_ignores_cached_view_from_older_version(client: AsyncClient, queue_cache, open_restaurant, open_songs):
    queue_cache.stored = {"restaurant_id": open_restaurant.id, "version": 1, "requests": [], "total": 0}
    for i in range(2):
        await post_request(client, open_restaurant.id, f"U{i}", open_songs[i].id)

    response = await client.get(f"/api/v1/restaurants/{open_restaurant.id}/queue")

    data = response.json()
    assert data["cached"] is False
    assert data["total"] == 2
    assert [w["version"] for w in queue_cache.writes] == [data["version"]]


@pytest.mark.asyncio
async def test_queue_view_serves_cached_view_of_current_version(client: AsyncClient, queue_cache, open_restaurant, open_songs):
    await post_request(client, open_restaurant.id, "U1", open_songs[0].id)
    fresh = (await client.get(f"/api/v1/restaurants/{open_restaurant.id}/queue")).json()
    queue_cache.stored = queue_cache.writes[-1]

    response = await client.get(f"/api/v1/restaurants/{open_restaurant.id}/queue")

    assert response.json()["cached"] is True
    assert response.json()["requests"] == fresh["requests"]
    assert len(queue_cache.writes) == 1


@pytest.mark.asyncio
async def test_queue_view_unknown_restaurant(client: AsyncClient):
    response = await client.get("/api/v1/restaurants/missing/queue")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_request_stats_endpoint(client: AsyncClient, open_restaurant, open_songs):
    created = (await post_request(client, open_restaurant.id, "U1", open_songs[0].id)).json()
    await post_request(client, open_restaurant.id, "U2", open_songs[1].id)
    await client.patch(f"/api/v1/requests/{created['id']}/status", json={"status": "completed"})

    response = await client.get(f"/api/v1/restaurants/{open_restaurant.id}/requests/stats?period=7d")

    assert response.status_code == 200
    data = response.json()
    assert data["restaurant_id"] == open_restaurant.id
    assert data["period"] == "7d"
    assert data["total_requests"] == 2
    assert data["completed_requests"] == 1
    assert data["completion_rate"] == 50.0
    assert len(data["top_songs"]) == 2


@pytest.mark.asyncio
async def test_request_stats_rejects_unknown_period(client: AsyncClient, open_restaurant):
    response = await client.get(f"/api/v1/restaurants/{open_restaurant.id}/requests/stats?period=2w")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_user_requests(client: AsyncClient, restaurant, songs):
    first = (await post_request(client, restaurant.id, "U1", songs[0].id)).json()
    await post_request(client, restaurant.id, "U1", songs[1].id)
    await client.delete(f"/api/v1/requests/{first['id']}")

    response = await client.get("/api/v1/users/U1/requests")

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["active"] == 1
    assert data["requests_today"] == 2

    cancelled = (await client.get("/api/v1/users/U1/requests?status=cancelled")).json()
    assert [r["id"] for r in cancelled["requests"]] == [first["id"]]


@pytest.mark.asyncio
async def test_concurrency_conflict_returns_503_with_retry_after(client: AsyncClient, restaurant, songs, monkeypatch):
    async def contended(*args, **kwargs):
        raise ConcurrencyConflict("create_request could not complete due to concurrent updates.")

    monkeypatch.setattr(request_routes, "create_request", contended)

    response = await post_request(client, restaurant.id, "U1", songs[0].id)

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json()["error"] == "concurrency_conflict"


@pytest.mark.asyncio
async def test_persistence_failure_returns_500(client: AsyncClient, restaurant, songs, monkeypatch):
    async def broken(*args, **kwargs):
        raise PersistenceFailure("create_request failed")

    monkeypatch.setattr(request_routes, "create_request", broken)

    response = await post_request(client, restaurant.id, "U1", songs[0].id)

    assert response.status_code == 500
    assert response.json() == {"detail": "create_request failed", "error": "persistence_failure"}


@pytest.mark.asyncio
async def test_request_id_header_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "abc123"})

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "abc123"
    assert response.json()["cache"] == {"status": "disabled"}


@pytest.mark.asyncio
async def test_unusable_request_id_header_is_replaced(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "bad id with spaces"})

    assert response.headers["X-Request-ID"] != "bad id with spaces"
    assert len(response.headers["X-Request-ID"]) == 8


@pytest.mark.asyncio
async def test_metrics_endpoint(client: AsyncClient, restaurant, songs):
    await post_request(client, restaurant.id, "U1", songs[0].id)

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "queue_admissions_total" in response.text
