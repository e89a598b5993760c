"""
Locust Load Test Suite

Restaurants and songs are owned by the restaurant service, so seed them
first and point the test at them:

  export LOAD_RESTAURANT_ID=<restaurant id>
  export LOAD_SONG_IDS=<song id>,<song id>,...

Run scenarios:
  locust -f locustfile.py --tags admission    # Many diners, one queue
  locust -f locustfile.py --tags throughput   # Queue view cache
  locust -f locustfile.py --tags playlist     # Concurrent playlist reordering
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests

After a run, the queue must still be dense:
  SELECT queue_position FROM requests
   WHERE restaurant_id = '<id>' AND status IN ('pending', 'playing')
   ORDER BY queue_position;
Positions must read 1, 2, ..., N with no gaps or repeats.
"""

import os
import random
import uuid

from locust import HttpUser, task, between, tag, events

RESTAURANT_ID = os.environ.get("LOAD_RESTAURANT_ID", "")
SONG_IDS = [s for s in os.environ.get("LOAD_SONG_IDS", "").split(",") if s]
PLAYLIST_ID = None

# Statuses that are a correct answer under load, not a failure
ADMISSION_OUTCOMES = {201, 409, 429, 503}


def random_diner():
    return f"diner_{uuid.uuid4().hex[:10]}"


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Restaurant: {RESTAURANT_ID or '<unset>'}  songs: {len(SONG_IDS)}")
    print("=" * 60)


class DinerUser(HttpUser):
    """
    TEST 1: Admission - every diner requests songs for the same restaurant

    Run: locust -f locustfile.py --tags admission -u 200 -r 50 --run-time 60s

    Expect 201 until each diner's daily quota or the queue limit is hit,
    then 429. Never 500.
    """
    wait_time = between(0, 0.2)
    weight = 20

    def on_start(self):
        self.user_id = random_diner()

    @tag("admission")
    @task(5)
    def request_song(self):
        if not RESTAURANT_ID or not SONG_IDS:
            return

        with self.client.post("/api/v1/requests/",
            json={
                "restaurant_id": RESTAURANT_ID,
                "user_id": self.user_id,
                "song_id": random.choice(SONG_IDS),
                "user_table": str(random.randint(1, 30)),
            },
            name="/api/v1/requests/",
            catch_response=True
        ) as resp:
            if resp.status_code in ADMISSION_OUTCOMES:
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("admission")
    @task(1)
    def my_requests(self):
        self.client.get(f"/api/v1/users/{self.user_id}/requests",
            name="/api/v1/users/{id}/requests")


class StaffUser(HttpUser):
    """
    TEST 2: The player working through the queue while diners add to it

    Runs alongside DinerUser at a 1:20 ratio.
    """
    wait_time = between(0.2, 1)
    weight = 1

    @tag("admission")
    @task
    def play_next(self):
        if not RESTAURANT_ID:
            return

        resp = self.client.get(f"/api/v1/restaurants/{RESTAURANT_ID}/queue",
            name="/api/v1/restaurants/{id}/queue")
        if resp.status_code != 200:
            return
        queue = resp.json()["requests"]
        if not queue:
            return

        head = queue[0]
        target = "completed" if head["status"] == "playing" else random.choice(["playing", "completed", "cancelled"])
        with self.client.patch(f"/api/v1/requests/{head['id']}/status",
            json={"status": target},
            name="/api/v1/requests/{id}/status",
            catch_response=True
        ) as resp:
            # Another staff user may have moved the same request first
            if resp.status_code in (200, 409, 503):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class QueueViewer(HttpUser):
    """
    TEST 3: Throughput - queue screen polling

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis (REDIS_ENABLED=false), run again

    Compare average latency, requests/sec and P95/P99.
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def view_queue(self):
        if RESTAURANT_ID:
            self.client.get(f"/api/v1/restaurants/{RESTAURANT_ID}/queue",
                name="/api/v1/restaurants/{id}/queue [cached]")

    @tag("throughput", "read")
    @task(2)
    def view_stats(self):
        if RESTAURANT_ID:
            period = random.choice(["1h", "24h", "7d"])
            self.client.get(f"/api/v1/restaurants/{RESTAURANT_ID}/requests/stats?period={period}",
                name="/api/v1/restaurants/{id}/requests/stats")

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class PlaylistEditor(HttpUser):
    """
    TEST 4: Many editors inserting, moving and removing entries of one playlist

    Run: locust -f locustfile.py --tags playlist -u 30 -r 10 --run-time 60s

    After the run, GET /api/v1/playlists/{id} must list positions 1..M and
    song_count must equal M.
    """
    wait_time = between(0.1, 0.5)

    def on_start(self):
        if PLAYLIST_ID or not SONG_IDS:
            return
        resp = self.client.post("/api/v1/playlists/", json={
            "owner_id": "load_owner",
            "name": "Load test playlist",
            "is_collaborative": True,
        })
        if resp.status_code == 201:
            globals()["PLAYLIST_ID"] = resp.json()["id"]
            print(f"\nCreated playlist {PLAYLIST_ID}\n")

    def _entries(self):
        resp = self.client.get(f"/api/v1/playlists/{PLAYLIST_ID}", name="/api/v1/playlists/{id}")
        return resp.json()["entries"] if resp.status_code == 200 else []

    @tag("playlist")
    @task(4)
    def add_song(self):
        if not PLAYLIST_ID:
            return
        body = {"song_id": random.choice(SONG_IDS), "added_by": "load"}
        if random.random() < 0.5:
            body["position"] = random.randint(1, 20)
        self.client.post(f"/api/v1/playlists/{PLAYLIST_ID}/songs", json=body,
            name="/api/v1/playlists/{id}/songs")

    @tag("playlist")
    @task(2)
    def move_song(self):
        if not PLAYLIST_ID:
            return
        entries = self._entries()
        if not entries:
            return
        entry = random.choice(entries)
        with self.client.patch(f"/api/v1/playlists/{PLAYLIST_ID}/songs/{entry['id']}",
            json={"position": random.randint(1, len(entries))},
            name="/api/v1/playlists/{id}/songs/{entry_id}",
            catch_response=True
        ) as resp:
            # The entry may have been removed since it was listed
            if resp.status_code in (200, 404, 503):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("playlist")
    @task(1)
    def remove_song(self):
        if not PLAYLIST_ID:
            return
        entries = self._entries()
        if not entries:
            return
        entry = random.choice(entries)
        with self.client.delete(f"/api/v1/playlists/{PLAYLIST_ID}/songs/{entry['id']}",
            name="/api/v1/playlists/{id}/songs/{entry_id}",
            catch_response=True
        ) as resp:
            if resp.status_code in (200, 404, 503):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class EdgeCaseUser(HttpUser):
    """
    TEST 5: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    @tag("edge")
    @task
    def unknown_restaurant(self):
        with self.client.post("/api/v1/requests/",
            json={"restaurant_id": str(uuid.uuid4()), "user_id": random_diner(), "song_id": str(uuid.uuid4())},
            catch_response=True
        ) as resp:
            if resp.status_code == 404:
                resp.success()
            else:
                resp.failure(f"Expected 404, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_status(self):
        with self.client.patch(f"/api/v1/requests/{uuid.uuid4()}/status",
            json={"status": "rewinding"},
            name="/api/v1/requests/{id}/status",
            catch_response=True
        ) as resp:
            if resp.status_code == 422:
                resp.success()
            else:
                resp.failure(f"Expected 422, got {resp.status_code}")

    @tag("edge")
    @task
    def zero_position(self):
        if not PLAYLIST_ID or not SONG_IDS:
            return
        with self.client.post(f"/api/v1/playlists/{PLAYLIST_ID}/songs",
            json={"song_id": SONG_IDS[0], "position": 0},
            name="/api/v1/playlists/{id}/songs",
            catch_response=True
        ) as resp:
            if resp.status_code == 400:
                resp.success()
            else:
                resp.failure(f"Expected 400, got {resp.status_code}")

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/requests/",
            data="not json at all",
            catch_response=True
        ) as resp:
            if resp.status_code in [400, 422]:
                resp.success()
            else:
                resp.failure(f"Expected 400/422, got {resp.status_code}")
