"""
Pytest fixtures for test database, sessions, seeded data and the HTTP client.

Every test gets a fresh database: by default a SQLite file in tmp_path
through aiosqlite. Set TEST_DATABASE_URL to a PostgreSQL (asyncpg) URL to
run the same suite against row locks and advisory locks.
"""

import os

# Tests never depend on a running Redis; the cache degrades to a no-op
os.environ.setdefault("REDIS_ENABLED", "false")

from typing import AsyncGenerator

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tableside.main import app
from tableside.db.base import Base
from tableside.db.session import get_db
from tableside.models import Playlist, Restaurant, Song


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path):
    """Create tables on a per-test database, drop them afterwards."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'tableside_test.db'}"
    test_engine = create_async_engine(url, echo=False, poolclass=NullPool)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(engine) -> async_sessionmaker:
    """For tests that need several independent sessions (concurrency)."""
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own session on the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def restaurant(db_session: AsyncSession) -> Restaurant:
    """An active restaurant allowing 2 requests per diner per day."""
    r = Restaurant(name="La Terraza", slug="la-terraza", max_requests_per_user=2, queue_limit=50)
    db_session.add(r)
    await db_session.commit()
    await db_session.refresh(r)
    return r


@pytest_asyncio.fixture
async def open_restaurant(db_session: AsyncSession) -> Restaurant:
    """A restaurant with a generous quota, for queue mechanics tests."""
    r = Restaurant(name="Jukebox Diner", slug="jukebox-diner", max_requests_per_user=100, queue_limit=100)
    db_session.add(r)
    await db_session.commit()
    await db_session.refresh(r)
    return r


@pytest_asyncio.fixture
async def inactive_restaurant(db_session: AsyncSession) -> Restaurant:
    r = Restaurant(name="Closed Bistro", slug="closed-bistro", is_active=False)
    db_session.add(r)
    await db_session.commit()
    await db_session.refresh(r)
    return r


async def make_songs(db_session: AsyncSession, restaurant: Restaurant, count: int) -> list[Song]:
    songs = [
        Song(
            restaurant_id=restaurant.id,
            title=f"Song {i}",
            artist=f"Artist {i}",
            genre="pop",
            duration_seconds=180 + i,
        )
        for i in range(1, count + 1)
    ]
    db_session.add_all(songs)
    await db_session.commit()
    for song in songs:
        await db_session.refresh(song)
    return songs


@pytest_asyncio.fixture
async def songs(db_session: AsyncSession, restaurant: Restaurant) -> list[Song]:
    """Three active songs in `restaurant`."""
    return await make_songs(db_session, restaurant, 3)


@pytest_asyncio.fixture
async def open_songs(db_session: AsyncSession, open_restaurant: Restaurant) -> list[Song]:
    """Twenty active songs in `open_restaurant`."""
    return await make_songs(db_session, open_restaurant, 20)


@pytest_asyncio.fixture
async def playlist(db_session: AsyncSession) -> Playlist:
    p = Playlist(owner_id="owner-1", name="Friday Night")
    db_session.add(p)
    await db_session.commit()
    await db_session.refresh(p)
    return p
