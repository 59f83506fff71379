"""Pytest configuration and shared fixtures."""

import os

# Set test environment variables before any imports
os.environ["OPENROUTER_API_KEY"] = "test-openrouter-key"
os.environ["OPENROUTER_MODEL"] = "test/model"
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test_cinerec.db"

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import create_async_engine

from cinerec.clients import Movie, TimeSlot, User
from cinerec.storage import Base, create_session_factory


@pytest.fixture(scope="session")
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    """Create a throwaway SQLite database with all tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user():
    def _make(user_id: str = "user-1", first_name: str = "Ana") -> User:
        return User(
            id=user_id,
            email=f"{user_id}@example.com",
            first_name=first_name,
            last_name="Novak",
        )

    return _make


@pytest.fixture
def make_movie():
    def _make(movie_id: str, title: str | None = None, rating: float = 7.5) -> Movie:
        return Movie(
            id=movie_id,
            title=title or f"Movie {movie_id}",
            description=f"About {movie_id}",
            image_url=f"https://img.example.com/{movie_id}.jpg",
            rating=rating,
            length_minutes=120,
        )

    return _make


@pytest.fixture
def make_timeslot(make_movie):
    counter = {"n": 0}

    def _make(movie_id: str, title: str | None = None, rating: float = 7.5) -> TimeSlot:
        counter["n"] += 1
        start = datetime(2026, 10, 20, 18, 0, tzinfo=timezone.utc) + timedelta(hours=counter["n"])
        return TimeSlot(
            id=f"slot-{counter['n']}",
            start_time=start,
            end_time=start + timedelta(hours=2),
            room_id="room-1",
            movie_id=movie_id,
            movie=make_movie(movie_id, title, rating),
        )

    return _make
