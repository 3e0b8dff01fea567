"""
Pytest configuration and shared fixtures for backend tests.
"""
import os
import random
from datetime import date, datetime, timezone

import pytest

# Point the app at SQLite before any schedularr module builds its engine
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("TMDB_API_KEY", "")

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from schedularr.database import Base
from schedularr.models import Content, Episode, QueueItem, WatchHistory
from schedularr.models.records import (
    ContentItem, ContentKind, EpisodeRecord, ScheduleOptions,
)
from schedularr.services.events import EventLog


@pytest.fixture
async def test_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    # expire_on_commit=False so returned ORM objects stay readable after commit
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def rng():
    """Seeded RNG so shuffles and random rotation are reproducible."""
    return random.Random(42)


@pytest.fixture
def events():
    return EventLog()


# ── Record factories ─────────────────────────────────────────────

def make_show(content_id: str, title: str = None, **kwargs) -> ContentItem:
    return ContentItem(id=content_id, kind=ContentKind.SHOW, title=title or content_id, **kwargs)


def make_movie(content_id: str, duration=120, title: str = None, **kwargs) -> ContentItem:
    return ContentItem(id=content_id, kind=ContentKind.MOVIE, title=title or content_id,
                       default_duration=duration, **kwargs)


def make_episodes(content_id: str, count: int, duration=30, season: int = 1,
                  watched_at: datetime = None) -> list[EpisodeRecord]:
    return [
        EpisodeRecord(content_id=content_id, season=season, episode_number=n,
                      duration=duration, watched_at=watched_at)
        for n in range(1, count + 1)
    ]


def make_options(content_ids, time_slots, start=date(2024, 1, 1), end=None, **kwargs) -> ScheduleOptions:
    return ScheduleOptions(
        content_ids=list(content_ids),
        start_date=start,
        end_date=end or start,
        time_slots=list(time_slots),
        **kwargs,
    )


# ── DB seeding ───────────────────────────────────────────────────

async def seed_content(session_factory, *rows: Content) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add_all(rows)


async def seed_episodes(session_factory, content_id: str, count: int, season: int = 1, duration=30) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add_all([
                Episode(content_id=content_id, season=season, episode_number=n, duration=duration)
                for n in range(1, count + 1)
            ])


async def seed_watched(session_factory, user_id: str, content_id: str, season=None, episode=None,
                       watched_at: datetime = None) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add(WatchHistory(
                user_id=user_id, content_id=content_id, season=season, episode=episode,
                watched_at=watched_at or datetime(2023, 6, 1, tzinfo=timezone.utc),
            ))


async def seed_queue(session_factory, user_id: str, content_ids: list[str]) -> None:
    async with session_factory() as session:
        async with session.begin():
            session.add_all([
                QueueItem(user_id=user_id, content_id=cid, position=i)
                for i, cid in enumerate(content_ids)
            ])
