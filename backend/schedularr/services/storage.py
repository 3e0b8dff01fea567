"""SQLAlchemy storage adapter for schedule generation.

Every method opens its own session from the factory, so concurrent
backfill tasks for different shows never share a session. Rows are turned
into typed records here; the scheduling core only sees records.
"""

import logging
from typing import Iterable, Iterator, Sequence

from sqlalchemy import and_, distinct, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schedularr.clients.base import CacheCoverage, EpisodeRow, IEpisodeStore
from schedularr.models.records import (
    ContentItem, ContentKind, DataSource, EpisodeRecord, ScheduleSlot,
)
from schedularr.models.tables import (
    Content, Episode, QueueItem, ScheduleEntry, WatchHistory,
)

logger = logging.getLogger(__name__)


def chunked(rows: Sequence, size: int) -> Iterator[Sequence]:
    """Split `rows` into consecutive chunks of at most `size`."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


def content_to_record(row: Content) -> ContentItem:
    """Validate a content row into a ContentItem. Unknown types raise ValueError."""
    return ContentItem(
        id=row.id,
        kind=ContentKind(row.content_type),
        title=row.title,
        default_duration=row.default_duration,
        data_source=DataSource(row.data_source or "tmdb"),
        tmdb_id=row.tmdb_id,
        mal_id=row.mal_id,
        number_of_seasons=row.number_of_seasons,
        number_of_episodes=row.number_of_episodes,
    )


class ScheduleStore(IEpisodeStore):
    """Reads and writes content, episodes, watch history, queue and schedule."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], chunk_size: int = 100):
        self.session_factory = session_factory
        self.chunk_size = chunk_size

    # ── IEpisodeStore ────────────────────────────────────────────

    async def count_cached_episodes(self, show_id: str) -> CacheCoverage:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count(Episode.id), func.count(distinct(Episode.season)))
                .where(Episode.content_id == show_id)
            )
            count, seasons = result.one()
        return CacheCoverage(count=count or 0, distinct_seasons=seasons or 0)

    async def existing_episode_keys(self, show_id: str) -> set[tuple[int, int]]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Episode.season, Episode.episode_number).where(Episode.content_id == show_id)
            )
            return {(season, number) for season, number in result.all()}

    async def insert_episodes_batch(self, show_id: str, rows: list[EpisodeRow]) -> int:
        """Insert all rows for one show in a single transaction, chunked."""
        if not rows:
            return 0
        async with self.session_factory() as session:
            async with session.begin():
                for chunk in chunked(rows, self.chunk_size):
                    await session.execute(
                        insert(Episode),
                        [
                            {
                                "content_id": show_id,
                                "season": row.season,
                                "episode_number": row.episode_number,
                                "title": row.title,
                                "overview": row.overview,
                                "duration": row.duration,
                                "air_date": row.air_date,
                                "still_url": row.still_url,
                            }
                            for row in chunk
                        ],
                    )
        return len(rows)

    # ── Content / watch history ──────────────────────────────────

    async def load_content_items(self, content_ids: Iterable[str]) -> list[ContentItem]:
        ids = list(content_ids)
        if not ids:
            return []
        async with self.session_factory() as session:
            result = await session.execute(select(Content).where(Content.id.in_(ids)))
            return [content_to_record(row) for row in result.scalars().all()]

    async def load_episode_records(
        self, user_id: str, show_ids: Iterable[str], include_reruns: bool,
    ) -> list[EpisodeRecord]:
        """Episodes for `show_ids` joined with the user's watch history."""
        ids = list(show_ids)
        if not ids:
            return []

        query = (
            select(
                Episode.content_id, Episode.season, Episode.episode_number,
                Episode.duration, Episode.air_date, Content.default_duration,
                WatchHistory.watched_at, WatchHistory.rewatch_count,
            )
            .join(Content, Episode.content_id == Content.id)
            .outerjoin(
                WatchHistory,
                and_(
                    WatchHistory.content_id == Episode.content_id,
                    WatchHistory.season == Episode.season,
                    WatchHistory.episode == Episode.episode_number,
                    WatchHistory.user_id == user_id,
                ),
            )
            .where(Content.id.in_(ids))
            .order_by(Episode.content_id, Episode.season, Episode.episode_number)
        )
        if not include_reruns:
            query = query.where(WatchHistory.id.is_(None))

        async with self.session_factory() as session:
            result = await session.execute(query)
            records = [
                EpisodeRecord(
                    content_id=row.content_id,
                    season=row.season,
                    episode_number=row.episode_number,
                    duration=row.duration,
                    default_duration=row.default_duration,
                    air_date=row.air_date,
                    watched_at=row.watched_at,
                    rewatch_count=row.rewatch_count or 0,
                )
                for row in result.all()
            ]
        logger.info(f"Found {len(records)} episode(s) for {len(ids)} show(s)")
        return records

    async def load_watched_movie_ids(self, user_id: str, movie_ids: Iterable[str]) -> set[str]:
        ids = list(movie_ids)
        if not ids:
            return set()
        async with self.session_factory() as session:
            result = await session.execute(
                select(WatchHistory.content_id).where(
                    WatchHistory.user_id == user_id,
                    WatchHistory.content_id.in_(ids),
                    WatchHistory.season.is_(None),
                    WatchHistory.episode.is_(None),
                )
            )
            return set(result.scalars().all())

    async def load_queue_content_ids(self, user_id: str) -> list[str]:
        """The user's queue in position order, duplicates removed."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(QueueItem.content_id)
                .where(QueueItem.user_id == user_id)
                .order_by(QueueItem.position.asc())
            )
            return list(dict.fromkeys(result.scalars().all()))

    async def load_duration_profile(self, content_ids: Iterable[str]) -> tuple[list[int], list[int], list[int]]:
        """(episode durations, show defaults, movie durations) for slot sizing."""
        items = await self.load_content_items(content_ids)
        show_ids = [i.id for i in items if i.is_show]
        show_defaults = [i.default_duration for i in items if i.is_show and i.default_duration]
        movie_durations = [i.default_duration for i in items if not i.is_show and i.default_duration]

        episode_durations: list[int] = []
        if show_ids:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Episode.duration)
                    .where(Episode.content_id.in_(show_ids), Episode.duration.is_not(None))
                    .order_by(Episode.content_id, Episode.season, Episode.episode_number)
                )
                episode_durations = [d for d in result.scalars().all() if d > 0]
        return episode_durations, show_defaults, movie_durations

    # ── Schedule ─────────────────────────────────────────────────

    async def save_schedule(
        self, user_id: str, slots: list[ScheduleSlot], source_type: str = "auto",
    ) -> list[ScheduleEntry]:
        if not slots:
            return []
        async with self.session_factory() as session:
            async with session.begin():
                entries = [
                    ScheduleEntry(
                        user_id=user_id,
                        content_id=slot.content_id,
                        season=slot.season,
                        episode=slot.episode,
                        scheduled_time=slot.scheduled_time,
                        duration=slot.duration,
                        source_type=source_type,
                        watched=False,
                        timezone_offset=slot.timezone_offset or "+00:00",
                    )
                    for slot in slots
                ]
                session.add_all(entries)
        return entries
