"""Schedule generation pipeline.

backfill episodes -> build content pool -> rotate into calendar slots.
Persisting the result is left to the caller (see api/schedule.py).
"""

import logging
import random
from typing import Optional

from schedularr.models.records import ContentItem, ScheduleOptions, ScheduleSlot
from schedularr.services.content_pool import ContentPool
from schedularr.services.episode_backfill import BackfillSummary, EpisodeBackfill
from schedularr.services.events import EventLog
from schedularr.services.scheduler import RotationScheduler
from schedularr.services.storage import ScheduleStore
from schedularr.services.timeslots import TimeSlotCalendar, optimal_slot_duration

logger = logging.getLogger(__name__)


class ScheduleGenerator:
    """Runs one generation request end to end against the store."""

    def __init__(
        self,
        store: ScheduleStore,
        backfill: EpisodeBackfill,
        rng: Optional[random.Random] = None,
        events: Optional[EventLog] = None,
    ):
        self.store = store
        self.backfill = backfill
        self.rng = rng or random.Random()
        self.events = events or EventLog()

    async def queue_content_ids(self, user_id: str) -> list[str]:
        return await self.store.load_queue_content_ids(user_id)

    async def missing_content_ids(self, content_ids: list[str]) -> list[str]:
        found = {i.id for i in await self.store.load_content_items(content_ids)}
        return [cid for cid in content_ids if cid not in found]

    async def ensure_episodes(self, content_ids: list[str]) -> BackfillSummary:
        """Backfill missing episodes for the shows among `content_ids`."""
        items = await self.store.load_content_items(content_ids)
        return await self.backfill.run([i for i in items if i.is_show])

    async def suggest_slot_duration(self, content_ids: list[str]) -> int:
        if not content_ids:
            return 30
        episode_durations, show_defaults, movie_durations = await self.store.load_duration_profile(content_ids)
        duration = optimal_slot_duration(episode_durations, show_defaults, movie_durations)
        logger.info(f"Optimal time slot duration: {duration} minutes")
        return duration

    async def generate(self, user_id: str, options: ScheduleOptions) -> list[ScheduleSlot]:
        """Generate (but do not save) a schedule for `options.content_ids`."""
        logger.info(f"Generating schedule for user {user_id}: {len(options.content_ids)} item(s), "
                    f"{options.start_date}..{options.end_date}, offset {options.timezone_offset}")

        items = await self.store.load_content_items(options.content_ids)
        pool = await self._build_pool(user_id, items, options)
        if pool.is_empty:
            logger.info("No content available to schedule")
            return []

        calendar = TimeSlotCalendar(options.time_slots, options.timezone_offset)
        scheduler = RotationScheduler(pool, calendar, options, rng=self.rng, events=self.events)
        schedule = scheduler.generate()
        logger.info(f"Generated {len(schedule)} schedule item(s)")
        return schedule

    async def _build_pool(self, user_id: str, items: list[ContentItem], options: ScheduleOptions) -> ContentPool:
        show_ids = [i.id for i in items if i.is_show]
        movie_ids = [i.id for i in items if not i.is_show]

        episodes = await self.store.load_episode_records(user_id, show_ids, options.include_reruns)
        watched_movies = await self.store.load_watched_movie_ids(user_id, movie_ids)
        return ContentPool.build(items, episodes, watched_movies, options, rng=self.rng, events=self.events)
