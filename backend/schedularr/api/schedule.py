"""Schedule generation endpoints."""

import logging
import random
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from schedularr.clients.metadata import MetadataProvider
from schedularr.config import settings
from schedularr.database import async_session
from schedularr.models.records import (
    EpisodeFilter, RerunFrequency, RotationPolicy, ScheduleOptions,
    ScheduleValidationError,
)
from schedularr.services.episode_backfill import EpisodeBackfill
from schedularr.services.schedule_generator import ScheduleGenerator
from schedularr.services.storage import ScheduleStore
from schedularr.services.timeslots import SlotSequence

logger = logging.getLogger(__name__)

router = APIRouter()


class EpisodeRef(BaseModel):
    season: int
    episode: int


class EpisodeFilterBody(BaseModel):
    mode: Literal["all", "include", "exclude"] = "all"
    seasons: list[int] = Field(default_factory=list)
    episodes: list[EpisodeRef] = Field(default_factory=list)


class GenerateBody(BaseModel):
    start_date: Optional[str] = None           # YYYY-MM-DD
    end_date: Optional[str] = None
    start_time: str = settings.default_start_time
    end_time: str = settings.default_end_time
    time_slot_duration: Optional[int] = None   # minutes
    timezone_offset: str = settings.default_timezone_offset
    max_shows_per_time_slot: int = settings.default_max_per_slot
    include_reruns: bool = False
    rerun_frequency: RerunFrequency = RerunFrequency.RARELY
    rotation_type: RotationPolicy = RotationPolicy.ROUND_ROBIN
    episode_filters: dict[str, EpisodeFilterBody] = Field(default_factory=dict)


class GenerateShowsBody(GenerateBody):
    show_ids: list[str] = Field(default_factory=list)


def get_generator() -> ScheduleGenerator:
    """Build the generation service stack from settings."""
    store = ScheduleStore(async_session, chunk_size=settings.backfill_chunk_size)
    backfill = EpisodeBackfill(
        provider=MetadataProvider.from_settings(settings),
        store=store,
        concurrency=settings.backfill_concurrency,
        tmdb_delay=settings.backfill_tmdb_delay_ms / 1000,
        jikan_delay=settings.backfill_jikan_delay_ms / 1000,
        completeness_ratio=settings.backfill_completeness_ratio,
    )
    return ScheduleGenerator(store, backfill, rng=random.Random(settings.random_seed))


# ── Helpers ──────────────────────────────────────────────────────

def _parse_dates(body: GenerateBody) -> tuple[date, date]:
    if not body.start_date or not body.end_date:
        raise HTTPException(400, "start_date and end_date are required")
    try:
        start = date.fromisoformat(body.start_date)
        end = date.fromisoformat(body.end_date)
    except ValueError:
        raise HTTPException(400, "Invalid date format")
    # Same-day schedules are allowed
    if start > end:
        raise HTTPException(400, "start_date must be before or equal to end_date")
    return start, end


def _build_time_slots(body: GenerateBody, duration: int) -> list[str]:
    try:
        slots = list(SlotSequence(body.start_time, body.end_time, duration))
    except ScheduleValidationError as e:
        raise HTTPException(400, str(e))
    if not slots:
        raise HTTPException(400, "Invalid time range")
    logger.info(f"Generated {len(slots)} time slots: first={slots[0]}, last={slots[-1]}")
    return slots


def _build_options(body: GenerateBody, content_ids: list[str], start: date, end: date,
                   time_slots: list[str]) -> ScheduleOptions:
    try:
        return ScheduleOptions(
            content_ids=content_ids,
            start_date=start,
            end_date=end,
            time_slots=time_slots,
            timezone_offset=body.timezone_offset,
            max_per_slot=body.max_shows_per_time_slot,
            include_reruns=body.include_reruns,
            rerun_frequency=body.rerun_frequency,
            rotation_policy=body.rotation_type,
            episode_filters={
                cid: EpisodeFilter.from_dict(f.model_dump()) for cid, f in body.episode_filters.items()
            },
        )
    except ScheduleValidationError as e:
        raise HTTPException(400, str(e))


async def _save_and_respond(generator: ScheduleGenerator, user_id: str, schedule, empty_message: str):
    if not schedule:
        return JSONResponse(status_code=200, content={"count": 0, "schedule": [], "message": empty_message})

    saved = await generator.store.save_schedule(user_id, schedule, source_type="auto")
    return JSONResponse(
        status_code=201,
        content={
            "count": len(saved),
            "schedule": [
                {
                    "id": entry.id,
                    "content_id": entry.content_id,
                    "season": entry.season,
                    "episode": entry.episode,
                    "scheduled_time": entry.scheduled_time.isoformat(),
                    "duration": entry.duration,
                    "source_type": entry.source_type,
                    "timezone_offset": entry.timezone_offset,
                }
                for entry in saved
            ],
        },
    )


# ── Routes ───────────────────────────────────────────────────────

@router.post("/users/{user_id}/schedule/generate/queue")
async def generate_from_queue(
    user_id: str,
    body: GenerateBody,
    generator: ScheduleGenerator = Depends(get_generator),
):
    """Auto-generate a schedule from the user's queue.

    Missing episodes are backfilled first. Without an explicit
    time_slot_duration the grid step is derived from the queued content.
    """
    start, end = _parse_dates(body)

    content_ids = await generator.queue_content_ids(user_id)
    if content_ids:
        await generator.ensure_episodes(content_ids)

    duration = body.time_slot_duration
    if not duration:
        duration = await generator.suggest_slot_duration(content_ids)

    time_slots = _build_time_slots(body, duration)
    options = _build_options(body, content_ids, start, end, time_slots)
    schedule = await generator.generate(user_id, options) if content_ids else []

    return await _save_and_respond(
        generator, user_id, schedule,
        "No content available to schedule. For shows, make sure episodes have been fetched. "
        "For movies, ensure they are not already watched (unless reruns are enabled).",
    )


@router.post("/users/{user_id}/schedule/generate/shows")
async def generate_for_shows(
    user_id: str,
    body: GenerateShowsBody,
    generator: ScheduleGenerator = Depends(get_generator),
):
    """Auto-generate a schedule from an explicit list of content ids."""
    if not body.show_ids:
        raise HTTPException(400, "show_ids must be a non-empty array")
    start, end = _parse_dates(body)

    missing = await generator.missing_content_ids(body.show_ids)
    if missing:
        raise HTTPException(400, "Some shows not found")

    await generator.ensure_episodes(body.show_ids)

    time_slots = _build_time_slots(body, body.time_slot_duration or 30)
    options = _build_options(body, body.show_ids, start, end, time_slots)
    schedule = await generator.generate(user_id, options)

    return await _save_and_respond(
        generator, user_id, schedule,
        "No episodes available to schedule. Make sure episodes have been fetched for these shows.",
    )
