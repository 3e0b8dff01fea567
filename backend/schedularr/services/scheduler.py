"""Rotation scheduler — greedy, slot-by-slot placement of queued content.

Walks every calendar day in the requested range and, within each day,
every valid slot instant in order. For each open slot a candidate is
chosen by the rotation policy and placed if it fits before the day ends.

Guarantees:
- placements within a day never overlap (slot must start at or after the
  previous placement's end)
- a movie is placed at most once per run
- a show's backlog cursor only moves forward
"""

import random
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from schedularr.models.records import (
    DEFAULT_MOVIE_MINUTES, RotationPolicy, ScheduleOptions, ScheduleSlot,
)
from schedularr.services.content_pool import ContentPool
from schedularr.services.events import EventLog
from schedularr.services.timeslots import TimeSlotCalendar, add_minutes

DOUBLE_TURN_CAP = 2


class _Outcome(Enum):
    PLACED = "placed"
    INVALID = "invalid"          # bad duration, item dropped; retry the slot
    DOES_NOT_FIT = "does_not_fit"  # ends after the day window; try next slot


@dataclass
class _Attempt:
    outcome: _Outcome
    slot: Optional[ScheduleSlot] = None


class RotationScheduler:
    """Assigns content from a ContentPool to calendar slots."""

    def __init__(
        self,
        pool: ContentPool,
        calendar: TimeSlotCalendar,
        options: ScheduleOptions,
        rng: Optional[random.Random] = None,
        events: Optional[EventLog] = None,
    ):
        self.pool = pool
        self.calendar = calendar
        self.options = options
        self.rng = rng or random.Random()
        self.events = events or EventLog()

        self.content_ids = list(options.content_ids)
        # Survive across days
        self.cursors: dict[str, int] = {cid: 0 for cid in self.content_ids}
        self.turns: dict[str, int] = {cid: 0 for cid in self.content_ids}
        self.pointer = 0
        self.slot_usage: dict[tuple[date, str], int] = {}
        self.movies = dict(pool.movies)

    # ── Public API ───────────────────────────────────────────────

    def generate(self) -> list[ScheduleSlot]:
        if self.pool.is_empty or not self.content_ids:
            self.events.emit("schedule.empty_pool")
            return []

        schedule: list[ScheduleSlot] = []
        for day in self.calendar.days(self.options.start_date, self.options.end_date):
            schedule.extend(self._generate_day(day))

        self.events.emit("schedule.generated", count=len(schedule))
        self._emit_summary(schedule)
        return schedule

    # ── Day / slot loop ──────────────────────────────────────────

    def _generate_day(self, day: date) -> list[ScheduleSlot]:
        window = self.calendar.day_window(day)
        self.events.emit("schedule.day_window", day=day.isoformat(),
                         start=window.start.isoformat(), end=window.end.isoformat(),
                         skipped_slots=len(window.skipped))

        placed: list[ScheduleSlot] = []
        last_placed_end = None

        for slot, start_at in window.slots:
            if last_placed_end is not None and start_at < last_placed_end:
                self.events.emit("schedule.overlap_skip", day=day.isoformat(), slot=slot)
                continue

            key = (day, slot)
            usage = self.slot_usage.get(key, 0)
            if usage >= self.options.max_per_slot:
                continue

            attempt = self._fill_slot(start_at, window.end)
            if attempt is None:
                self.events.emit("schedule.exhausted", day=day.isoformat(), slot=slot)
                break
            if attempt.outcome != _Outcome.PLACED:
                continue

            placed.append(attempt.slot)
            last_placed_end = attempt.slot.end_time
            self.slot_usage[key] = usage + 1

        return placed

    def _fill_slot(self, start_at, day_end) -> Optional[_Attempt]:
        """Select and place until the slot is filled or rejected.

        Returns None when no content id qualifies any more.
        """
        while True:
            content_id = self._select_candidate()
            if content_id is None:
                return None
            attempt = self._place(content_id, start_at, day_end)
            if attempt.outcome != _Outcome.INVALID:
                return attempt

    # ── Candidate selection ──────────────────────────────────────

    def has_content(self, content_id: str) -> bool:
        if content_id in self.movies:
            return True
        return self.cursors.get(content_id, 0) < len(self.pool.show_backlog(content_id))

    def _select_candidate(self) -> Optional[str]:
        policy = self.options.rotation_policy
        if policy == RotationPolicy.RANDOM:
            return self._select_random()
        if policy == RotationPolicy.ROUND_ROBIN_DOUBLE:
            return self._select_round_robin_double()
        return self._select_round_robin()

    def _select_round_robin(self) -> Optional[str]:
        total = len(self.content_ids)
        for _ in range(total):
            candidate = self.content_ids[self.pointer % total]
            self.pointer += 1
            if self.has_content(candidate):
                return candidate
        return None

    def _select_round_robin_double(self) -> Optional[str]:
        # The pointer stays on a show until its turn ends (see _end_turn)
        total = len(self.content_ids)
        for _ in range(total):
            candidate = self.content_ids[self.pointer % total]
            if self.has_content(candidate):
                return candidate
            self.turns[candidate] = 0
            self.pointer += 1
        return None

    def _select_random(self) -> Optional[str]:
        available = [cid for cid in self.content_ids if self.has_content(cid)]
        if not available:
            return None
        return self.rng.choice(available)

    def _end_turn(self, content_id: str, placed: bool, force: bool = False) -> None:
        """round_robin_double bookkeeping after a placement, skip or rejection.

        `force` ends the turn regardless of the cap, so a show that does not
        fit the day window hands the pointer to the next show.
        """
        if self.options.rotation_policy != RotationPolicy.ROUND_ROBIN_DOUBLE:
            return
        if placed:
            self.turns[content_id] = self.turns.get(content_id, 0) + 1
        if force or self.turns.get(content_id, 0) >= DOUBLE_TURN_CAP or not self.has_content(content_id):
            self.turns[content_id] = 0
            self.pointer += 1

    # ── Placement ────────────────────────────────────────────────

    def _place(self, content_id: str, start_at, day_end) -> _Attempt:
        movie = self.movies.get(content_id)
        if movie is not None:
            return self._place_movie(content_id, movie, start_at, day_end)
        return self._place_episode(content_id, start_at, day_end)

    def _place_movie(self, content_id, movie, start_at, day_end) -> _Attempt:
        duration = movie.duration if movie.duration is not None else DEFAULT_MOVIE_MINUTES
        if duration <= 0:
            self.events.emit("schedule.skipped_invalid_duration", content_id=content_id, duration=duration)
            del self.movies[content_id]
            self._end_turn(content_id, placed=False)
            return _Attempt(_Outcome.INVALID)

        end_at = add_minutes(start_at, duration)
        if end_at > day_end:
            self.events.emit("schedule.rejected", content_id=content_id,
                             start=start_at.isoformat(), end=end_at.isoformat(), day_end=day_end.isoformat())
            self._end_turn(content_id, placed=False, force=True)
            return _Attempt(_Outcome.DOES_NOT_FIT)

        slot = ScheduleSlot(
            content_id=content_id,
            season=None,
            episode=None,
            scheduled_time=start_at,
            duration=duration,
            timezone_offset=self.options.timezone_offset,
        )
        # Only ever once per run
        del self.movies[content_id]
        self._end_turn(content_id, placed=True)
        self.events.emit("schedule.placed", content_id=content_id, start=start_at.isoformat(), duration=duration)
        return _Attempt(_Outcome.PLACED, slot)

    def _place_episode(self, content_id, start_at, day_end) -> _Attempt:
        backlog = self.pool.show_backlog(content_id)
        index = self.cursors.get(content_id, 0)
        episode = backlog[index]
        duration = episode.effective_duration

        if duration <= 0:
            self.events.emit("schedule.skipped_invalid_duration", content_id=content_id,
                             season=episode.season, episode=episode.episode_number, duration=duration)
            self.cursors[content_id] = index + 1
            self._end_turn(content_id, placed=False)
            return _Attempt(_Outcome.INVALID)

        end_at = add_minutes(start_at, duration)
        if end_at > day_end:
            # Candidate keeps its cursor; it may fit a later slot or day.
            # Under round_robin_double the rejection still ends its turn.
            self.events.emit("schedule.rejected", content_id=content_id,
                             start=start_at.isoformat(), end=end_at.isoformat(), day_end=day_end.isoformat())
            self._end_turn(content_id, placed=False, force=True)
            return _Attempt(_Outcome.DOES_NOT_FIT)

        slot = ScheduleSlot(
            content_id=content_id,
            season=episode.season,
            episode=episode.episode_number,
            scheduled_time=start_at,
            duration=duration,
            timezone_offset=self.options.timezone_offset,
        )
        self.cursors[content_id] = index + 1
        self._end_turn(content_id, placed=True)
        self.events.emit("schedule.placed", content_id=content_id, season=episode.season,
                         episode=episode.episode_number, start=start_at.isoformat(), duration=duration)
        return _Attempt(_Outcome.PLACED, slot)

    # ── Reporting ────────────────────────────────────────────────

    def _emit_summary(self, schedule: list[ScheduleSlot]) -> None:
        for content_id in self.content_ids:
            scheduled = sum(1 for s in schedule if s.content_id == content_id)
            self.events.emit(
                "schedule.summary",
                content_id=content_id,
                available=len(self.pool.show_backlog(content_id)) or int(self.pool.movie(content_id) is not None),
                scheduled=scheduled,
            )
