"""Time-of-day grid arithmetic for schedule generation.

All instants are timezone-aware UTC datetimes. User-facing wall-clock
times ("20:30") are interpreted in a fixed UTC offset ("-05:00"), not an
IANA zone, so a day is always exactly 24 hours long here.
"""

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional

from schedularr.models.records import ScheduleValidationError

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
DEFAULT_STEP_MINUTES = 30

_OFFSET_RE = re.compile(r"^([+-])(\d{2}):(\d{2})$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_offset(offset: str) -> Optional[timedelta]:
    """'-05:00' -> timedelta(hours=-5). Returns None when malformed."""
    match = _OFFSET_RE.match(offset or "")
    if not match:
        return None
    sign, hours, minutes = match.groups()
    delta = timedelta(hours=int(hours), minutes=int(minutes))
    return -delta if sign == "-" else delta


def time_to_minutes(time_of_day: str) -> int:
    """'20:30' -> 1230."""
    match = _TIME_RE.match(time_of_day or "")
    if not match:
        raise ScheduleValidationError(f"Invalid time of day: {time_of_day!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ScheduleValidationError(f"Invalid time of day: {time_of_day!r}")
    return hours * 60 + minutes


def minutes_to_time(total_minutes: int) -> str:
    """1230 -> '20:30'. Wraps at midnight."""
    total_minutes %= MINUTES_PER_DAY
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def to_instant(time_of_day: str, calendar_date: date, offset: str = "+00:00") -> datetime:
    """Interpret wall-clock `time_of_day` on `calendar_date` in `offset`.

    A malformed offset is logged and treated as UTC for this call.
    """
    local_midnight = datetime(calendar_date.year, calendar_date.month, calendar_date.day, tzinfo=timezone.utc)
    local = local_midnight + timedelta(minutes=time_to_minutes(time_of_day))

    delta = parse_offset(offset)
    if delta is None:
        logger.warning(f"Invalid timezone offset: {offset!r}, defaulting to UTC")
        return local
    return local - delta


def add_minutes(instant: datetime, minutes: int) -> datetime:
    return instant + timedelta(minutes=minutes)


def crosses_midnight(start_time: str, end_time: str) -> bool:
    return time_to_minutes(end_time) < time_to_minutes(start_time)


class SlotSequence:
    """Lazy, restartable grid of 'HH:MM' slot starts.

    Runs from `start_time` up to (not including) `end_time`. When the end
    is earlier than the start the grid crosses midnight; an end of exactly
    '00:00' then includes the literal midnight slot.

        >>> list(SlotSequence("22:00", "00:00", 60))
        ['22:00', '23:00', '00:00']
    """

    def __init__(self, start_time: str, end_time: str, step_minutes: int = DEFAULT_STEP_MINUTES):
        if step_minutes is None or step_minutes <= 0:
            raise ScheduleValidationError(f"Slot duration must be positive, got {step_minutes}")
        self.start_time = start_time
        self.end_time = end_time
        self.step_minutes = step_minutes
        self._start = time_to_minutes(start_time)
        self._end = time_to_minutes(end_time)
        self.crosses_midnight = self._end < self._start

    def __iter__(self) -> Iterator[str]:
        end = self._end + MINUTES_PER_DAY if self.crosses_midnight else self._end
        current = self._start
        while current < end or (self.crosses_midnight and current == end == MINUTES_PER_DAY):
            yield minutes_to_time(current)
            current += self.step_minutes

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self) -> str:
        return f"SlotSequence({self.start_time!r}, {self.end_time!r}, {self.step_minutes})"


def infer_step_minutes(time_slots: list[str]) -> int:
    """Slot length inferred from the first two grid entries."""
    if len(time_slots) < 2:
        return DEFAULT_STEP_MINUTES
    gap = (time_to_minutes(time_slots[1]) - time_to_minutes(time_slots[0])) % MINUTES_PER_DAY
    return gap or DEFAULT_STEP_MINUTES


@dataclass
class DayWindow:
    """The [start, end) range one calendar day's slots must fall in."""
    day: date
    start: datetime
    end: datetime
    slots: list[tuple[str, datetime]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


class TimeSlotCalendar:
    """Maps a user's slot grid onto absolute instants, day by day."""

    def __init__(self, time_slots: list[str], timezone_offset: str = "+00:00"):
        if not time_slots:
            raise ScheduleValidationError("At least one time slot is required")
        # Validate every entry up front
        for slot in time_slots:
            time_to_minutes(slot)
        self.time_slots = list(time_slots)
        self.timezone_offset = timezone_offset
        self.step_minutes = infer_step_minutes(self.time_slots)
        self.crosses_midnight = crosses_midnight(self.time_slots[0], self.time_slots[-1])

    def to_instant(self, time_of_day: str, calendar_date: date) -> datetime:
        return to_instant(time_of_day, calendar_date, self.timezone_offset)

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        start = self.to_instant(self.time_slots[0], day)

        end_total = time_to_minutes(self.time_slots[-1]) + self.step_minutes
        end_day = day
        if self.crosses_midnight or end_total >= MINUTES_PER_DAY:
            end_day = day + timedelta(days=1)
        end = self.to_instant(minutes_to_time(end_total), end_day)
        return start, end

    def day_window(self, day: date) -> DayWindow:
        start, end = self.day_bounds(day)
        window = DayWindow(day=day, start=start, end=end)

        for slot in self.time_slots:
            instant = self.to_instant(slot, day)
            # Offset conversion (or a midnight wrap) can land before the day start
            if instant < start:
                instant += timedelta(days=1)
            if not window.contains(instant):
                window.skipped.append(slot)
                continue
            window.slots.append((slot, instant))

        return window

    def days(self, start_date: date, end_date: date) -> Iterator[date]:
        current = start_date
        while current <= end_date:
            yield current
            current += timedelta(days=1)


def optimal_slot_duration(
    episode_durations: list[int],
    show_defaults: list[int],
    movie_durations: list[int],
) -> int:
    """Pick a grid step that suits the content being scheduled.

    Uses the most common episode runtime (falling back to the shows'
    default runtimes), or a quarter of the average movie runtime when only
    movies are queued. Rounded up to a multiple of 15, at least 15.
    """
    durations = [d for d in episode_durations if d and d > 0]
    if not durations:
        durations = [d for d in show_defaults if d and d > 0]

    movies = [d for d in movie_durations if d and d > 0]

    if durations:
        # most_common keeps first-seen order on ties
        target = Counter(durations).most_common(1)[0][0]
    elif movies:
        target = math.floor(sum(movies) / len(movies) / 4)
    else:
        target = DEFAULT_STEP_MINUTES

    return max(15, math.ceil(target / 15) * 15)
