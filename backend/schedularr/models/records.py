"""Typed in-memory records used by the schedule-generation core.

Storage rows are converted into these at the storage adapter boundary
(see services/storage.py); the core never touches ORM objects.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional


DEFAULT_EPISODE_MINUTES = 30
DEFAULT_MOVIE_MINUTES = 120


class ScheduleValidationError(ValueError):
    """Malformed schedule input (times, dates, offsets passed by callers)."""


# ── Enums ────────────────────────────────────────────────────────

class ContentKind(str, Enum):
    SHOW = "show"
    MOVIE = "movie"


class DataSource(str, Enum):
    TMDB = "tmdb"
    JIKAN = "jikan"


class RotationPolicy(str, Enum):
    ROUND_ROBIN = "round_robin"
    ROUND_ROBIN_DOUBLE = "round_robin_double"
    RANDOM = "random"


class RerunFrequency(str, Enum):
    NEVER = "never"
    RARELY = "rarely"
    SOMETIMES = "sometimes"
    OFTEN = "often"

    @property
    def ratio(self) -> float:
        return RERUN_RATIOS.get(self, 0.0)


RERUN_RATIOS = {
    RerunFrequency.RARELY: 0.1,
    RerunFrequency.SOMETIMES: 0.3,
    RerunFrequency.OFTEN: 0.5,
}


class FilterMode(str, Enum):
    ALL = "all"
    INCLUDE = "include"
    EXCLUDE = "exclude"


# ── Content ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class ContentItem:
    """A queued show or movie. Immutable for one generation run."""
    id: str
    kind: ContentKind
    title: str
    default_duration: Optional[int] = None
    data_source: DataSource = DataSource.TMDB
    tmdb_id: Optional[int] = None
    mal_id: Optional[int] = None
    number_of_seasons: Optional[int] = None
    number_of_episodes: Optional[int] = None

    @property
    def is_show(self) -> bool:
        return self.kind == ContentKind.SHOW


@dataclass(frozen=True)
class EpisodeRecord:
    """An episode joined with the requesting user's watch history."""
    content_id: str
    season: int
    episode_number: int
    duration: Optional[int] = None
    default_duration: Optional[int] = None   # owning content's default
    air_date: Optional[date] = None
    watched_at: Optional[datetime] = None
    rewatch_count: int = 0

    @property
    def watched(self) -> bool:
        return self.watched_at is not None

    @property
    def effective_duration(self) -> int:
        # Only a missing value falls through; an explicit 0 stays invalid
        if self.duration is not None:
            return self.duration
        if self.default_duration is not None:
            return self.default_duration
        return DEFAULT_EPISODE_MINUTES


@dataclass(frozen=True)
class MovieEntry:
    """Single-shot backlog entry for a movie."""
    content_id: str
    duration: Optional[int]


@dataclass(frozen=True)
class EpisodeFilter:
    """Per-content season/episode selection.

    Only meaningful under include/exclude with at least one season or
    explicit episode listed; anything else lets every episode through.
    """
    mode: FilterMode = FilterMode.ALL
    seasons: frozenset = field(default_factory=frozenset)
    episodes: frozenset = field(default_factory=frozenset)   # {(season, episode)}

    @classmethod
    def from_dict(cls, data: dict) -> "EpisodeFilter":
        return cls(
            mode=FilterMode(data.get("mode", "all")),
            seasons=frozenset(int(s) for s in data.get("seasons") or []),
            episodes=frozenset(
                (int(e["season"]), int(e["episode"])) for e in data.get("episodes") or []
            ),
        )

    @property
    def has_selection(self) -> bool:
        return bool(self.seasons or self.episodes)

    def matches(self, season: int, episode: int) -> bool:
        return season in self.seasons or (season, episode) in self.episodes

    def allows(self, season: int, episode: int) -> bool:
        if self.mode == FilterMode.ALL or not self.has_selection:
            return True
        if self.mode == FilterMode.INCLUDE:
            return self.matches(season, episode)
        return not self.matches(season, episode)


# ── Run parameters ───────────────────────────────────────────────

@dataclass
class ScheduleOptions:
    """Parameters for one generation run."""
    content_ids: list[str]
    start_date: date
    end_date: date
    time_slots: list[str]
    timezone_offset: str = "+00:00"
    max_per_slot: int = 1
    include_reruns: bool = False
    rerun_frequency: RerunFrequency = RerunFrequency.RARELY
    rotation_policy: RotationPolicy = RotationPolicy.ROUND_ROBIN
    episode_filters: dict[str, EpisodeFilter] = field(default_factory=dict)

    def __post_init__(self):
        # Queue order wins; duplicates would get extra rotation turns
        self.content_ids = list(dict.fromkeys(self.content_ids))
        self.rerun_frequency = RerunFrequency(self.rerun_frequency)
        self.rotation_policy = RotationPolicy(self.rotation_policy)
        if self.start_date > self.end_date:
            raise ScheduleValidationError("start_date must be before or equal to end_date")
        if self.max_per_slot < 1:
            raise ScheduleValidationError("max_per_slot must be at least 1")


# ── Output ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScheduleSlot:
    """One placement in the generated calendar."""
    content_id: str
    season: Optional[int]
    episode: Optional[int]
    scheduled_time: datetime      # aware, UTC
    duration: int                 # minutes
    timezone_offset: str

    @property
    def end_time(self) -> datetime:
        return self.scheduled_time + timedelta(minutes=self.duration)
