"""Abstract interfaces for metadata providers and the episode cache.

These define the contracts the episode backfill depends on. TMDB and
Jikan are the provider implementations; the SQLAlchemy store in
services/storage.py is the cache implementation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from typing import Optional


# ── Data Transfer Objects ────────────────────────────────────────

@dataclass
class ShowDetails:
    """Season layout and runtime defaults for a TV show."""
    season_count: int = 0
    episode_run_time: list[int] = field(default_factory=list)   # minutes, provider order

    @property
    def default_runtime(self) -> Optional[int]:
        return self.episode_run_time[0] if self.episode_run_time else None


@dataclass
class ProviderEpisode:
    """A single episode as reported by an external provider."""
    season: int
    episode_number: Optional[int]    # Jikan may omit it
    title: Optional[str] = None
    overview: Optional[str] = None
    runtime: Optional[int] = None    # minutes
    air_date: Optional[date] = None
    still_url: Optional[str] = None


@dataclass
class AnimeEpisodePage:
    """One page of a paginated anime episode listing."""
    episodes: list[ProviderEpisode] = field(default_factory=list)
    has_more_pages: bool = False


@dataclass
class EpisodeRow:
    """An episode ready to be cached."""
    season: int
    episode_number: int
    duration: int
    title: Optional[str] = None
    overview: Optional[str] = None
    air_date: Optional[date] = None
    still_url: Optional[str] = None

    @property
    def key(self) -> tuple[int, int]:
        return (self.season, self.episode_number)


@dataclass
class CacheCoverage:
    """How much of a show is already cached."""
    count: int = 0
    distinct_seasons: int = 0


# ── Abstract Interfaces ──────────────────────────────────────────

class IMetadataProvider(ABC):
    """Interface for show/episode metadata sources."""

    @abstractmethod
    async def fetch_show_details(self, external_id: int) -> ShowDetails:
        """Season count and runtime defaults for a show."""
        ...

    @abstractmethod
    async def fetch_season_episodes(self, external_id: int, season_number: int) -> list[ProviderEpisode]:
        """All episodes of one season."""
        ...

    @abstractmethod
    async def fetch_anime_episodes(self, external_id: int, page: int = 1) -> AnimeEpisodePage:
        """One page of an anime's episode list."""
        ...


class IEpisodeStore(ABC):
    """Interface for the persisted episode cache."""

    @abstractmethod
    async def count_cached_episodes(self, show_id: str) -> CacheCoverage:
        """Cached episode count and number of distinct seasons."""
        ...

    @abstractmethod
    async def existing_episode_keys(self, show_id: str) -> set[tuple[int, int]]:
        """(season, episode_number) pairs already cached for a show."""
        ...

    @abstractmethod
    async def insert_episodes_batch(self, show_id: str, rows: list[EpisodeRow]) -> int:
        """Insert rows in one transaction. Returns rows written."""
        ...
