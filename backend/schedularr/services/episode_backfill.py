"""Episode backfill service.

Before a schedule is generated every queued show must have its episodes
cached. Shows whose cache looks incomplete are fetched from TMDB or
Jikan under bounded concurrency, deduplicated against the cache, and
written in one transaction per show.

A failing show never affects its siblings: each task reports a
BackfillResult instead of raising.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from schedularr.clients.base import (
    CacheCoverage, EpisodeRow, IEpisodeStore, IMetadataProvider, ProviderEpisode,
)
from schedularr.models.records import ContentItem, DataSource, DEFAULT_EPISODE_MINUTES

logger = logging.getLogger(__name__)

DEFAULT_ANIME_EPISODE_MINUTES = 24


@dataclass
class BackfillResult:
    """Outcome of one show's fetch task."""
    content_id: str
    title: str
    fetched: int = 0
    inserted: int = 0
    error: Optional[str] = None
    skipped: bool = False      # no usable provider id

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class BackfillSummary:
    checked: int = 0
    cached: int = 0
    results: list[BackfillResult] = field(default_factory=list)

    @property
    def inserted(self) -> int:
        return sum(r.inserted for r in self.results)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.ok)


def is_cache_complete(
    coverage: CacheCoverage,
    expected_seasons: Optional[int],
    expected_episodes: Optional[int],
    ratio: float = 0.8,
) -> bool:
    """Whether a show's cached episodes cover what the provider advertises.

    Needs every advertised season and at least `ratio` of the advertised
    episode count. Unknown expectations pass; an empty cache never does.
    """
    if coverage.count == 0:
        return False
    has_all_seasons = not expected_seasons or coverage.distinct_seasons >= expected_seasons
    has_enough_episodes = not expected_episodes or coverage.count >= ratio * expected_episodes
    return has_all_seasons and has_enough_episodes


class EpisodeBackfill:
    """Fetches and caches missing episodes for queued shows."""

    def __init__(
        self,
        provider: IMetadataProvider,
        store: IEpisodeStore,
        concurrency: int = 2,
        tmdb_delay: float = 0.25,
        jikan_delay: float = 0.35,
        completeness_ratio: float = 0.8,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.provider = provider
        self.store = store
        self.concurrency = concurrency
        self.tmdb_delay = tmdb_delay
        self.jikan_delay = jikan_delay
        self.completeness_ratio = completeness_ratio
        self.sleep = sleep

    async def run(self, shows: list[ContentItem]) -> BackfillSummary:
        """Ensure every show in `shows` has cached episodes.

        Returns once every fetch task has settled.
        """
        shows = [s for s in shows if s.is_show]
        summary = BackfillSummary(checked=len(shows))
        if not shows:
            return summary

        to_fetch = []
        for show in shows:
            coverage = await self.store.count_cached_episodes(show.id)
            if is_cache_complete(coverage, show.number_of_seasons, show.number_of_episodes,
                                 self.completeness_ratio):
                summary.cached += 1
            else:
                to_fetch.append(show)

        logger.info(f"Backfill: {summary.cached} show(s) cached, {len(to_fetch)} need fetching")
        if not to_fetch:
            return summary

        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = [self._run_task(show, position, semaphore) for position, show in enumerate(to_fetch)]
        summary.results = list(await asyncio.gather(*tasks))

        logger.info(f"Backfill: inserted {summary.inserted} episode(s), {summary.failed} show(s) failed")
        return summary

    # ── Per-show task ────────────────────────────────────────────

    def _delay_for(self, show: ContentItem) -> float:
        return self.jikan_delay if show.data_source == DataSource.JIKAN else self.tmdb_delay

    async def _run_task(self, show: ContentItem, position: int, semaphore: asyncio.Semaphore) -> BackfillResult:
        # Stagger starts to respect provider rate limits
        delay = position * self._delay_for(show)
        if delay:
            await self.sleep(delay)

        async with semaphore:
            try:
                return await self.backfill_show(show)
            except Exception as e:
                logger.warning(f"Backfill failed for {show.title} ({show.id}): {e}")
                return BackfillResult(content_id=show.id, title=show.title, error=str(e) or type(e).__name__)

    async def backfill_show(self, show: ContentItem) -> BackfillResult:
        """Fetch a show's full episode list, then cache what is new."""
        if show.data_source == DataSource.JIKAN and show.mal_id:
            rows = await self._fetch_jikan(show)
        elif show.tmdb_id:
            rows = await self._fetch_tmdb(show)
        else:
            logger.warning(f"Show {show.title} has no valid source ID (tmdb_id or mal_id)")
            return BackfillResult(content_id=show.id, title=show.title, skipped=True)

        existing = await self.store.existing_episode_keys(show.id)
        new_rows = dedupe_rows(rows, existing)
        inserted = 0
        if new_rows:
            inserted = await self.store.insert_episodes_batch(show.id, new_rows)

        logger.info(f"Fetched {len(rows)} episode(s) for {show.title}, {inserted} new")
        return BackfillResult(content_id=show.id, title=show.title, fetched=len(rows), inserted=inserted)

    async def _fetch_tmdb(self, show: ContentItem) -> list[EpisodeRow]:
        details = await self.provider.fetch_show_details(show.tmdb_id)
        fallback = details.default_runtime or DEFAULT_EPISODE_MINUTES

        rows: list[EpisodeRow] = []
        for season_number in range(1, details.season_count + 1):
            try:
                episodes = await self.provider.fetch_season_episodes(show.tmdb_id, season_number)
            except Exception as e:
                logger.warning(f"Failed to fetch season {season_number} for {show.title}: {e}")
                continue
            rows.extend(_to_row(ep, ep.runtime or fallback) for ep in episodes if ep.episode_number)
        return rows

    async def _fetch_jikan(self, show: ContentItem) -> list[EpisodeRow]:
        duration = show.default_duration or DEFAULT_ANIME_EPISODE_MINUTES
        rows: list[EpisodeRow] = []
        page = 1
        while True:
            result = await self.provider.fetch_anime_episodes(show.mal_id, page)
            for ep in result.episodes:
                number = ep.episode_number or len(rows) + 1
                rows.append(_to_row(ep, duration, season=1, episode_number=number))
            if not result.has_more_pages:
                break
            page += 1
        return rows


def dedupe_rows(rows: list[EpisodeRow], existing: set[tuple[int, int]]) -> list[EpisodeRow]:
    """Rows whose (season, episode) is neither cached nor repeated."""
    seen = set(existing)
    fresh = []
    for row in rows:
        if row.key in seen:
            continue
        seen.add(row.key)
        fresh.append(row)
    return fresh


def _to_row(ep: ProviderEpisode, duration: int, season: Optional[int] = None,
            episode_number: Optional[int] = None) -> EpisodeRow:
    number = episode_number or ep.episode_number
    return EpisodeRow(
        season=season if season is not None else ep.season,
        episode_number=number,
        duration=duration,
        title=ep.title or f"Episode {number}",
        overview=ep.overview,
        air_date=ep.air_date,
        still_url=ep.still_url,
    )
