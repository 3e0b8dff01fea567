"""Content pool — per-content backlogs for one generation run.

Turns the queued content ids plus episode/watch-history records into:
- one shuffled, filtered episode backlog per show
- one single-shot entry per eligible movie

Rerun policy: when reruns are on, every unwatched episode is kept and a
quota of already-watched ones (oldest watch first) is mixed back in.
"""

import math
import random
from collections import defaultdict
from typing import Iterable, Optional

from schedularr.models.records import (
    ContentItem, ContentKind, EpisodeFilter, EpisodeRecord, MovieEntry,
    RerunFrequency, ScheduleOptions,
)
from schedularr.services.events import EventLog


class ContentPool:
    """Backlogs keyed by content id. Built once, read by the scheduler."""

    def __init__(
        self,
        show_backlogs: Optional[dict[str, list[EpisodeRecord]]] = None,
        movies: Optional[dict[str, MovieEntry]] = None,
    ):
        self.show_backlogs = show_backlogs or {}
        self.movies = movies or {}

    # ── Queries ──────────────────────────────────────────────────

    def show_backlog(self, content_id: str) -> list[EpisodeRecord]:
        return self.show_backlogs.get(content_id, [])

    def movie(self, content_id: str) -> Optional[MovieEntry]:
        return self.movies.get(content_id)

    @property
    def episode_count(self) -> int:
        return sum(len(eps) for eps in self.show_backlogs.values())

    @property
    def is_empty(self) -> bool:
        return self.episode_count == 0 and not self.movies

    # ── Construction ─────────────────────────────────────────────

    @classmethod
    def build(
        cls,
        items: Iterable[ContentItem],
        episodes: Iterable[EpisodeRecord],
        watched_movie_ids: set[str],
        options: ScheduleOptions,
        rng: Optional[random.Random] = None,
        events: Optional[EventLog] = None,
    ) -> "ContentPool":
        rng = rng or random.Random()
        events = events or EventLog()

        by_id = {item.id: item for item in items}
        # Preserve queue order; unknown ids are simply absent
        ordered = [by_id[cid] for cid in options.content_ids if cid in by_id]
        shows = [item for item in ordered if item.kind == ContentKind.SHOW]
        movies = [item for item in ordered if item.kind == ContentKind.MOVIE]

        show_backlogs = cls._build_show_backlogs(shows, episodes, options, rng, events)
        movie_entries = cls._build_movie_entries(movies, watched_movie_ids, options, events)
        return cls(show_backlogs, movie_entries)

    @staticmethod
    def _build_show_backlogs(
        shows: list[ContentItem],
        episodes: Iterable[EpisodeRecord],
        options: ScheduleOptions,
        rng: random.Random,
        events: EventLog,
    ) -> dict[str, list[EpisodeRecord]]:
        show_ids = {s.id for s in shows}
        candidates = [e for e in episodes if e.content_id in show_ids]

        if not options.include_reruns:
            candidates = [e for e in candidates if not e.watched]

        candidates = [
            e for e in candidates
            if options.episode_filters.get(e.content_id, EpisodeFilter()).allows(e.season, e.episode_number)
        ]

        selected = select_reruns(candidates, options.include_reruns, options.rerun_frequency)

        grouped: dict[str, list[EpisodeRecord]] = defaultdict(list)
        for episode in selected:
            grouped[episode.content_id].append(episode)

        backlogs: dict[str, list[EpisodeRecord]] = {}
        for show in shows:
            backlog = list(grouped.get(show.id, []))
            # Once per run, never per pick
            rng.shuffle(backlog)
            backlogs[show.id] = backlog
            events.emit("pool.show_backlog", content_id=show.id, title=show.title, episodes=len(backlog))
        return backlogs

    @staticmethod
    def _build_movie_entries(
        movies: list[ContentItem],
        watched_movie_ids: set[str],
        options: ScheduleOptions,
        events: EventLog,
    ) -> dict[str, MovieEntry]:
        entries: dict[str, MovieEntry] = {}
        for movie in movies:
            watched = movie.id in watched_movie_ids
            if watched and not options.include_reruns:
                events.emit("pool.movie_skipped", content_id=movie.id, reason="watched")
                continue
            if not movie.default_duration or movie.default_duration <= 0:
                events.emit("pool.movie_skipped", content_id=movie.id, reason="invalid_duration",
                            duration=movie.default_duration)
                continue
            entries[movie.id] = MovieEntry(content_id=movie.id, duration=movie.default_duration)
            events.emit("pool.movie_added", content_id=movie.id, duration=movie.default_duration)
        return entries


def select_reruns(
    episodes: list[EpisodeRecord],
    include_reruns: bool,
    frequency: RerunFrequency,
) -> list[EpisodeRecord]:
    """Unwatched episodes plus the rerun quota of watched ones.

    The quota is floor(unwatched * ratio), filled with the episodes whose
    last watch is oldest. Frequency 'never' (or reruns off) keeps only
    unwatched episodes.
    """
    unwatched = [e for e in episodes if not e.watched]
    if not include_reruns or frequency == RerunFrequency.NEVER:
        return unwatched

    watched = sorted((e for e in episodes if e.watched), key=lambda e: e.watched_at)
    quota = math.floor(len(unwatched) * frequency.ratio)
    return unwatched + watched[:quota]
