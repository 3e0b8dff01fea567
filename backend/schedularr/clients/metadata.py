"""Composite metadata provider — TMDB for TV shows, Jikan for anime."""

from typing import Optional

from schedularr.clients.base import (
    AnimeEpisodePage, IMetadataProvider, ProviderEpisode, ShowDetails,
)
from schedularr.clients.jikan import JikanClient
from schedularr.clients.tmdb import TmdbClient
from schedularr.config import Settings


class ProviderNotConfigured(RuntimeError):
    """A lookup needs a provider that has no credentials configured."""


class MetadataProvider(IMetadataProvider):
    """IMetadataProvider backed by TmdbClient and JikanClient."""

    def __init__(self, tmdb: Optional[TmdbClient], jikan: Optional[JikanClient]):
        self.tmdb = tmdb
        self.jikan = jikan

    @classmethod
    def from_settings(cls, settings: Settings) -> "MetadataProvider":
        tmdb = None
        if settings.has_tmdb:
            tmdb = TmdbClient(settings.tmdb_api_key, settings.tmdb_language, settings.tmdb_base_url)
        jikan = None
        if settings.has_jikan:
            jikan = JikanClient(settings.jikan_base_url, settings.jikan_min_interval_ms / 1000)
        return cls(tmdb, jikan)

    def _require_tmdb(self) -> TmdbClient:
        if self.tmdb is None:
            raise ProviderNotConfigured("TMDB_API_KEY not configured")
        return self.tmdb

    def _require_jikan(self) -> JikanClient:
        if self.jikan is None:
            raise ProviderNotConfigured("Jikan base URL not configured")
        return self.jikan

    async def fetch_show_details(self, external_id: int) -> ShowDetails:
        return await self._require_tmdb().get_show_details(external_id)

    async def fetch_season_episodes(self, external_id: int, season_number: int) -> list[ProviderEpisode]:
        return await self._require_tmdb().get_season(external_id, season_number)

    async def fetch_anime_episodes(self, external_id: int, page: int = 1) -> AnimeEpisodePage:
        return await self._require_jikan().get_anime_episodes(external_id, page)
