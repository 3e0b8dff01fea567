"""TMDB client — show details and season episode listings.

Handles: show season layout, per-season episodes, image URLs. Responses
are normalized into the DTOs from clients/base.py.
"""

import httpx
from datetime import date
from typing import Optional

from schedularr.clients.base import ProviderEpisode, ShowDetails


class TmdbClient:
    """The Movie Database API v3 client."""

    BASE_URL = "https://api.themoviedb.org/3"
    IMAGE_BASE = "https://image.tmdb.org/t/p"

    def __init__(self, api_key: str, language: str = "en-US", base_url: Optional[str] = None):
        self.api_key = api_key
        self.language = language
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        # Detect auth mode: JWT (v4 bearer) vs plain key (v3 query param)
        self._is_bearer = api_key.startswith("eyJ")

    async def _get(self, path: str, params: dict | None = None) -> dict:
        """Make authenticated GET request to TMDB.

        Supports both v3 (api_key query param) and v4 (Bearer token header).
        v4 bearer tokens work with v3 endpoints via Authorization header.
        """
        all_params = {"language": self.language, **(params or {})}
        headers = {}

        if self._is_bearer:
            headers["Authorization"] = f"Bearer {self.api_key}"
        else:
            all_params["api_key"] = self.api_key

        async with httpx.AsyncClient(timeout=15.0) as client:
            resp = await client.get(f"{self.base_url}{path}", params=all_params, headers=headers)
            resp.raise_for_status()
            return resp.json()

    # ── TV show details ──────────────────────────────────────────

    async def get_show_details(self, tmdb_id: int) -> ShowDetails:
        """Season count and episode runtimes for a show."""
        data = await self._get(f"/tv/{tmdb_id}")
        return ShowDetails(
            season_count=data.get("number_of_seasons") or 0,
            episode_run_time=[r for r in data.get("episode_run_time") or [] if r],
        )

    async def get_season(self, tmdb_id: int, season_number: int) -> list[ProviderEpisode]:
        """All episodes of one season."""
        data = await self._get(f"/tv/{tmdb_id}/season/{season_number}")
        return [self._normalize_episode(ep, season_number) for ep in data.get("episodes", [])]

    # ── Test connection ──────────────────────────────────────────

    async def test_connection(self) -> bool:
        """Test TMDB API key validity."""
        try:
            await self._get("/configuration")
            return True
        except httpx.HTTPError:
            return False

    # ── Normalization helpers ────────────────────────────────────

    def _normalize_episode(self, data: dict, season_number: int) -> ProviderEpisode:
        """Normalize a TMDB season episode into a ProviderEpisode."""
        return ProviderEpisode(
            season=data.get("season_number", season_number),
            episode_number=data.get("episode_number"),
            title=data.get("name"),
            overview=data.get("overview") or None,
            runtime=data.get("runtime"),
            air_date=_parse_date(data.get("air_date")),
            still_url=self.image_url(data.get("still_path")),
        )

    # ── Image URL helpers ────────────────────────────────────────

    @classmethod
    def image_url(cls, path: Optional[str], size: str = "w500") -> Optional[str]:
        """Build full image URL from TMDB path."""
        if not path:
            return None
        return f"{cls.IMAGE_BASE}/{size}{path}"


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None
