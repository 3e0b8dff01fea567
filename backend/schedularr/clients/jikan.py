"""Jikan client — unofficial MyAnimeList API (https://docs.api.jikan.moe/).

Jikan allows 3 requests/second per client, so every request made through
any JikanClient instance is spaced at least `min_interval` apart.
"""

import asyncio
import time
import weakref
import httpx
from datetime import date
from typing import Optional

from schedularr.clients.base import AnimeEpisodePage, ProviderEpisode


class JikanError(Exception):
    """Jikan returned an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class JikanClient:
    """Jikan API v4 client with request spacing."""

    BASE_URL = "https://api.jikan.moe/v4"

    # Shared by all instances; the limit is per caller IP.
    # One lock per event loop, since asyncio locks are loop-bound.
    _locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]" = weakref.WeakKeyDictionary()
    _last_request_at: float = 0.0

    def __init__(self, base_url: Optional[str] = None, min_interval: float = 0.35):
        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self.min_interval = min_interval

    @classmethod
    def _get_lock(cls) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        lock = cls._locks.get(loop)
        if lock is None:
            lock = cls._locks[loop] = asyncio.Lock()
        return lock

    async def _wait_turn(self) -> None:
        async with self._get_lock():
            elapsed = time.monotonic() - JikanClient._last_request_at
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
            JikanClient._last_request_at = time.monotonic()

    async def _get(self, path: str, params: dict | None = None) -> dict:
        """Rate-limited GET, mapping Jikan error statuses to JikanError."""
        await self._wait_turn()
        async with httpx.AsyncClient(timeout=15.0) as client:
            resp = await client.get(f"{self.base_url}{path}", params=params)

        if resp.status_code == 429:
            raise JikanError("Jikan API rate limit exceeded. Please wait a moment.", 429)
        if resp.status_code == 404:
            raise JikanError("Anime not found in Jikan API", 404)
        if resp.status_code >= 400:
            raise JikanError(f"Jikan API error: {resp.status_code} {resp.reason_phrase}", resp.status_code)
        return resp.json()

    # ── Episodes ─────────────────────────────────────────────────

    async def get_anime_episodes(self, mal_id: int, page: int = 1) -> AnimeEpisodePage:
        """One page of episodes for an anime. Jikan has no seasons; all are season 1."""
        data = await self._get(f"/anime/{mal_id}/episodes", {"page": page})
        pagination = data.get("pagination") or {}
        last_page = pagination.get("last_visible_page") or 1

        return AnimeEpisodePage(
            episodes=[self._normalize_episode(ep) for ep in data.get("data") or []],
            has_more_pages=bool(pagination.get("has_next_page", page < last_page)),
        )

    async def test_connection(self) -> bool:
        try:
            await self._get("/anime/1")
            return True
        except (JikanError, httpx.HTTPError):
            return False

    @staticmethod
    def _normalize_episode(data: dict) -> ProviderEpisode:
        # Episode entries carry their number as mal_id
        return ProviderEpisode(
            season=1,
            episode_number=data.get("mal_id") or data.get("episode"),
            title=data.get("title"),
            air_date=_parse_aired(data.get("aired")),
        )


def _parse_aired(value: Optional[str]) -> Optional[date]:
    """'2019-04-06T00:00:00+00:00' -> date(2019, 4, 6)."""
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None
