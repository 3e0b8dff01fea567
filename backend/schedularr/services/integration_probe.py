"""Probe all configured integrations on startup and report status."""

from sqlalchemy import text

from schedularr.clients.jikan import JikanClient
from schedularr.clients.tmdb import TmdbClient
from schedularr.config import Settings
from schedularr.database import engine


async def probe_all(settings: Settings) -> dict:
    """Check reachability of the metadata providers and the database. Returns status dict."""
    results = {}

    # TMDB
    if settings.has_tmdb:
        client = TmdbClient(settings.tmdb_api_key, settings.tmdb_language, settings.tmdb_base_url)
        results["tmdb"] = _status(await client.test_connection())
    else:
        results["tmdb"] = {"status": "not_configured"}

    # Jikan
    if settings.has_jikan:
        client = JikanClient(settings.jikan_base_url, settings.jikan_min_interval_ms / 1000)
        results["jikan"] = _status(await client.test_connection())
    else:
        results["jikan"] = {"status": "not_configured"}

    results["database"] = await _probe_database()
    return results


def _status(reachable: bool) -> dict:
    return {"status": "ok" if reachable else "error"}


async def _probe_database() -> dict:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as e:
        return {"status": "error", "detail": str(e)[:200]}
