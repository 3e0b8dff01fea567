"""
Unit tests for the startup integration probe.
"""
import respx
from httpx import Response

from schedularr.config import Settings
from schedularr.services.integration_probe import probe_all

TMDB = "https://api.themoviedb.org/3"
JIKAN = "https://api.jikan.moe/v4"


class TestProbeAll:
    """Tests for probe_all."""

    @respx.mock
    async def test_reports_reachable_providers(self):
        tmdb = respx.get(f"{TMDB}/configuration").mock(return_value=Response(200, json={}))
        jikan = respx.get(f"{JIKAN}/anime/1").mock(return_value=Response(200, json={"data": {}}))

        results = await probe_all(Settings(tmdb_api_key="key", jikan_min_interval_ms=0))

        assert results["tmdb"] == {"status": "ok"}
        assert results["jikan"] == {"status": "ok"}
        assert results["database"]["status"] == "ok"
        assert tmdb.called and jikan.called

    @respx.mock
    async def test_reports_provider_errors(self):
        respx.get(f"{TMDB}/configuration").mock(return_value=Response(401))
        respx.get(f"{JIKAN}/anime/1").mock(return_value=Response(500))

        results = await probe_all(Settings(tmdb_api_key="bad-key", jikan_min_interval_ms=0))

        assert results["tmdb"] == {"status": "error"}
        assert results["jikan"] == {"status": "error"}

    @respx.mock
    async def test_tmdb_without_key_is_not_configured(self):
        respx.get(f"{JIKAN}/anime/1").mock(return_value=Response(200, json={"data": {}}))

        results = await probe_all(Settings(tmdb_api_key=None, jikan_min_interval_ms=0))

        assert results["tmdb"] == {"status": "not_configured"}
