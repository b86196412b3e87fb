"""Tests for the CORS origin policy and middleware."""

import pytest
from httpx import ASGITransport, AsyncClient

from health_bridge.config import HTTPSettings
from health_bridge.cors import ALLOW_HEADERS, ALLOW_METHODS, CORSPolicy
from health_bridge.http_handler import HTTPHandler
from health_bridge.ingest import IngestionEngine
from health_bridge.query import WeightQuery
from health_bridge.samples import SampleNormalizer

ALLOWED = ["https://app.example.com", "https://admin.example.com"]


class TestCORSPolicy:
    """Tests for origin resolution."""

    def test_empty_list_allows_any_origin(self):
        policy = CORSPolicy([])
        assert policy.resolve("https://evil.example") == "*"
        assert policy.resolve(None) == "*"

    def test_listed_origin_is_echoed(self):
        policy = CORSPolicy(ALLOWED)
        assert policy.resolve("https://admin.example.com") == "https://admin.example.com"

    def test_unlisted_origin_gets_first_entry(self):
        policy = CORSPolicy(ALLOWED)
        assert policy.resolve("https://evil.example") == "https://app.example.com"
        assert policy.resolve(None) == "https://app.example.com"

    def test_reject_fallback_omits_header(self):
        policy = CORSPolicy(ALLOWED, fallback="reject")
        assert policy.resolve("https://evil.example") is None
        assert policy.headers("https://evil.example") == {}

    def test_specific_origin_varies(self):
        policy = CORSPolicy(ALLOWED)
        assert policy.headers("https://app.example.com") == {
            "Access-Control-Allow-Origin": "https://app.example.com",
            "Vary": "Origin",
        }

    def test_wildcard_does_not_vary(self):
        assert CORSPolicy([]).headers("https://x.example") == {
            "Access-Control-Allow-Origin": "*"
        }

    def test_unknown_fallback(self):
        with pytest.raises(ValueError, match="Unknown CORS fallback"):
            CORSPolicy(ALLOWED, fallback="deny")


def _make_handler(store, allowed_origins: str = "", cors_fallback: str = "first"):
    settings = HTTPSettings(
        _env_file=None,
        auth_token="secret-token",
        allowed_origins=allowed_origins,
        cors_fallback=cors_fallback,
    )
    return HTTPHandler(
        settings=settings,
        normalizer=SampleNormalizer(),
        engine=IngestionEngine(store),
        query=WeightQuery(store),
    )


async def _client_for(handler: HTTPHandler) -> AsyncClient:
    transport = ASGITransport(app=handler.app)
    return AsyncClient(transport=transport, base_url="http://test")


class TestCORSMiddleware:
    """Tests for CORS headers on real responses."""

    async def test_preflight_answers_204_without_auth(self, store):
        handler = _make_handler(store, allowed_origins=",".join(ALLOWED))
        async with await _client_for(handler) as client:
            resp = await client.options(
                "/api/health/weight", headers={"Origin": "https://admin.example.com"}
            )

        assert resp.status_code == 204
        assert resp.headers["access-control-allow-origin"] == "https://admin.example.com"
        assert resp.headers["access-control-allow-methods"] == ALLOW_METHODS
        assert resp.headers["access-control-allow-headers"] == ALLOW_HEADERS
        assert resp.content == b""

    async def test_preflight_on_unknown_path(self, store):
        handler = _make_handler(store)
        async with await _client_for(handler) as client:
            resp = await client.options("/anything")

        assert resp.status_code == 204
        assert resp.headers["access-control-allow-origin"] == "*"

    async def test_rejected_preflight_has_no_cors_headers(self, store):
        handler = _make_handler(store, allowed_origins=",".join(ALLOWED), cors_fallback="reject")
        async with await _client_for(handler) as client:
            resp = await client.options(
                "/api/health/weight", headers={"Origin": "https://evil.example"}
            )

        assert resp.status_code == 204
        assert "access-control-allow-origin" not in resp.headers
        assert "access-control-allow-methods" not in resp.headers

    async def test_error_responses_carry_headers(self, store):
        handler = _make_handler(store, allowed_origins=",".join(ALLOWED))
        async with await _client_for(handler) as client:
            resp = await client.post(
                "/api/health/weight",
                json={},
                headers={"Origin": "https://evil.example"},
            )

        assert resp.status_code == 401
        assert resp.headers["access-control-allow-origin"] == "https://app.example.com"
        assert resp.headers["vary"] == "Origin"

    async def test_get_carries_wildcard(self, store):
        handler = _make_handler(store)
        async with await _client_for(handler) as client:
            resp = await client.get(
                "/api/health/weight", headers={"Origin": "https://anything.example"}
            )

        assert resp.headers["access-control-allow-origin"] == "*"
