"""Tests for bearer token authentication on the weight endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from health_bridge.config import HTTPSettings
from health_bridge.http_handler import HTTPHandler
from health_bridge.ingest import IngestionEngine
from health_bridge.query import WeightQuery
from health_bridge.samples import SampleNormalizer


def _make_handler(store, auth_token: str = "", require_auth_for_reads: bool = False):
    """Create a handler isolated from env vars."""
    settings = HTTPSettings(
        _env_file=None,
        auth_token=auth_token,
        allowed_origins="",
        require_auth_for_reads=require_auth_for_reads,
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


@pytest.mark.parametrize("path", ["/api/health/weight", "/api/health/import"])
class TestWriteAuth:
    """Write endpoints require the token when one is configured."""

    async def test_no_header_returns_401(self, store, sample_import_payload, path):
        handler = _make_handler(store, auth_token="secret-token")
        async with await _client_for(handler) as client:
            resp = await client.post(path, json=sample_import_payload)

        assert resp.status_code == 401
        assert resp.json() == {"ok": False, "error": "Unauthorized"}

    async def test_wrong_token_returns_401(self, store, sample_import_payload, path):
        handler = _make_handler(store, auth_token="secret-token")
        async with await _client_for(handler) as client:
            resp = await client.post(
                path,
                json=sample_import_payload,
                headers={"Authorization": "Bearer wrong-token"},
            )

        assert resp.status_code == 401

    async def test_wrong_scheme_returns_401(self, store, sample_import_payload, path):
        handler = _make_handler(store, auth_token="secret-token")
        async with await _client_for(handler) as client:
            resp = await client.post(
                path,
                json=sample_import_payload,
                headers={"Authorization": "Basic secret-token"},
            )

        assert resp.status_code == 401

    async def test_unauthorized_request_is_not_stored(self, store, sample_import_payload, path):
        handler = _make_handler(store, auth_token="secret-token")
        async with await _client_for(handler) as client:
            await client.post(path, json=sample_import_payload)

        assert await store.count() == 0

    async def test_auth_checked_before_body(self, store, path):
        handler = _make_handler(store, auth_token="secret-token")
        async with await _client_for(handler) as client:
            resp = await client.post(
                path, content=b"{broken", headers={"Content-Type": "application/json"}
            )

        assert resp.status_code == 401


class TestAuthSuccess:
    """Requests carrying the right token, or with auth disabled."""

    async def test_correct_token(self, store, sample_weight_payload):
        handler = _make_handler(store, auth_token="secret-token")
        async with await _client_for(handler) as client:
            resp = await client.post(
                "/api/health/weight",
                json=sample_weight_payload,
                headers={"Authorization": "Bearer secret-token"},
            )

        assert resp.status_code == 200

    async def test_no_token_configured_allows_all(self, store, sample_weight_payload):
        handler = _make_handler(store, auth_token="")
        async with await _client_for(handler) as client:
            resp = await client.post("/api/health/weight", json=sample_weight_payload)

        assert resp.status_code == 200
        assert await store.count() == 1


class TestReadAuth:
    """GET /api/health/weight is open unless reads are protected."""

    async def test_reads_open_by_default(self, store):
        handler = _make_handler(store, auth_token="secret-token")
        async with await _client_for(handler) as client:
            resp = await client.get("/api/health/weight")

        assert resp.status_code == 200

    async def test_protected_reads_need_token(self, store):
        handler = _make_handler(store, auth_token="secret-token", require_auth_for_reads=True)
        async with await _client_for(handler) as client:
            denied = await client.get("/api/health/weight")
            allowed = await client.get(
                "/api/health/weight", headers={"Authorization": "Bearer secret-token"}
            )

        assert denied.status_code == 401
        assert allowed.status_code == 200
        assert allowed.json() == []

    async def test_service_endpoints_stay_open(self, store):
        handler = _make_handler(store, auth_token="secret-token", require_auth_for_reads=True)
        async with await _client_for(handler) as client:
            resp = await client.get("/health")

        assert resp.status_code == 200
