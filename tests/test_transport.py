"""Tests for the HTTP transport."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from auth import AuthManager
from boards.transport import Transport
from config import VERSION, config
from e2ee.exceptions import TransportError


class TestResponses:

    @pytest.mark.asyncio
    async def test_json_response(self, backend):
        backend.on("GET", "/me/boards", [{"id": "b1"}])
        assert await backend.transport().get("/me/boards") == [{"id": "b1"}]

    @pytest.mark.asyncio
    async def test_no_content(self, backend):
        backend.on("DELETE", "/boards/b1/cards/c1", None)
        assert await backend.transport().delete("/boards/b1/cards/c1") is None

    @pytest.mark.asyncio
    async def test_dates_are_rehydrated(self, backend):
        backend.on("GET", "/me", {"trialEnd": "2025-02-01T00:00:00.000Z", "createdAt": None})
        result = await backend.transport().get("/me")
        assert result["trialEnd"] == datetime(2025, 2, 1, tzinfo=timezone.utc)
        assert result["createdAt"] is None

    @pytest.mark.asyncio
    async def test_error_status_carries_server_text(self, backend):
        backend.on("GET", "/boards/b1/", httpx.Response(403, text="Not a member"))
        with pytest.raises(TransportError) as exc_info:
            await backend.transport().get("/boards/b1/")
        assert exc_info.value.status_code == 403
        assert str(exc_info.value) == "Not a member"

    @pytest.mark.asyncio
    async def test_unknown_route_is_an_error(self, backend):
        with pytest.raises(TransportError) as exc_info:
            await backend.transport().get("/nowhere")
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_network_failure(self, backend):
        def unreachable(request):
            raise httpx.ConnectError("connection refused", request=request)

        backend.on("GET", "/me", unreachable)
        with pytest.raises(TransportError, match="Network error"):
            await backend.transport().get("/me")


class TestRequests:

    @pytest.mark.asyncio
    async def test_body_is_json_with_iso_dates(self, backend):
        backend.on("POST", "/boards/", {"id": "b1"})
        when = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
        await backend.transport().post("/boards/", {"name": "x", "startAt": when})

        (request,) = backend.requests
        assert request.headers["content-type"] == "application/json"
        assert json.loads(request.content) == {"name": "x", "startAt": "2024-03-01T09:00:00.000Z"}

    @pytest.mark.asyncio
    async def test_auth_headers_are_attached(self, backend, user_key_pair):
        backend.on("GET", "/me", {})
        await backend.transport(auth=AuthManager(user_key_pair)).get("/me")

        (request,) = backend.requests
        assert request.headers["public-key"] == user_key_pair.public_key
        assert request.headers["challenge"].isdigit()
        assert request.headers["signature"]

    @pytest.mark.asyncio
    async def test_anonymous_requests_have_no_auth_headers(self, backend):
        backend.on("GET", "/boards/b1/", {})
        await backend.transport(auth=AuthManager(None)).get("/boards/b1/")
        assert "public-key" not in backend.requests[0].headers

    @pytest.mark.asyncio
    async def test_close(self, backend):
        transport = backend.transport()
        await transport.close()
        assert transport._client is None

    @pytest.mark.asyncio
    async def test_user_agent_names_the_client(self, backend):
        backend.on("GET", "/me", {})
        await backend.transport().get("/me")
        assert backend.requests[0].headers["user-agent"] == f"portabella-e2ee/{VERSION}"


class TestDefaults:

    @pytest.mark.asyncio
    async def test_defaults_come_from_config(self, monkeypatch):
        monkeypatch.setattr(config, "BACKEND_URL", "http://configured.test/")
        monkeypatch.setattr(config, "REQUEST_TIMEOUT", 12.5)

        transport = Transport()
        assert transport.api_base_url == "http://configured.test"
        assert transport.timeout == 12.5

        client = await transport._get_client()
        assert client.timeout.read == 12.5
        await transport.close()

    def test_explicit_values_win(self, monkeypatch):
        monkeypatch.setattr(config, "REQUEST_TIMEOUT", 12.5)
        transport = Transport("http://explicit.test", timeout=3.0)
        assert transport.api_base_url == "http://explicit.test"
        assert transport.timeout == 3.0
