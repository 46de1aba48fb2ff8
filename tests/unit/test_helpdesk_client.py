"""
Unit tests for HelpdeskClient — per-tenant REST calls.

Tests cover:
- Domain normalization and base URL
- Basic token auth ("user/token")
- Incremental export parameters
- Responses returned without raising on 4xx/5xx
- Timeouts raised as ConnectionTimeoutError
- ensure_success error mapping

Version: 1.0.0
"""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from helpdesk_sync.clients.helpdesk_client import HelpdeskClient, ensure_success
from helpdesk_sync.core.exceptions import ConfigurationError, ConnectionTimeoutError, ExternalAPIError
from helpdesk_sync.schemas.tenant import Tenant
from http_helpers import make_response


@pytest.fixture
def client(tenant, mock_settings):
    return HelpdeskClient(tenant, mock_settings)


def _patched_async_client(response):
    mock_http = AsyncMock()
    mock_http.request.return_value = response
    mock_ctx = AsyncMock()
    mock_ctx.__aenter__.return_value = mock_http
    return mock_http, mock_ctx


@pytest.mark.unit
class TestHelpdeskClientInit:

    def test_domain_normalized(self, mock_settings):
        tenant = Tenant(id=1, domain="https://acme.helpdesk.test/", api_user="u", api_token="t")
        c = HelpdeskClient(tenant, mock_settings)
        assert c._base_url() == "https://acme.helpdesk.test"

    def test_missing_domain_raises(self, mock_settings):
        c = HelpdeskClient(Tenant(id=1, domain="", api_user="u", api_token="t"), mock_settings)
        with pytest.raises(ConfigurationError):
            c._base_url()

    def test_auth_uses_token_suffix(self, client):
        auth = client._auth()
        assert isinstance(auth, httpx.BasicAuth)
        assert auth._auth_header == httpx.BasicAuth("agent@acme.test/token", "test-api-token")._auth_header

    def test_missing_credentials_raise(self, mock_settings):
        c = HelpdeskClient(Tenant(id=1, domain="acme.helpdesk.test"), mock_settings)
        with pytest.raises(ConfigurationError):
            c._auth()


@pytest.mark.unit
class TestRequest:

    @pytest.mark.asyncio
    async def test_timeout_raises_connection_timeout(self, client):
        mock_http, mock_ctx = _patched_async_client(None)
        mock_http.request.side_effect = httpx.ReadTimeout("read timed out")
        mock_ctx.__aexit__.return_value = False

        with patch("helpdesk_sync.clients.helpdesk_client.httpx.AsyncClient", return_value=mock_ctx):
            with pytest.raises(ConnectionTimeoutError, match="GET /api/v2/tickets/42.json timed out") as exc_info:
                await client.get("/api/v2/tickets/42.json")

        assert isinstance(exc_info.value.__cause__, httpx.ReadTimeout)

    @pytest.mark.asyncio
    async def test_connect_error_is_not_wrapped(self, client):
        mock_http, mock_ctx = _patched_async_client(None)
        mock_http.request.side_effect = httpx.ConnectError("connection refused")
        mock_ctx.__aexit__.return_value = False

        with patch("helpdesk_sync.clients.helpdesk_client.httpx.AsyncClient", return_value=mock_ctx):
            with pytest.raises(httpx.ConnectError):
                await client.get("/api/v2/tickets/42.json")

    @pytest.mark.asyncio
    async def test_fetch_incremental_tickets_params(self, client):
        mock_http, mock_ctx = _patched_async_client(make_response(200, json={"tickets": []}))

        with patch("helpdesk_sync.clients.helpdesk_client.httpx.AsyncClient", return_value=mock_ctx) as MockAsyncClient:
            response = await client.fetch_incremental_tickets(1000)

        assert response.status_code == 200
        kwargs = mock_http.request.call_args.kwargs
        assert kwargs["method"] == "GET"
        assert kwargs["url"] == "https://acme.helpdesk.test/api/v2/incremental/tickets.json"
        assert kwargs["params"] == {"start_time": 1000, "include": "users"}
        assert kwargs["json"] is None
        assert MockAsyncClient.call_args.kwargs["timeout"] == client._timeout

    @pytest.mark.asyncio
    async def test_json_body_sets_content_type(self, client):
        mock_http, mock_ctx = _patched_async_client(make_response(201, json={}))

        with patch("helpdesk_sync.clients.helpdesk_client.httpx.AsyncClient", return_value=mock_ctx):
            await client.request("post", "/api/v2/users.json", json={"user": {"name": "Ada"}})

        kwargs = mock_http.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["headers"]["Content-Type"] == "application/json"
        assert kwargs["json"] == {"user": {"name": "Ada"}}

    @pytest.mark.asyncio
    async def test_error_status_returned_not_raised(self, client):
        _, mock_ctx = _patched_async_client(make_response(429, headers={"Retry-After": "7"}))

        with patch("helpdesk_sync.clients.helpdesk_client.httpx.AsyncClient", return_value=mock_ctx):
            response = await client.get("/api/v2/tickets/1.json")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "7"


@pytest.mark.unit
class TestEnsureSuccess:

    def test_success_passes_through(self):
        response = make_response(200, json={"ok": True})
        assert ensure_success(response) is response

    @pytest.mark.parametrize("status", [400, 404, 500, 503])
    def test_error_status_raises(self, status):
        with pytest.raises(ExternalAPIError) as exc_info:
            ensure_success(make_response(status, text="nope"), "comments for ticket 1")
        assert exc_info.value.status_code == status
        assert "comments for ticket 1" in str(exc_info.value)

    def test_uses_status_code_only(self):
        response = MagicMock(status_code=302, text="")
        assert ensure_success(response) is response
