"""
Integration tests for BackOfficeClient using MockBackOfficeService.

Tests the full client flow: storage -> context headers -> transport -> errors
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from backoffice_client import BackOfficeClient, ClientConfig, FileStorage, MemoryStorage
from backoffice_client.errors import AuthRequiredError, NetworkError, NotFoundError, ServerError

from tests.conftest import make_config
from tests.fixtures.mock_service import MockBackOfficeService


class TestRequestHeaders:
    """Every request carries the context derived from storage."""

    @pytest.mark.asyncio
    async def test_full_context(self, make_client, mock_service):
        """Test credential, tenant, branch, timezone and request id headers."""
        mock_service.add_route("GET", "/loans", 200, json=[])
        client = make_client(
            storage={"accessToken": "Bearer xyz", "tenantId": "t-9", "activeBranchId": "4"},
            timezone="Africa/Nairobi",
        )

        await client.request("GET", "/loans")

        headers = mock_service.last_request().headers
        assert headers["authorization"] == "Bearer xyz"
        assert headers["x-tenant-id"] == "t-9"
        assert headers["x-branch-id"] == "4"
        assert headers["x-timezone"] == "Africa/Nairobi"
        assert headers["x-tz-offset"] == "180"
        assert headers["accept"] == "application/json"
        assert headers["x-request-id"]

    @pytest.mark.asyncio
    async def test_unauthenticated_request_still_sent(self, make_client, mock_service):
        """Test a missing credential is not an error."""
        mock_service.add_route("GET", "/public/ping", 200, json={"ok": True})
        client = make_client()

        assert await client.request("GET", "/public/ping") == {"ok": True}
        assert "authorization" not in mock_service.last_request().headers

    @pytest.mark.asyncio
    async def test_default_tenant(self, make_client, mock_service):
        """Test the configured default tenant is used when nothing is stored."""
        mock_service.add_route("GET", "/loans", 200, json=[])
        client = make_client(default_tenant_id="tenant-default")

        await client.request("GET", "/loans")

        assert mock_service.last_request().headers["x-tenant-id"] == "tenant-default"

    @pytest.mark.asyncio
    async def test_no_tenant_sentinel(self, make_client, mock_service):
        """Test the "none" sentinel suppresses the tenant header."""
        mock_service.add_route("GET", "/loans", 200, json=[])
        client = make_client(default_tenant_id="none")

        await client.request("GET", "/loans")

        assert "x-tenant-id" not in mock_service.last_request().headers

    @pytest.mark.asyncio
    async def test_tenant_override(self, make_client, mock_service):
        """Test set/clear tenant pin is reflected on the next request."""
        mock_service.add_route("GET", "/loans", 200, json=[])
        client = make_client(storage={"x-tenant-id": "stored"})

        client.set_tenant_id("pinned")
        await client.request("GET", "/loans")
        assert mock_service.last_request().headers["x-tenant-id"] == "pinned"

        client.clear_tenant_id()
        await client.request("GET", "/loans")
        assert mock_service.last_request().headers["x-tenant-id"] == "stored"

    @pytest.mark.asyncio
    async def test_caller_request_id_kept(self, make_client, mock_service):
        """Test an explicit x-request-id is not replaced."""
        mock_service.add_route("GET", "/loans", 200, json=[])
        client = make_client()

        await client.request("GET", "/loans", headers={"x-request-id": "trace-1"})

        assert mock_service.last_request().headers["x-request-id"] == "trace-1"


class TestPathNormalization:
    """Paths are joined to the base URL without a doubled /api."""

    @pytest.mark.parametrize(
        "base,path,expected",
        [
            ("http://mock/api", "/api/loans", "/loans"),
            ("http://mock/api/", "api/loans", "/loans"),
            ("http://mock/api", "/api", "/"),
            ("http://mock", "/api/loans", "/api/loans"),
            ("http://mock", "loans//42", "/loans/42"),
            ("http://mock/api", "/apiary", "/apiary"),
            ("http://mock", "https://files.example.com/x", "https://files.example.com/x"),
            ("http://mock", "", "/"),
        ],
    )
    def test_normalize_path(self, base, path, expected):
        client = BackOfficeClient(config=make_config(api_base_url=base))
        assert client.api.normalize_path(path) == expected

    @pytest.mark.asyncio
    async def test_request_url(self, make_client, mock_service):
        """Test the wire URL has a single /api segment."""
        mock_service.add_route("GET", "/api/loans", 200, json=[])
        client = make_client(api_base_url="http://mock/api/")

        await client.request("GET", "/api/loans")

        assert str(mock_service.last_request().url) == "http://mock/api/loans"


class TestErrorPropagation:
    """Failures reach the caller as normalized errors."""

    @pytest.mark.asyncio
    async def test_server_error(self, make_client, mock_service):
        mock_service.add_route("GET", "/loans", 503, json={"error": "maintenance window"})
        client = make_client()

        with pytest.raises(ServerError) as exc_info:
            await client.request("GET", "/loans")

        assert exc_info.value.http_status == 503
        assert exc_info.value.message == "maintenance window"

    @pytest.mark.asyncio
    async def test_timeout(self, make_client, mock_service):
        mock_service.add_network_error("GET", "/loans", timeout=True)
        client = make_client()

        with pytest.raises(NetworkError, match="Request timeout"):
            await client.request("GET", "/loans")

    @pytest.mark.asyncio
    async def test_401_keeps_session_by_default(self, make_client, mock_service):
        mock_service.add_route("GET", "/loans", 401)
        storage = {"token": "abc", "tenantId": "t1"}
        client = make_client(storage=storage)

        with pytest.raises(AuthRequiredError):
            await client.get_first(["/loans"])

        assert client.storage.get("token") == "abc"

    @pytest.mark.asyncio
    async def test_401_clears_session_when_configured(self, make_client, mock_service):
        """Test clear_session_on_auth_failure purges credential and context."""
        mock_service.add_route("GET", "/loans", 401)
        client = make_client(
            storage={"token": "abc", "tenantId": "t1", "activeBranchId": "2", "theme": "dark"},
            session={"jwt": "session-jwt"},
            clear_session_on_auth_failure=True,
        )
        client.set_tenant_id("pinned")

        with pytest.raises(AuthRequiredError):
            await client.get_first(["/loans", "/org/loans"])

        assert client.storage.keys() == ["theme"]
        assert client.session.keys() == []
        assert client.get_tenant_id() is None


class TestRetry:
    """Opt-in re-send of the same request."""

    @pytest.mark.asyncio
    async def test_disabled_by_default(self, make_client, mock_service):
        mock_service.add_route("GET", "/loans", 502)
        client = make_client()

        with pytest.raises(ServerError):
            await client.request("GET", "/loans")

        assert len(mock_service.requests) == 1

    @pytest.mark.asyncio
    async def test_retries_server_error(self, make_client, mock_service):
        responses = iter([httpx.Response(503), httpx.Response(200, json={"ok": True})])
        mock_service.add_handler("GET", "/loans", lambda request: next(responses))
        client = make_client(retry_max_attempts=2)

        assert await client.request("GET", "/loans") == {"ok": True}
        assert len(mock_service.requests) == 2

    @pytest.mark.asyncio
    async def test_does_not_retry_not_found(self, make_client, mock_service):
        client = make_client(retry_max_attempts=3)

        with pytest.raises(NotFoundError):
            await client.request("GET", "/missing")

        assert len(mock_service.requests) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, make_client, mock_service):
        mock_service.add_network_error("GET", "/loans", timeout=True)
        client = make_client(retry_max_attempts=2)

        with pytest.raises(NetworkError):
            await client.request("GET", "/loans")

        assert len(mock_service.requests) == 3


class TestClientLifecycle:
    """Construction, storage selection and independence."""

    @pytest.mark.asyncio
    async def test_context_manager(self):
        mock_svc = MockBackOfficeService()
        mock_svc.add_route("GET", "/loans", 200, json=[{"id": 1}])

        with mock_svc.patch_httpx():
            async with BackOfficeClient(config=make_config()) as client:
                result = await client.get_first(["/loans"])

        assert result == [{"id": 1}]

    def test_file_storage_from_config(self, tmp_path):
        path = tmp_path / "session.json"
        client = BackOfficeClient(config=make_config(storage_path=str(path)))

        assert isinstance(client.storage, FileStorage)
        assert client.storage.path == path

    def test_memory_storage_by_default(self):
        client = BackOfficeClient(config=make_config())
        assert isinstance(client.storage, MemoryStorage)

    @pytest.mark.asyncio
    async def test_instances_are_independent(self, make_client, mock_service):
        mock_service.add_route("GET", "/loans", 200, json=[])
        first = make_client()
        second = make_client()

        first.set_tenant_id("tenant-a")
        await second.request("GET", "/loans")

        assert "x-tenant-id" not in mock_service.last_request().headers

    @pytest.mark.asyncio
    async def test_concurrent_operations(self, make_client, mock_service):
        """Test independent calls may run at the same time."""
        async def slow(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.01)
            return httpx.Response(200, json={"path": request.url.path})

        mock_service.add_handler("GET", "/loans", slow)
        mock_service.add_handler("GET", "/borrowers", slow)
        client = make_client()

        loans, borrowers = await asyncio.gather(
            client.get_first(["/loans"]), client.get_first(["/borrowers"])
        )

        assert loans == {"path": "/loans"}
        assert borrowers == {"path": "/borrowers"}

    def test_config_from_environment(self, monkeypatch):
        monkeypatch.setenv("BACKOFFICE_API_BASE_URL", "https://env.example.com/api/")
        monkeypatch.delenv("BACKOFFICE_STORAGE_PATH", raising=False)

        client = BackOfficeClient(config=ClientConfig())

        assert client.config.base_url == "https://env.example.com/api"
