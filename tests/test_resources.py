"""Tests for the resource groups."""

from __future__ import annotations

import json

import httpx
import pytest

from backoffice_client.errors import AuthRequiredError, ServerError
from backoffice_client.resources import Page, extract_items, to_page

from tests.fixtures.mock_service import create_mock_service_for_branches


class TestPageHelpers:
    """Tests for list normalization."""

    def test_bare_list(self):
        assert extract_items([1, 2]) == [1, 2]

    @pytest.mark.parametrize("key", ["items", "rows", "data"])
    def test_wrapped_list(self, key):
        assert extract_items({key: [1]}) == [1]

    def test_unrecognized_shape(self):
        assert extract_items({"count": 3}) == []
        assert extract_items(None) == []

    def test_total_from_header(self):
        page = to_page([1, 2], httpx.Headers({"x-total-count": "40"}))
        assert page.total == 40

    def test_total_from_meta(self):
        page = to_page({"rows": [1], "meta": {"total": 12}})
        assert page.total == 12

    def test_total_defaults_to_item_count(self):
        page = to_page({"items": [1, 2, 3]}, httpx.Headers({"x-total-count": "n/a"}))
        assert page.total == 3
        assert len(page) == 3
        assert list(page) == [1, 2, 3]


class TestBranches:
    """Branch CRUD over a discovered base path."""

    @pytest.mark.asyncio
    async def test_list_discovers_legacy_alias(self, make_client):
        """Only /org/branches exists: items come back and the base is cached."""
        svc = create_mock_service_for_branches()
        client = make_client(service=svc)

        page = await client.branches.list_branches()

        assert isinstance(page, Page)
        assert [b["id"] for b in page.items] == [1, 2]
        assert page.total == 2
        assert client.discovery.cached("branches") == "/org/branches"

        request = svc.last_request()
        assert request.url.path == "/org/branches"
        assert request.url.params["limit"] == "50"
        assert request.url.params["offset"] == "0"

    @pytest.mark.asyncio
    async def test_second_list_skips_discovery(self, make_client):
        svc = create_mock_service_for_branches()
        client = make_client(service=svc)

        await client.branches.list_branches()
        svc.clear_calls()
        await client.branches.list_branches(q="mombasa", limit=10, offset=20)

        assert svc.get_calls() == [("GET", "/org/branches")]
        params = svc.last_request().url.params
        assert params["q"] == "mombasa"
        assert params["limit"] == "10"
        assert params["offset"] == "20"

    @pytest.mark.asyncio
    async def test_create_update_delete(self, make_client):
        svc = create_mock_service_for_branches()
        client = make_client(service=svc)

        created = await client.branches.create_branch({"name": "Kisumu"})
        updated = await client.branches.update_branch(3, {"name": "Kisumu West"})
        deleted = await client.branches.delete_branch(3)

        assert created == {"id": 3, "name": "Kisumu"}
        assert updated["name"] == "Kisumu West"
        assert deleted is None
        assert ("DELETE", "/org/branches/3") in svc.get_calls()

    @pytest.mark.asyncio
    async def test_staff_assignment(self, make_client):
        svc = create_mock_service_for_branches()
        client = make_client(service=svc)

        assert await client.branches.assign_staff(3, [7, 8]) == {"assigned": 2}
        assert json.loads(svc.last_request().content) == {"userIds": [7, 8]}

        assert await client.branches.unassign_staff(3, 7) == {"removed": 1}
        assert svc.last_request().url.path == "/org/branches/3/staff/7"

    @pytest.mark.asyncio
    async def test_write_errors_are_normalized(self, make_client):
        svc = create_mock_service_for_branches()
        svc.add_route("POST", "/org/branches", 500, json={"error": "duplicate code"})
        client = make_client(service=svc)

        with pytest.raises(ServerError, match="duplicate code"):
            await client.branches.create_branch({"name": "Kisumu"})


class TestCashAccounts:
    """Cash accounts across their historical routes."""

    @pytest.mark.asyncio
    async def test_list_from_third_candidate(self, make_client, mock_service):
        mock_service.add_route("GET", "/banks/accounts", 200, json={"data": [{"id": "acc-1"}]})
        client = make_client()

        page = await client.cash_accounts.list_accounts()

        assert page.items == [{"id": "acc-1"}]
        assert client.discovery.cached("cash-accounts") == "/banks/accounts"

    @pytest.mark.asyncio
    async def test_create_uses_discovered_base(self, make_client, mock_service):
        mock_service.add_route("GET", "/banks/cash/accounts", 403)
        mock_service.add_route("POST", "/banks/cash/accounts", 201, json={"id": "acc-2"})
        client = make_client()

        assert await client.cash_accounts.create_account({"name": "Till 2"}) == {"id": "acc-2"}


class TestTenants:
    """Tenant directory lookups."""

    @pytest.mark.asyncio
    async def test_list_from_admin_route(self, make_client, mock_service):
        mock_service.add_route(
            "GET", "/admin/tenants", 200,
            json={"tenants": [{"id": "t1", "name": "Acme Lending"}, {"id": "t2", "name": "Baraka"}]},
        )
        client = make_client()

        tenants = await client.tenants.list_tenants()

        assert [t["id"] for t in tenants] == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_search(self, make_client, mock_service):
        mock_service.add_route(
            "GET", "/tenants", 200,
            json=[{"id": "t1", "name": "Acme Lending"}, {"id": "t2", "name": "Baraka"}],
        )
        client = make_client()

        assert await client.tenants.search("acme") == [{"id": "t1", "name": "Acme Lending"}]
        assert await client.tenants.search("T2") == [{"id": "t2", "name": "Baraka"}]
        assert len(await client.tenants.search("  ")) == 2


class TestSettings:
    """Settings key store over both route shapes."""

    @pytest.mark.asyncio
    async def test_get_from_keyed_route(self, make_client, mock_service):
        mock_service.add_route("GET", "/api/settings/loan-defaults", 200, json={"rate": 12})
        client = make_client()

        assert await client.settings.get("loan-defaults") == {"rate": 12}

    @pytest.mark.asyncio
    async def test_get_falls_through_server_error(self, make_client, mock_service):
        mock_service.add_route("GET", "/api/settings/loan-defaults", 500)
        mock_service.add_route("GET", "/api/settings", 200, json={"rate": 9})
        client = make_client()

        assert await client.settings.get("loan-defaults") == {"rate": 9}
        assert mock_service.last_request().url.params["key"] == "loan-defaults"

    @pytest.mark.asyncio
    async def test_missing_setting_reads_empty(self, make_client):
        client = make_client()
        assert await client.settings.get("never-saved") == {}

    @pytest.mark.asyncio
    async def test_api_prefix_dropped_when_base_has_it(self, make_client, mock_service):
        mock_service.add_route("GET", "/api/settings/theme", 200, json={"mode": "dark"})
        client = make_client(api_base_url="http://mock/api")

        assert await client.settings.get("theme") == {"mode": "dark"}
        assert mock_service.last_request().url.path == "/api/settings/theme"

    @pytest.mark.asyncio
    async def test_save(self, make_client, mock_service):
        mock_service.add_route("PUT", "/api/settings", 200, json={"ok": True})
        client = make_client()

        assert await client.settings.save("theme", {"mode": "dark"}) == {"ok": True}
        assert json.loads(mock_service.last_request().content) == {
            "key": "theme",
            "value": {"mode": "dark"},
        }

    @pytest.mark.asyncio
    async def test_auth_failure_is_not_swallowed(self, make_client, mock_service):
        mock_service.add_route("GET", "/api/settings/theme", 401)
        client = make_client()

        with pytest.raises(AuthRequiredError):
            await client.settings.get("theme")
