"""Tenant directory, used to pick an impersonation target."""

from __future__ import annotations

import asyncio
from typing import Any, TYPE_CHECKING

from .base import extract_items

if TYPE_CHECKING:
    from ..client import BackOfficeClient

LIST_PATHS = ("/tenants", "/admin/tenants")


class TenantsAPI:
    def __init__(self, client: BackOfficeClient):
        self.client = client

    async def list_tenants(self, *, abort: asyncio.Event | None = None) -> list[dict[str, Any]]:
        data = await self.client.get_first(LIST_PATHS, abort=abort)
        if isinstance(data, dict) and isinstance(data.get("tenants"), list):
            return data["tenants"]
        return extract_items(data)

    async def search(self, text: str, *, abort: asyncio.Event | None = None) -> list[dict[str, Any]]:
        """Filter the tenant list by name or id substring (case-insensitive)."""
        tenants = await self.list_tenants(abort=abort)
        needle = text.strip().lower()
        if not needle:
            return tenants
        return [
            t for t in tenants
            if needle in str(t.get("name") or "").lower() or needle in str(t.get("id", "")).lower()
        ]
