"""Cash accounts, served from one of several historical routes."""

from __future__ import annotations

import asyncio
from typing import Any

from ..transport import response_body
from .base import Page, ResourceGroup, to_page


class CashAccountsAPI(ResourceGroup):
    name = "cash-accounts"
    candidates = ("/banks/cash/accounts", "/accounts", "/banks/accounts")

    async def list_accounts(self, *, abort: asyncio.Event | None = None) -> Page:
        base = await self.base(abort)
        response = await self._call("GET", base, abort=abort)
        return to_page(response_body(response), response.headers)

    async def create_account(self, payload: dict[str, Any]) -> Any:
        base = await self.base()
        return await self._body("POST", base, json=payload)
