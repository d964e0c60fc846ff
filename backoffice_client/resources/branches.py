"""Branch administration: list, create, update, delete, staff assignment."""

from __future__ import annotations

import asyncio
from typing import Any

from ..transport import response_body
from .base import Page, ResourceGroup, enc, to_page


class BranchesAPI(ResourceGroup):
    """
    Branch CRUD over whichever of /branches or /org/branches the server
    exposes.

    Usage:
        page = await client.branches.list_branches(q="nairobi", limit=20)
        for branch in page.items:
            print(branch["name"])
    """

    name = "branches"
    candidates = ("/branches", "/org/branches")

    async def list_branches(
        self,
        q: str = "",
        limit: int = 50,
        offset: int = 0,
        *,
        abort: asyncio.Event | None = None,
    ) -> Page:
        base = await self.base(abort)
        response = await self._call(
            "GET", base, params={"q": q, "limit": limit, "offset": offset}, abort=abort
        )
        return to_page(response_body(response), response.headers)

    async def create_branch(self, payload: dict[str, Any]) -> Any:
        base = await self.base()
        return await self._body("POST", base, json=payload)

    async def update_branch(self, branch_id: Any, payload: dict[str, Any]) -> Any:
        base = await self.base()
        return await self._body("PUT", f"{base}/{enc(branch_id)}", json=payload)

    async def delete_branch(self, branch_id: Any) -> None:
        base = await self.base()
        await self._call("DELETE", f"{base}/{enc(branch_id)}")

    async def assign_staff(self, branch_id: Any, user_ids: list[Any]) -> Any:
        base = await self.base()
        return await self._body(
            "POST", f"{base}/{enc(branch_id)}/assign-staff", json={"userIds": list(user_ids)}
        )

    async def unassign_staff(self, branch_id: Any, user_id: Any) -> Any:
        base = await self.base()
        return await self._body("DELETE", f"{base}/{enc(branch_id)}/staff/{enc(user_id)}")
