"""Base class for resource groups that share one discovered base path."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, TYPE_CHECKING
from urllib.parse import quote

import httpx

from ..transport import response_body

if TYPE_CHECKING:
    from ..client import BackOfficeClient


@dataclass
class Page:
    """A normalized list response."""

    items: list[Any] = field(default_factory=list)
    """Rows from a bare list body, or its items/rows/data key."""

    total: int = 0
    """x-total-count header, else meta.total, else len(items)."""

    def __iter__(self):
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


def enc(value: Any) -> str:
    """Percent-encode a value for use as one path segment."""
    return quote(str(value), safe="")


def extract_items(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("items", "rows", "data"):
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def to_page(data: Any, headers: httpx.Headers | None = None) -> Page:
    items = extract_items(data)
    total = _as_int(headers.get("x-total-count")) if headers is not None else None
    if total is None and isinstance(data, dict) and isinstance(data.get("meta"), dict):
        total = _as_int(data["meta"].get("total"))
    return Page(items=items, total=total if total is not None else len(items))


class ResourceGroup:
    """
    A family of list/create/update/delete calls under one base path.

    Subclasses set ``name`` and ``candidates``; the base path is
    discovered once per client and reused.
    """

    name: str = ""
    candidates: tuple[str, ...] = ()

    def __init__(self, client: BackOfficeClient):
        self.client = client

    async def base(self, abort: asyncio.Event | None = None) -> str:
        return await self.client.discovery.resolve_base(self.name, self.candidates, abort=abort)

    async def _call(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        abort: asyncio.Event | None = None,
    ) -> httpx.Response:
        return await self.client.send(method, path, json=json, params=params, abort=abort)

    async def _body(self, method: str, path: str, **kwargs) -> Any:
        return response_body(await self._call(method, path, **kwargs))
