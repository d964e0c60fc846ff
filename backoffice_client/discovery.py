"""Once-per-session discovery of a resource group's base path."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

from .errors import ApiError, ErrorKind, aborted_error
from .transport import ApiTransport

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_PARAMS: dict[str, Any] = {"limit": 1}

# A lookup answered with one of these proves the route exists
_ROUTE_EXISTS = frozenset({ErrorKind.AUTH_REQUIRED, ErrorKind.FORBIDDEN})


class EndpointDiscoveryCache:
    """
    Memoize which alias base path serves a resource group.

    The first candidate that answers a cheap GET with 2xx, 401 or 403
    wins and is cached for the life of this object. 404s and network
    failures move on without caching. If nothing answers, the first
    candidate is cached so later calls stop looking.

    There is no lock: two concurrent first calls may both look up the route, and
    both write the same value.
    """

    def __init__(self, transport: ApiTransport):
        self.transport = transport
        self._bases: dict[str, str] = {}

    def cached(self, resource_group: str) -> str | None:
        return self._bases.get(resource_group)

    def invalidate(self, resource_group: str | None = None) -> None:
        """Forget one resource group, or every group when None."""
        if resource_group is None:
            self._bases.clear()
        else:
            self._bases.pop(resource_group, None)

    async def resolve_base(
        self,
        resource_group: str,
        candidates: Iterable[str],
        *,
        lookup_params: dict[str, Any] | None = None,
        abort: asyncio.Event | None = None,
    ) -> str:
        """
        Return the base path for a resource group, probing on first use.

        Args:
            resource_group: Cache key, e.g. "branches"
            candidates: Base paths in preference order
            lookup_params: Query params for the lookup GET (default limit=1)
            abort: Optional abort event for the lookup requests

        Returns:
            The discovered (or defaulted) base path
        """
        base = self._bases.get(resource_group)
        if base is not None:
            logger.debug(f"Discovery cache hit for {resource_group}: {base}")
            return base

        paths = [candidates] if isinstance(candidates, str) else list(candidates)
        if not paths:
            raise ValueError(f"No candidate base paths for {resource_group}")

        params = DEFAULT_LOOKUP_PARAMS if lookup_params is None else lookup_params
        for path in paths:
            try:
                await self.transport.send("GET", path, params=params, abort=abort)
            except ApiError as e:
                if abort is not None and abort.is_set():
                    if e.kind is ErrorKind.NETWORK_ERROR:
                        raise
                    raise aborted_error(cause=e) from e
                if e.kind in _ROUTE_EXISTS:
                    logger.debug(f"{resource_group}: {path} exists but is protected ({e.http_status})")
                    return self._remember(resource_group, path)
                logger.debug(f"{resource_group}: lookup of {path} failed ({e.kind.value})")
                continue
            return self._remember(resource_group, path)

        logger.warning(
            f"{resource_group}: no candidate answered ({', '.join(paths)}), defaulting to {paths[0]}"
        )
        return self._remember(resource_group, paths[0])

    def _remember(self, resource_group: str, path: str) -> str:
        self._bases[resource_group] = path
        logger.info(f"Discovered base path for {resource_group}: {path}")
        return path
