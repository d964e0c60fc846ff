"""Single-request transport: path normalization, context injection, abort."""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

import httpx

from .config import ClientConfig
from .context import RequestContextInjector
from .errors import aborted_error, normalize_error
from .resilience import RetryConfig, retry_with_backoff

logger = logging.getLogger(__name__)

_ABSOLUTE_URL = re.compile(r"^https?://", re.IGNORECASE)
_DUPLICATE_SLASHES = re.compile(r"/{2,}")


def response_body(response: httpx.Response) -> Any:
    """Decoded JSON body; None when empty, raw text when not JSON."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class ApiTransport:
    """
    Sends one request to one path.

    Every request gets its headers from the RequestContextInjector.
    Non-2xx responses and transport failures are raised as normalized
    ApiErrors; raw httpx exceptions never escape.
    """

    def __init__(
        self,
        config: ClientConfig,
        injector: RequestContextInjector,
        http_client: httpx.AsyncClient,
    ):
        self.config = config
        self.injector = injector
        self.http_client = http_client
        self._retry_config = RetryConfig(
            max_retries=max(config.retry_max_attempts, 0),
            base_delay_seconds=config.retry_backoff_seconds,
        )

    def normalize_path(self, path: str | None) -> str:
        """
        Normalize a path against the base URL.

        Absolute URLs pass through. Otherwise a single leading slash is
        ensured, duplicate slashes are collapsed, and a leading /api is
        dropped when the base URL already ends with /api.
        """
        if not path:
            return "/"
        url = str(path).strip()
        if _ABSOLUTE_URL.match(url):
            return url

        if not url.startswith("/"):
            url = f"/{url}"
        url = _DUPLICATE_SLASHES.sub("/", url)

        base_has_api = self.config.base_url.lower().endswith("/api")
        if base_has_api and (url.lower().startswith("/api/") or url.lower() == "/api"):
            url = url[4:] or "/"
        return url

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        abort: asyncio.Event | None = None,
    ) -> httpx.Response:
        """
        Send a request and return the 2xx response.

        Raises:
            ApiError: Normalized failure (non-2xx, network, abort)
        """
        url = self.normalize_path(path)
        clean_params = {k: v for k, v in (params or {}).items() if v is not None} or None
        return await retry_with_backoff(
            self._send_once,
            self._retry_config,
            method.upper(),
            url,
            json=json,
            params=clean_params,
            headers=headers,
            abort=abort,
        )

    async def _send_once(
        self,
        method: str,
        url: str,
        *,
        json: Any,
        params: dict[str, Any] | None,
        headers: dict[str, str] | None,
        abort: asyncio.Event | None,
    ) -> httpx.Response:
        if abort is not None and abort.is_set():
            raise aborted_error()

        request_headers = self.injector.inject(headers)
        try:
            response = await self._with_abort(
                self.http_client.request(
                    method,
                    url,
                    json=json,
                    params=params,
                    headers=request_headers,
                ),
                abort,
            )
        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise normalize_error(e) from e

        if response.is_success:
            return response
        raise normalize_error(response)

    @staticmethod
    async def _with_abort(coro, abort: asyncio.Event | None) -> httpx.Response:
        """
        Await coro, cancelling it if abort fires first. A fired abort wins
        even when the response arrived in the same tick.
        """
        if abort is None:
            return await coro

        request = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(abort.wait())
        try:
            done, _ = await asyncio.wait(
                {request, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            request.cancel()
            raise
        finally:
            waiter.cancel()

        if request in done and not abort.is_set():
            return request.result()

        request.cancel()
        try:
            await request
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Aborted request finished with {e!r}")
        raise aborted_error()
