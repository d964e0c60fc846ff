"""Endpoint fallback: try alias routes for one logical operation, in order."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from .errors import ApiError, ErrorKind, UnknownError, aborted_error
from .transport import ApiTransport, response_body

logger = logging.getLogger(__name__)

# Kinds that mean "this candidate is not the route, try the next one"
DEFAULT_FALLBACK: frozenset[ErrorKind] = frozenset({ErrorKind.NOT_FOUND, ErrorKind.NETWORK_ERROR})

# Keep trying on anything but an authentication failure
LENIENT_FALLBACK: frozenset[ErrorKind] = frozenset(ErrorKind) - {ErrorKind.AUTH_REQUIRED}

EXHAUSTED_MESSAGE = "All candidates failed"


@dataclass(frozen=True)
class Operation:
    """
    One logical call and its candidate paths.

    Candidate order encodes preference (canonical first, legacy aliases
    after) and is never changed. For writes every candidate must be an
    alias of the same resource: a write may land on whichever alias
    answers first.
    """
    method: str
    candidates: tuple[str, ...]
    body: Any = None
    params: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        if isinstance(self.candidates, str):
            object.__setattr__(self, "candidates", (self.candidates,))
        else:
            object.__setattr__(self, "candidates", tuple(self.candidates))


@dataclass
class DispatchRecord:
    """Diagnostics of one dispatch: paths tried and the last failure."""
    attempts: list[str] = field(default_factory=list)
    last_error: ApiError | None = None


class EndpointFallbackDispatcher:
    """
    Run an Operation against its candidates one at a time.

    - 2xx: return the body, stop.
    - 401: raise immediately; the credential is bad for every candidate.
    - kinds in ``continue_on``: remember the error, try the next path.
    - anything else: the request reached a real endpoint, raise it.

    Attempts are strictly sequential so a write is never fired at two
    aliases at once.
    """

    def __init__(self, transport: ApiTransport):
        self.transport = transport

    async def dispatch(
        self,
        operation: Operation,
        *,
        abort: asyncio.Event | None = None,
        continue_on: Iterable[ErrorKind] | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        """
        Dispatch an operation and return the first successful body.

        Args:
            operation: Method, candidates, optional body and params
            abort: Event that stops the chain when set
            continue_on: Error kinds that advance to the next candidate
                (default: NOT_FOUND and NETWORK_ERROR)
            headers: Extra request headers

        Raises:
            ApiError: The terminal or last recorded failure, with
                ``attempts`` listing the paths tried
        """
        fallback = DEFAULT_FALLBACK if continue_on is None else frozenset(continue_on)
        record = DispatchRecord()

        for path in operation.candidates:
            if abort is not None and abort.is_set():
                raise self._finish(aborted_error(), record)

            record.attempts.append(path)
            try:
                response = await self.transport.send(
                    operation.method,
                    path,
                    json=operation.body,
                    params=operation.params,
                    headers=headers,
                    abort=abort,
                )
            except ApiError as e:
                if e.kind is ErrorKind.AUTH_REQUIRED:
                    logger.debug(f"{operation.method} {path} -> 401, not trying further candidates")
                    raise self._finish(e, record)
                if abort is not None and abort.is_set():
                    aborted = e if e.kind is ErrorKind.NETWORK_ERROR else aborted_error(cause=e)
                    raise self._finish(aborted, record)
                if e.kind not in fallback:
                    raise self._finish(e, record)
                logger.debug(f"{operation.method} {path} failed ({e.kind.value}), trying next candidate")
                record.last_error = e
                continue

            logger.debug(f"{operation.method} {path} -> {response.status_code}")
            return response_body(response)

        if record.last_error is None:
            raise self._finish(UnknownError(EXHAUSTED_MESSAGE), record)

        logger.warning(
            f"{operation.method}: all {len(record.attempts)} candidates failed "
            f"({', '.join(record.attempts)}): {record.last_error.message}"
        )
        raise self._finish(record.last_error, record)

    @staticmethod
    def _finish(error: ApiError, record: DispatchRecord) -> ApiError:
        error.attempts = list(record.attempts)
        return error

    async def get_first(self, paths: Iterable[str], params: dict[str, Any] | None = None, **kwargs) -> Any:
        return await self.dispatch(Operation("GET", paths, params=params), **kwargs)

    async def post_first(self, paths: Iterable[str], body: Any = None, **kwargs) -> Any:
        return await self.dispatch(Operation("POST", paths, body=body), **kwargs)

    async def put_first(self, paths: Iterable[str], body: Any = None, **kwargs) -> Any:
        return await self.dispatch(Operation("PUT", paths, body=body), **kwargs)

    async def patch_first(self, paths: Iterable[str], body: Any = None, **kwargs) -> Any:
        return await self.dispatch(Operation("PATCH", paths, body=body), **kwargs)

    async def delete_first(self, paths: Iterable[str], **kwargs) -> Any:
        return await self.dispatch(Operation("DELETE", paths), **kwargs)
