"""Normalized error taxonomy for every failure the client can observe.

Whatever shape the server (or the network) produces, callers only ever
see an ``ApiError`` subclass tagged with an ``ErrorKind``.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any

import httpx

DEFAULT_MESSAGE = "Request failed"
ABORTED_MESSAGE = "Request aborted"
TIMEOUT_MESSAGE = "Request timeout. Please try again."
UNREACHABLE_MESSAGE = "Network error: server unreachable."


class ErrorKind(Enum):
    AUTH_REQUIRED = "auth_required"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"

    @classmethod
    def from_status(cls, status: int | None) -> ErrorKind:
        """Map an HTTP status (None = no response) to an error kind."""
        if status is None:
            return cls.NETWORK_ERROR
        if status == 401:
            return cls.AUTH_REQUIRED
        if status == 403:
            return cls.FORBIDDEN
        if status == 404:
            return cls.NOT_FOUND
        if status in (400, 422):
            return cls.VALIDATION
        if 500 <= status < 600:
            return cls.SERVER_ERROR
        return cls.UNKNOWN


class ApiError(Exception):
    """Base exception for all normalized API failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        http_status: int | None = None,
        cause: Any = None,
        attempts: list[str] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.cause = cause
        # Candidate paths tried before this error surfaced
        self.attempts: list[str] = list(attempts or [])

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, "
            f"http_status={self.http_status!r}, message={self.message!r})"
        )


class AuthRequiredError(ApiError):
    """401 - credential missing, expired or rejected."""
    kind = ErrorKind.AUTH_REQUIRED


class ForbiddenError(ApiError):
    """403 - route exists, access denied."""
    kind = ErrorKind.FORBIDDEN


class NotFoundError(ApiError):
    """404 - no such route or resource."""
    kind = ErrorKind.NOT_FOUND


class ValidationError(ApiError):
    """400/422 - request reached a real endpoint and was rejected."""
    kind = ErrorKind.VALIDATION


class ServerError(ApiError):
    """5xx."""
    kind = ErrorKind.SERVER_ERROR


class NetworkError(ApiError):
    """No response: unreachable, timed out or aborted."""
    kind = ErrorKind.NETWORK_ERROR


class UnknownError(ApiError):
    """Anything unclassified."""
    kind = ErrorKind.UNKNOWN


_ERROR_CLASSES: dict[ErrorKind, type[ApiError]] = {
    cls.kind: cls
    for cls in (
        AuthRequiredError,
        ForbiddenError,
        NotFoundError,
        ValidationError,
        ServerError,
        NetworkError,
        UnknownError,
    )
}


def error_class(kind: ErrorKind) -> type[ApiError]:
    return _ERROR_CLASSES[kind]


def make_error(
    kind: ErrorKind,
    message: str,
    http_status: int | None = None,
    cause: Any = None,
) -> ApiError:
    return error_class(kind)(message, http_status=http_status, cause=cause)


def aborted_error(cause: Any = None) -> NetworkError:
    return NetworkError(ABORTED_MESSAGE, cause=cause)


def _body_message(body: Any) -> str | None:
    """Pick the user-facing message out of a server error body."""
    if not isinstance(body, dict):
        return None

    error = body.get("error")
    if isinstance(error, dict):
        error = error.get("message")
    if isinstance(error, str) and error.strip():
        return error

    for key in ("message", "detail"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value

    return None


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (ValueError, httpx.ResponseNotRead):
        return None


def _from_response(response: httpx.Response, cause: Any) -> ApiError:
    status = response.status_code
    message = _body_message(_response_body(response)) or f"{DEFAULT_MESSAGE} ({status})"
    return make_error(ErrorKind.from_status(status), message, http_status=status, cause=cause)


def normalize_error(raw: Any) -> ApiError:
    """
    Convert any raw failure into a normalized ApiError.

    Message precedence: the body's ``error`` field, then ``message``
    (or ``detail``), then the transport-level message, then a fixed
    "Request failed". Pure: no logging, no side effects.

    Args:
        raw: An ApiError (returned unchanged), httpx exception or
            response, cancellation, or any other exception/value

    Returns:
        The matching ApiError subclass
    """
    if isinstance(raw, ApiError):
        return raw

    if isinstance(raw, httpx.HTTPStatusError):
        return _from_response(raw.response, raw)

    if isinstance(raw, httpx.Response):
        return _from_response(raw, raw)

    if isinstance(raw, httpx.TimeoutException):
        return NetworkError(TIMEOUT_MESSAGE, cause=raw)

    if isinstance(raw, (httpx.ConnectError, httpx.NetworkError)):
        return NetworkError(UNREACHABLE_MESSAGE, cause=raw)

    if isinstance(raw, httpx.RequestError):
        return NetworkError(str(raw) or DEFAULT_MESSAGE, cause=raw)

    if isinstance(raw, asyncio.CancelledError):
        return aborted_error(cause=raw)

    status = getattr(raw, "status_code", None)
    if status is None:
        status = getattr(getattr(raw, "response", None), "status_code", None)
    if not isinstance(status, int):
        status = None

    message = str(raw) if raw is not None else ""
    kind = ErrorKind.from_status(status) if status is not None else ErrorKind.UNKNOWN
    return make_error(kind, message or DEFAULT_MESSAGE, http_status=status, cause=raw)
