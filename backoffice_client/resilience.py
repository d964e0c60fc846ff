"""Opt-in re-send of a single request on timeouts and server errors.

This never moves between candidate paths; that is the dispatcher's job.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

import httpx

from .errors import ApiError, ErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 0
    base_delay_seconds: float = 0.3
    max_delay_seconds: float = 5.0
    exponential_base: float = 2.0


def is_retryable(error: ApiError) -> bool:
    """5xx responses and timeouts are worth re-sending; nothing else is."""
    if error.kind is ErrorKind.SERVER_ERROR:
        return True
    return error.kind is ErrorKind.NETWORK_ERROR and isinstance(error.cause, httpx.TimeoutException)


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    config: RetryConfig | None = None,
    *args: Any,
    **kwargs: Any,
) -> T:
    """
    Await a coroutine function with exponential backoff retry.

    Args:
        func: Coroutine function raising ApiError on failure
        config: Retry configuration (no retries when None)
        *args, **kwargs: Arguments to pass to func

    Returns:
        Result of func

    Raises:
        ApiError: The last failure once retries are exhausted, or the
            first non-retryable failure
    """
    if config is None:
        config = RetryConfig()

    attempt = 0
    while True:
        try:
            return await func(*args, **kwargs)
        except ApiError as e:
            if not is_retryable(e) or attempt >= config.max_retries:
                raise

            delay = min(
                config.base_delay_seconds * (config.exponential_base ** attempt),
                config.max_delay_seconds,
            )
            # Add jitter (up to 25% of delay)
            delay *= (0.75 + random.random() * 0.5)
            attempt += 1

            logger.warning(
                f"Retry {attempt}/{config.max_retries} after {delay:.1f}s: {e.message}"
            )
            await asyncio.sleep(delay)
