"""Retry helpers shared by compute engines.

Transient engine errors are retried with exponential backoff; anything else
surfaces immediately. OpenAI-protocol errors are classified by type and HTTP
status; other engines' errors by builtin type and, failing that, by message.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from openai import APIConnectionError, APIStatusError, RateLimitError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")

# Request timeout, conflict, rate limit, and gateway/server overload.
RETRYABLE_STATUS_CODES = frozenset({408, 409, 429, 500, 502, 503, 504})

# Fallback for engines that raise plain exceptions (lower-cased message).
TRANSIENT_MESSAGE_MARKERS = (
    "timed out",
    "connection reset",
    "connection refused",
    "temporarily unavailable",
    "model is loading",
    "overloaded",
)


def should_retry_exception(exc: BaseException) -> bool:
    """Return ``True`` if *exc* is worth another attempt.

    - ``APIConnectionError`` (includes ``APITimeoutError``) and
      ``RateLimitError``: always.
    - Other ``APIStatusError``: when its status is in
      ``RETRYABLE_STATUS_CODES``. A 4xx such as 404 (unknown model) is final.
    - ``TimeoutError`` / ``ConnectionError``: always.
    - Anything else: when its message carries a transient marker.
    """
    if isinstance(exc, (APIConnectionError, RateLimitError)):
        return True
    if isinstance(exc, APIStatusError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, ConnectionError)):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS)


async def call_with_retry(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_retries: int = 3,
    initial_wait: float = 1.0,
    max_wait: float = 10.0,
    **kwargs: Any,
) -> T:
    """
    Await ``func(*args, **kwargs)``, retrying transient failures.

    Args:
        func: Coroutine function to call.
        max_retries: Maximum number of attempts (including the first).
        initial_wait: Initial backoff in seconds.
        max_wait: Upper bound on the backoff between attempts.

    Returns:
        Whatever ``func`` returns.

    Raises:
        The last exception raised by ``func`` once attempts are exhausted,
        or the first non-retryable exception.
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(
            multiplier=initial_wait,
            min=initial_wait,
            max=max_wait,
        ),
        retry=retry_if_exception(should_retry_exception),
        reraise=True,
    ):
        with attempt:
            return await func(*args, **kwargs)
    raise AssertionError("unreachable")  # pragma: no cover
