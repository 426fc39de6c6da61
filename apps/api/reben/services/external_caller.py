from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from reben.core.logging import get_logger

logger = get_logger("services.external_caller")

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def retryable_status(exc: BaseException) -> int | None:
    """Return the HTTP status when ``exc`` is a 429 or 5xx response error."""
    status_code: object = None
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code
    else:
        status_code = getattr(exc, "status_code", None)
    if not isinstance(status_code, int):
        return None
    if status_code == 429 or 500 <= status_code < 600:
        return status_code
    return None


async def call_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay_ms: int = 1000,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Call ``fn`` up to ``max_retries`` times, waiting ``2**attempt * base_delay_ms`` after each
    429/5xx. Any other error, or the last retryable one, propagates unchanged."""
    attempts = max(1, max_retries)
    for attempt in range(attempts):
        try:
            return await fn()
        except Exception as exc:
            status_code = retryable_status(exc)
            if status_code is None or attempt + 1 >= attempts:
                raise
            delay_ms = (2**attempt) * base_delay_ms
            logger.warning(
                "external_caller.retrying",
                extra={
                    "component": "external_caller",
                    "attempt": attempt + 1,
                    "http_status": status_code,
                    "delay_ms": delay_ms,
                },
            )
            await sleep(delay_ms / 1000)
    raise AssertionError("unreachable")
