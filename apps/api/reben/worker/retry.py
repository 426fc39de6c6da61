from __future__ import annotations

import re
from datetime import timedelta

from fastapi import HTTPException

_MAX_ERROR_LENGTH = 500
_SENSITIVE_PATTERNS = (
    re.compile(r"bearer\s+[a-z0-9\-_\.]+", re.IGNORECASE),
    re.compile(r"(api[_-]?key|token|secret|password|key)\s*[:=]\s*[^\s,;&]+", re.IGNORECASE),
    re.compile(r"whsec_[A-Za-z0-9\-_]+"),
)


def backoff_delay(retry_count: int, *, base_seconds: int, max_seconds: int) -> timedelta:
    """Exponential delay ``base * 2**retry_count`` capped at ``max_seconds``."""
    exponent = max(0, retry_count)
    seconds = min(base_seconds * (2**exponent), max_seconds)
    return timedelta(seconds=max(0, seconds))


def sanitize_error(exc: BaseException | str, *, default_message: str) -> str:
    if isinstance(exc, HTTPException) and isinstance(exc.detail, str) and exc.detail.strip():
        message = exc.detail.strip()
    else:
        message = str(exc).strip()
    if not message:
        message = default_message

    sanitized = message
    for pattern in _SENSITIVE_PATTERNS:
        sanitized = pattern.sub("[redacted]", sanitized)
    return sanitized[:_MAX_ERROR_LENGTH]
