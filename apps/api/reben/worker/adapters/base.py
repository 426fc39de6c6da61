from __future__ import annotations

from typing import Any, Protocol

import httpx
from pydantic import BaseModel

from reben.notifications.models import NotificationItem

_MAX_BODY_EXCERPT = 200


class DeliveryResult(BaseModel):
    success: bool
    http_status: int | None = None
    error: str | None = None

    @classmethod
    def ok(cls, http_status: int | None = None) -> "DeliveryResult":
        return cls(success=True, http_status=http_status)

    @classmethod
    def failed(cls, error: str, http_status: int | None = None) -> "DeliveryResult":
        return cls(success=False, http_status=http_status, error=error)


class ChannelAdapter(Protocol):
    async def send(self, item: NotificationItem) -> DeliveryResult:
        ...


def result_from_response(response: httpx.Response) -> DeliveryResult:
    if 200 <= response.status_code < 300:
        return DeliveryResult.ok(response.status_code)
    excerpt = response.text.strip()[:_MAX_BODY_EXCERPT]
    error = f"HTTP {response.status_code}"
    if excerpt:
        error = f"{error}: {excerpt}"
    return DeliveryResult.failed(error, response.status_code)


class HttpPoster:
    """POSTs through an injected client, or a short-lived one per call."""

    def __init__(self, *, client: httpx.AsyncClient | None = None, timeout_seconds: float = 10.0) -> None:
        self._client = client
        self._timeout = timeout_seconds

    async def post(
        self,
        url: str,
        *,
        content: bytes | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> DeliveryResult:
        try:
            if self._client is not None:
                response = await self._client.post(
                    url, content=content, json=json, headers=headers, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, content=content, json=json, headers=headers)
        except httpx.TimeoutException:
            return DeliveryResult.failed(f"Timed out after {self._timeout:g}s")
        except httpx.HTTPError as exc:
            return DeliveryResult.failed(f"{type(exc).__name__}: {exc}".strip())
        return result_from_response(response)
