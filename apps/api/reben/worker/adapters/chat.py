from __future__ import annotations

from reben.core.settings import Settings, get_settings
from reben.notifications.models import NotificationItem
from reben.notifications.signer import canonical_json
from reben.worker.adapters.base import DeliveryResult, HttpPoster


class ChatAdapter:
    """Posts the item's payload as-is; chat webhook URLs carry their own credentials."""

    def __init__(self, *, poster: HttpPoster | None = None, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._poster = poster or HttpPoster(timeout_seconds=settings.NOTIFY_HTTP_TIMEOUT_SECONDS)

    async def send(self, item: NotificationItem) -> DeliveryResult:
        body = canonical_json(item.payload)
        return await self._poster.post(
            item.target,
            content=body,
            headers={"Content-Type": "application/json"},
        )
