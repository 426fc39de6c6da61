from __future__ import annotations

from typing import Any

from reben.core.errors import ConfigurationError
from reben.core.settings import Settings, get_settings
from reben.notifications.models import NotificationItem, to_iso
from reben.notifications.signer import SIGNATURE_PREFIX, canonical_json, sign_bytes
from reben.notifications.store import SubscriptionDirectory
from reben.worker.adapters.base import DeliveryResult, HttpPoster

_ENVELOPE_KEYS = ("event_type", "data", "timestamp", "tenant_id")


def build_envelope(item: NotificationItem) -> dict[str, Any]:
    payload = item.payload
    if "event_type" in payload and "data" in payload:
        envelope = dict(payload)
    else:
        envelope = {"event_type": item.event_type or "notification", "data": payload}
    envelope.setdefault("timestamp", to_iso(item.created_at))
    envelope.setdefault("tenant_id", item.tenant_id)
    return {key: envelope[key] for key in _ENVELOPE_KEYS}


class WebhookAdapter:
    def __init__(
        self,
        directory: SubscriptionDirectory,
        *,
        poster: HttpPoster | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._directory = directory
        self._settings = settings or get_settings()
        self._poster = poster or HttpPoster(timeout_seconds=self._settings.NOTIFY_HTTP_TIMEOUT_SECONDS)

    async def send(self, item: NotificationItem) -> DeliveryResult:
        secret: str | None = None
        if item.subscription_id:
            subscription = await self._directory.get_webhook_subscription(item.subscription_id)
            if subscription is None:
                raise ConfigurationError(f"Webhook subscription {item.subscription_id} no longer exists")
            secret = subscription.secret
        return await self.deliver(item.target, build_envelope(item), secret=secret, delivery_id=item.id)

    async def deliver(
        self,
        url: str,
        envelope: dict[str, Any],
        *,
        secret: str | None,
        delivery_id: str | None = None,
    ) -> DeliveryResult:
        body = canonical_json(envelope)
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._settings.webhook_user_agent,
            self._settings.webhook_header("Event"): str(envelope.get("event_type") or ""),
        }
        if secret:
            headers[self._settings.webhook_header("Signature")] = f"{SIGNATURE_PREFIX}{sign_bytes(secret, body)}"
        if delivery_id:
            headers[self._settings.webhook_header("Delivery")] = delivery_id
        return await self._poster.post(url, content=body, headers=headers)
