from __future__ import annotations

import secrets
import uuid
from collections.abc import Iterable
from typing import Any

from reben.core.errors import ConfigurationError
from reben.integrations.models import validate_target_url
from reben.notifications.models import EVENT_TYPES, TEST_EVENT_TYPE, WebhookSubscription, to_iso, utc_now
from reben.notifications.store import SubscriptionDirectory
from reben.worker.adapters.base import DeliveryResult
from reben.worker.adapters.webhook import WebhookAdapter

SECRET_PREFIX = "whsec_"


def generate_webhook_secret() -> str:
    return f"{SECRET_PREFIX}{secrets.token_urlsafe(24)}"


def normalize_events(events: Iterable[str]) -> list[str]:
    normalized: list[str] = []
    for event in events:
        candidate = event.strip()
        if candidate not in EVENT_TYPES:
            raise ConfigurationError(f"Unknown event type: {candidate}")
        if candidate not in normalized:
            normalized.append(candidate)
    if not normalized:
        raise ConfigurationError("A webhook must listen to at least one event.")
    return normalized


async def create_webhook_subscription(
    directory: SubscriptionDirectory,
    *,
    tenant_id: str,
    name: str,
    url: str,
    events: Iterable[str],
    description: str | None = None,
) -> WebhookSubscription:
    if not name.strip():
        raise ConfigurationError("A webhook name is required.")
    subscription = WebhookSubscription(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        name=name.strip(),
        url=validate_target_url(url),
        secret=generate_webhook_secret(),
        events=normalize_events(events),
        active=True,
        description=description,
        created_at=utc_now(),
    )
    return await directory.create_webhook_subscription(subscription)


async def update_webhook_subscription(
    directory: SubscriptionDirectory,
    subscription: WebhookSubscription,
    *,
    name: str | None = None,
    url: str | None = None,
    events: Iterable[str] | None = None,
    active: bool | None = None,
    description: str | None = None,
) -> WebhookSubscription | None:
    changes: dict[str, Any] = {}
    if name is not None:
        if not name.strip():
            raise ConfigurationError("A webhook name is required.")
        changes["name"] = name.strip()
    if url is not None:
        changes["url"] = validate_target_url(url)
    if events is not None:
        changes["events"] = normalize_events(events)
    if active is not None:
        changes["active"] = active
    if description is not None:
        changes["description"] = description
    if not changes:
        return subscription
    return await directory.update_webhook_subscription(subscription.id, changes)


async def send_test_webhook(
    directory: SubscriptionDirectory,
    subscription: WebhookSubscription,
    *,
    adapter: WebhookAdapter | None = None,
) -> DeliveryResult:
    """Send a signed test envelope right away, outside the queue, and count the outcome."""
    adapter = adapter or WebhookAdapter(directory)
    now = utc_now()
    envelope = {
        "event_type": TEST_EVENT_TYPE,
        "data": {"message": "Test webhook from REBEN", "webhook_id": subscription.id},
        "timestamp": to_iso(now),
        "tenant_id": subscription.tenant_id,
    }
    result = await adapter.deliver(subscription.url, envelope, secret=subscription.secret)
    await directory.increment_webhook_counter(
        subscription.id,
        "success_count" if result.success else "error_count",
        now,
    )
    return result
