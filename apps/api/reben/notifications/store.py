from __future__ import annotations

from datetime import datetime
from typing import Literal, Protocol

from reben.integrations.models import IntegrationConfig
from reben.notifications.models import (
    DeliveryAttemptLog,
    DeliveryStatus,
    NotificationItem,
    NotificationItemDraft,
    WebhookSubscription,
)

CounterField = Literal["success_count", "error_count"]


class DeliveryQueueStore(Protocol):
    """Durable queue of notification items.

    Every method must be atomic with respect to concurrent dispatchers.
    ``mark_attempt_start`` is the claim: a compare-and-set from ``pending`` to
    ``retrying`` that succeeds for exactly one caller.
    """

    async def enqueue(self, draft: NotificationItemDraft) -> NotificationItem:
        ...

    async def fetch_due(self, limit: int, now: datetime) -> list[NotificationItem]:
        ...

    async def mark_attempt_start(self, item_id: str) -> bool:
        ...

    async def mark_sent(self, item_id: str, sent_at: datetime) -> None:
        ...

    async def mark_failed(
        self,
        item_id: str,
        *,
        error: str,
        next_retry_count: int,
        next_scheduled_at: datetime,
        terminal: bool,
    ) -> None:
        ...

    async def purge_sent(self, before: datetime) -> int:
        ...

    async def release_stale_claims(self, before: datetime) -> int:
        ...

    async def requeue_failed(self, tenant_id: str, now: datetime) -> int:
        ...

    async def list_items(
        self,
        tenant_id: str,
        *,
        status: DeliveryStatus | None = None,
        created_after: datetime | None = None,
        limit: int | None = 50,
    ) -> list[NotificationItem]:
        ...

    async def get(self, item_id: str) -> NotificationItem | None:
        ...


class SubscriptionDirectory(Protocol):
    """Tenant-scoped webhook subscriptions and integration configs."""

    async def list_webhook_subscriptions(
        self,
        tenant_id: str,
        *,
        event_type: str | None = None,
        active_only: bool = False,
    ) -> list[WebhookSubscription]:
        ...

    async def get_webhook_subscription(self, subscription_id: str) -> WebhookSubscription | None:
        ...

    async def create_webhook_subscription(self, subscription: WebhookSubscription) -> WebhookSubscription:
        ...

    async def update_webhook_subscription(
        self,
        subscription_id: str,
        changes: dict[str, object],
    ) -> WebhookSubscription | None:
        ...

    async def delete_webhook_subscription(self, subscription_id: str) -> bool:
        ...

    async def increment_webhook_counter(
        self,
        subscription_id: str,
        field: CounterField,
        triggered_at: datetime,
    ) -> None:
        ...

    async def list_integrations(
        self,
        tenant_id: str,
        *,
        active_only: bool = False,
    ) -> list[IntegrationConfig]:
        ...

    async def get_integration(self, integration_id: str) -> IntegrationConfig | None:
        ...

    async def save_integration(self, integration: IntegrationConfig) -> IntegrationConfig:
        ...

    async def record_integration_log(self, entry: DeliveryAttemptLog) -> None:
        ...
