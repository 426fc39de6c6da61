from __future__ import annotations

import asyncio
import itertools
import uuid
from collections.abc import Callable
from datetime import datetime

from reben.integrations.models import IntegrationConfig
from reben.notifications.models import (
    DeliveryAttemptLog,
    DeliveryStatus,
    NotificationItem,
    NotificationItemDraft,
    WebhookSubscription,
    utc_now,
)
from reben.notifications.store import CounterField


class InMemoryDeliveryQueueStore:
    """Process-local queue with the same claim semantics as the Supabase table."""

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._items: dict[str, NotificationItem] = {}
        self._order: dict[str, int] = {}
        self._sequence = itertools.count()
        self._lock = asyncio.Lock()

    async def enqueue(self, draft: NotificationItemDraft) -> NotificationItem:
        now = self._clock()
        item = NotificationItem(
            id=str(uuid.uuid4()),
            status="pending",
            retry_count=0,
            scheduled_at=draft.scheduled_at or now,
            created_at=now,
            updated_at=now,
            **draft.model_dump(exclude={"scheduled_at"}),
        )
        async with self._lock:
            self._items[item.id] = item
            self._order[item.id] = next(self._sequence)
        return item.model_copy(deep=True)

    async def fetch_due(self, limit: int, now: datetime) -> list[NotificationItem]:
        async with self._lock:
            due = [
                item
                for item in self._items.values()
                if item.status == "pending" and item.scheduled_at <= now
            ]
            due.sort(key=lambda item: (-item.priority_rank, item.created_at, self._order[item.id]))
            return [item.model_copy(deep=True) for item in due[: max(0, limit)]]

    async def mark_attempt_start(self, item_id: str) -> bool:
        async with self._lock:
            item = self._items.get(item_id)
            if item is None or item.status != "pending":
                return False
            self._items[item_id] = item.model_copy(
                update={"status": "retrying", "updated_at": self._clock()}
            )
            return True

    async def mark_sent(self, item_id: str, sent_at: datetime) -> None:
        async with self._lock:
            item = self._require(item_id)
            self._items[item_id] = item.model_copy(
                update={
                    "status": "sent",
                    "sent_at": sent_at,
                    "last_error": None,
                    "updated_at": self._clock(),
                }
            )

    async def mark_failed(
        self,
        item_id: str,
        *,
        error: str,
        next_retry_count: int,
        next_scheduled_at: datetime,
        terminal: bool,
    ) -> None:
        async with self._lock:
            item = self._require(item_id)
            self._items[item_id] = item.model_copy(
                update={
                    "status": "failed" if terminal else "pending",
                    "retry_count": min(next_retry_count, item.max_retries),
                    "scheduled_at": next_scheduled_at,
                    "last_error": error,
                    "updated_at": self._clock(),
                }
            )

    async def purge_sent(self, before: datetime) -> int:
        async with self._lock:
            expired = [
                item_id
                for item_id, item in self._items.items()
                if item.status == "sent" and item.sent_at is not None and item.sent_at < before
            ]
            for item_id in expired:
                del self._items[item_id]
                del self._order[item_id]
            return len(expired)

    async def release_stale_claims(self, before: datetime) -> int:
        async with self._lock:
            released = 0
            for item_id, item in list(self._items.items()):
                if item.status != "retrying":
                    continue
                if item.updated_at is not None and item.updated_at >= before:
                    continue
                self._items[item_id] = item.model_copy(
                    update={"status": "pending", "updated_at": self._clock()}
                )
                released += 1
            return released

    async def requeue_failed(self, tenant_id: str, now: datetime) -> int:
        async with self._lock:
            reopened = 0
            for item_id, item in list(self._items.items()):
                if item.tenant_id != tenant_id or item.status != "failed":
                    continue
                if item.retry_count >= item.max_retries:
                    continue
                self._items[item_id] = item.model_copy(
                    update={"status": "pending", "scheduled_at": now, "updated_at": self._clock()}
                )
                reopened += 1
            return reopened

    async def list_items(
        self,
        tenant_id: str,
        *,
        status: DeliveryStatus | None = None,
        created_after: datetime | None = None,
        limit: int | None = 50,
    ) -> list[NotificationItem]:
        async with self._lock:
            rows = [
                item
                for item in self._items.values()
                if item.tenant_id == tenant_id
                and (status is None or item.status == status)
                and (created_after is None or item.created_at >= created_after)
            ]
        rows.sort(key=lambda item: (item.created_at, self._order.get(item.id, 0)), reverse=True)
        if limit is not None:
            rows = rows[:limit]
        return [item.model_copy(deep=True) for item in rows]

    async def get(self, item_id: str) -> NotificationItem | None:
        async with self._lock:
            item = self._items.get(item_id)
            return item.model_copy(deep=True) if item is not None else None

    def _require(self, item_id: str) -> NotificationItem:
        item = self._items.get(item_id)
        if item is None:
            raise KeyError(f"Unknown notification item: {item_id}")
        return item


class InMemorySubscriptionDirectory:
    def __init__(self) -> None:
        self._subscriptions: dict[str, WebhookSubscription] = {}
        self._integrations: dict[str, IntegrationConfig] = {}
        self.integration_logs: list[DeliveryAttemptLog] = []
        self._lock = asyncio.Lock()

    async def list_webhook_subscriptions(
        self,
        tenant_id: str,
        *,
        event_type: str | None = None,
        active_only: bool = False,
    ) -> list[WebhookSubscription]:
        async with self._lock:
            return [
                subscription.model_copy(deep=True)
                for subscription in self._subscriptions.values()
                if subscription.tenant_id == tenant_id
                and (not active_only or subscription.active)
                and (event_type is None or subscription.listens_to(event_type))
            ]

    async def get_webhook_subscription(self, subscription_id: str) -> WebhookSubscription | None:
        async with self._lock:
            subscription = self._subscriptions.get(subscription_id)
            return subscription.model_copy(deep=True) if subscription is not None else None

    async def create_webhook_subscription(self, subscription: WebhookSubscription) -> WebhookSubscription:
        async with self._lock:
            self._subscriptions[subscription.id] = subscription.model_copy(deep=True)
        return subscription

    async def update_webhook_subscription(
        self,
        subscription_id: str,
        changes: dict[str, object],
    ) -> WebhookSubscription | None:
        async with self._lock:
            current = self._subscriptions.get(subscription_id)
            if current is None:
                return None
            updated = WebhookSubscription.model_validate({**current.model_dump(), **changes})
            self._subscriptions[subscription_id] = updated
            return updated.model_copy(deep=True)

    async def delete_webhook_subscription(self, subscription_id: str) -> bool:
        async with self._lock:
            return self._subscriptions.pop(subscription_id, None) is not None

    async def increment_webhook_counter(
        self,
        subscription_id: str,
        field: CounterField,
        triggered_at: datetime,
    ) -> None:
        async with self._lock:
            current = self._subscriptions.get(subscription_id)
            if current is None:
                return
            self._subscriptions[subscription_id] = current.model_copy(
                update={field: getattr(current, field) + 1, "last_triggered_at": triggered_at}
            )

    async def list_integrations(
        self,
        tenant_id: str,
        *,
        active_only: bool = False,
    ) -> list[IntegrationConfig]:
        async with self._lock:
            return [
                integration.model_copy(deep=True)
                for integration in self._integrations.values()
                if integration.tenant_id == tenant_id and (not active_only or integration.active)
            ]

    async def get_integration(self, integration_id: str) -> IntegrationConfig | None:
        async with self._lock:
            integration = self._integrations.get(integration_id)
            return integration.model_copy(deep=True) if integration is not None else None

    async def save_integration(self, integration: IntegrationConfig) -> IntegrationConfig:
        async with self._lock:
            self._integrations[integration.id] = integration.model_copy(deep=True)
        return integration

    async def record_integration_log(self, entry: DeliveryAttemptLog) -> None:
        async with self._lock:
            self.integration_logs.append(entry)
