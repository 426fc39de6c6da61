from __future__ import annotations

from datetime import datetime
from typing import Any

from reben.core import supabase_rest
from reben.core.crypto import decrypt_json, decrypt_text, encrypt_json, encrypt_text
from reben.integrations.models import IntegrationConfig, split_sensitive_config
from reben.notifications.models import (
    PRIORITY_RANK,
    DeliveryAttemptLog,
    DeliveryStatus,
    NotificationItem,
    NotificationItemDraft,
    WebhookSubscription,
    to_iso,
    utc_now,
)
from reben.notifications.store import CounterField


class SupabaseDeliveryQueueStore:
    """``notification_queue`` accessed through PostgREST with the service-role key."""

    async def enqueue(self, draft: NotificationItemDraft) -> NotificationItem:
        now = utc_now()
        row = draft.model_dump(mode="json", exclude={"scheduled_at"})
        row.update(
            {
                "status": "pending",
                "retry_count": 0,
                "priority_rank": PRIORITY_RANK[draft.priority],
                "scheduled_at": to_iso(draft.scheduled_at or now),
                "created_at": to_iso(now),
                "updated_at": to_iso(now),
            }
        )
        created = await supabase_rest.insert_notification_item(row)
        return NotificationItem.model_validate(created)

    async def fetch_due(self, limit: int, now: datetime) -> list[NotificationItem]:
        rows = await supabase_rest.select_due_notification_items(limit, to_iso(now))
        return [NotificationItem.model_validate(row) for row in rows]

    async def mark_attempt_start(self, item_id: str) -> bool:
        return await supabase_rest.claim_notification_item(item_id, to_iso(utc_now()))

    async def mark_sent(self, item_id: str, sent_at: datetime) -> None:
        await supabase_rest.update_notification_item(
            item_id,
            {
                "status": "sent",
                "sent_at": to_iso(sent_at),
                "last_error": None,
                "updated_at": to_iso(utc_now()),
            },
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
        await supabase_rest.update_notification_item(
            item_id,
            {
                "status": "failed" if terminal else "pending",
                "retry_count": next_retry_count,
                "scheduled_at": to_iso(next_scheduled_at),
                "last_error": error,
                "updated_at": to_iso(utc_now()),
            },
        )

    async def purge_sent(self, before: datetime) -> int:
        return await supabase_rest.delete_sent_notification_items(to_iso(before))

    async def release_stale_claims(self, before: datetime) -> int:
        return await supabase_rest.release_stale_notification_claims(to_iso(before), to_iso(utc_now()))

    async def requeue_failed(self, tenant_id: str, now: datetime) -> int:
        rows = await supabase_rest.select_notification_items(
            tenant_id=tenant_id,
            status_value="failed",
            limit=None,
        )
        reopened = 0
        for row in rows:
            item = NotificationItem.model_validate(row)
            if item.retry_count >= item.max_retries:
                continue
            if await supabase_rest.reopen_failed_notification_item(item.id, to_iso(now)):
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
        rows = await supabase_rest.select_notification_items(
            tenant_id=tenant_id,
            status_value=status,
            created_after_iso=to_iso(created_after) if created_after else None,
            limit=limit,
        )
        return [NotificationItem.model_validate(row) for row in rows]

    async def get(self, item_id: str) -> NotificationItem | None:
        row = await supabase_rest.select_notification_item(item_id)
        return NotificationItem.model_validate(row) if row is not None else None


def _subscription_from_row(row: dict[str, Any]) -> WebhookSubscription:
    ciphertext = row.get("secret_ciphertext")
    secret = decrypt_text(ciphertext) if isinstance(ciphertext, str) and ciphertext else ""
    return WebhookSubscription.model_validate(
        {
            **row,
            "secret": secret,
            "active": bool(row.get("is_active", row.get("active", True))),
            "events": row.get("events") or [],
        }
    )


def _subscription_to_row(subscription: WebhookSubscription) -> dict[str, Any]:
    row = subscription.model_dump(mode="json", exclude={"secret", "active"})
    row["is_active"] = subscription.active
    row["secret_ciphertext"] = encrypt_text(subscription.secret)
    return row


def _integration_from_row(row: dict[str, Any]) -> IntegrationConfig:
    config = dict(row.get("config") or {})
    ciphertext = row.get("secret_ciphertext")
    if isinstance(ciphertext, str) and ciphertext:
        config.update(decrypt_json(ciphertext))
    return IntegrationConfig.model_validate(
        {
            **row,
            "type": row.get("integration_type", row.get("type")),
            "active": bool(row.get("is_active", row.get("active", False))),
            "config": config,
        }
    )


def _integration_to_row(integration: IntegrationConfig) -> dict[str, Any]:
    public, secret = split_sensitive_config(integration.type, integration.config)
    row = integration.model_dump(mode="json", exclude={"type", "active", "config"}, exclude_none=True)
    row.update(
        {
            "integration_type": integration.type,
            "is_active": integration.active,
            "config": public,
            "secret_ciphertext": encrypt_json(secret) if secret else None,
            "updated_at": to_iso(utc_now()),
        }
    )
    return row


class SupabaseSubscriptionDirectory:
    async def list_webhook_subscriptions(
        self,
        tenant_id: str,
        *,
        event_type: str | None = None,
        active_only: bool = False,
    ) -> list[WebhookSubscription]:
        rows = await supabase_rest.select_webhook_endpoints(
            tenant_id,
            event_type=event_type,
            active_only=active_only,
        )
        return [_subscription_from_row(row) for row in rows]

    async def get_webhook_subscription(self, subscription_id: str) -> WebhookSubscription | None:
        row = await supabase_rest.select_webhook_endpoint(subscription_id)
        return _subscription_from_row(row) if row is not None else None

    async def create_webhook_subscription(self, subscription: WebhookSubscription) -> WebhookSubscription:
        created = await supabase_rest.insert_webhook_endpoint(_subscription_to_row(subscription))
        return _subscription_from_row(created)

    async def update_webhook_subscription(
        self,
        subscription_id: str,
        changes: dict[str, object],
    ) -> WebhookSubscription | None:
        payload = dict(changes)
        if "active" in payload:
            payload["is_active"] = payload.pop("active")
        if "secret" in payload:
            payload["secret_ciphertext"] = encrypt_text(str(payload.pop("secret")))
        row = await supabase_rest.update_webhook_endpoint(subscription_id, payload)
        return _subscription_from_row(row) if row is not None else None

    async def delete_webhook_subscription(self, subscription_id: str) -> bool:
        return await supabase_rest.delete_webhook_endpoint(subscription_id)

    async def increment_webhook_counter(
        self,
        subscription_id: str,
        field: CounterField,
        triggered_at: datetime,
    ) -> None:
        await supabase_rest.rpc_increment_webhook_counter(subscription_id, field, to_iso(triggered_at))

    async def list_integrations(
        self,
        tenant_id: str,
        *,
        active_only: bool = False,
    ) -> list[IntegrationConfig]:
        rows = await supabase_rest.select_integrations(tenant_id, active_only=active_only)
        return [_integration_from_row(row) for row in rows]

    async def get_integration(self, integration_id: str) -> IntegrationConfig | None:
        row = await supabase_rest.select_integration(integration_id)
        return _integration_from_row(row) if row is not None else None

    async def save_integration(self, integration: IntegrationConfig) -> IntegrationConfig:
        saved = await supabase_rest.upsert_integration(_integration_to_row(integration))
        return _integration_from_row(saved)

    async def record_integration_log(self, entry: DeliveryAttemptLog) -> None:
        await supabase_rest.insert_integration_log(entry.model_dump(mode="json"))
