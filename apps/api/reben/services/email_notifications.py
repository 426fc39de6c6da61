from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel

from reben.core.settings import get_settings
from reben.notifications.models import NotificationItem, NotificationItemDraft, Priority, utc_now
from reben.notifications.store import DeliveryQueueStore
from reben.notifications.templates import get_email_template

TEST_EMAIL_DATA: dict[str, Any] = {
    "user_name": "Test User",
    "manager_name": "Test Manager",
    "alert_type": "System test",
    "message": "This is a test email from REBEN",
    "severity": "medium",
    "avg_wellness": "85",
    "participation_rate": "92",
    "active_alerts": "3",
}


class AlertNotification(BaseModel):
    user_email: str
    user_name: str
    alert_type: str
    severity: str
    message: str
    manager_email: str | None = None
    manager_name: str | None = None


async def enqueue_templated_email(
    store: DeliveryQueueStore,
    *,
    tenant_id: str,
    to: str,
    template_type: str,
    data: dict[str, Any],
    priority: Priority = "medium",
    scheduled_at: datetime | None = None,
) -> NotificationItem:
    template = get_email_template(template_type)
    return await store.enqueue(
        NotificationItemDraft(
            tenant_id=tenant_id,
            channel="email",
            target=to,
            payload=data,
            subject=template.subject,
            rendered_body=template.html,
            priority=priority,
            max_retries=get_settings().NOTIFY_MAX_RETRIES,
            scheduled_at=scheduled_at,
            template_type=template_type,
        )
    )


async def schedule_email(
    store: DeliveryQueueStore,
    *,
    tenant_id: str,
    to: str,
    template_type: str,
    data: dict[str, Any],
    scheduled_at: datetime,
) -> NotificationItem:
    return await enqueue_templated_email(
        store,
        tenant_id=tenant_id,
        to=to,
        template_type=template_type,
        data=data,
        scheduled_at=scheduled_at,
    )


async def send_test_email(
    store: DeliveryQueueStore,
    *,
    tenant_id: str,
    to: str,
    template_type: str,
    now: datetime | None = None,
) -> NotificationItem:
    today = (now or utc_now()).strftime("%Y-%m-%d")
    return await enqueue_templated_email(
        store,
        tenant_id=tenant_id,
        to=to,
        template_type=template_type,
        data={**TEST_EMAIL_DATA, "week_start": today, "week_end": today},
        priority="low",
    )


async def send_alert_notification(
    store: DeliveryQueueStore,
    *,
    tenant_id: str,
    alert: AlertNotification,
) -> list[str]:
    """Employees hear about non-critical alerts; managers about medium and high ones."""
    severity = alert.severity.strip().lower()
    item_ids: list[str] = []

    if severity != "high":
        item = await enqueue_templated_email(
            store,
            tenant_id=tenant_id,
            to=alert.user_email,
            template_type="burnout_alert",
            data={
                "user_name": alert.user_name,
                "alert_type": alert.alert_type,
                "message": alert.message,
                "severity": severity,
            },
            priority="medium",
        )
        item_ids.append(item.id)

    if alert.manager_email and severity in {"high", "medium"}:
        item = await enqueue_templated_email(
            store,
            tenant_id=tenant_id,
            to=alert.manager_email,
            template_type="system_alert",
            data={
                "manager_name": alert.manager_name or "",
                "user_name": alert.user_name,
                "alert_type": alert.alert_type,
                "message": alert.message,
                "severity": severity,
                "action_required": "yes" if severity == "high" else "no",
            },
            priority="high" if severity == "high" else "medium",
        )
        item_ids.append(item.id)

    return item_ids


async def queue_stats(
    store: DeliveryQueueStore,
    *,
    tenant_id: str,
    days: int = 30,
    now: datetime | None = None,
) -> dict[str, Any]:
    since = (now or utc_now()) - timedelta(days=max(1, days))
    items = await store.list_items(tenant_id, created_after=since, limit=None)

    by_status = Counter(item.status for item in items)
    by_type = Counter(item.template_type or item.event_type or item.channel for item in items)
    by_channel = Counter(item.channel for item in items)
    sent = by_status["sent"]
    failed = by_status["failed"]
    success_rate = (sent / (sent + failed)) * 100 if sent + failed > 0 else 0.0

    return {
        "days": max(1, days),
        "total": len(items),
        "total_sent": sent,
        "total_failed": failed,
        "pending": by_status["pending"],
        "retrying": by_status["retrying"],
        "success_rate": round(success_rate, 2),
        "by_type": dict(by_type),
        "by_channel": dict(by_channel),
    }
