import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from reben.notifications.memory_store import InMemoryDeliveryQueueStore, InMemorySubscriptionDirectory
from reben.services.email_notifications import (
    AlertNotification,
    enqueue_templated_email,
    queue_stats,
    schedule_email,
    send_alert_notification,
    send_test_email,
)
from reben.notifications.emailer import SmtpTransport
from reben.worker.adapters import email as email_adapter
from reben.worker.adapters.email import EmailAdapter, render_item

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


def _alert(severity: str, **overrides) -> AlertNotification:
    values = {
        "user_email": "ana@example.com",
        "user_name": "Ana",
        "alert_type": "Burnout risk",
        "severity": severity,
        "message": "Mood dropped for two weeks",
        "manager_email": "luis@example.com",
        "manager_name": "Luis",
    }
    values.update(overrides)
    return AlertNotification(**values)


def _sent_items(severity: str, **overrides):
    store = InMemoryDeliveryQueueStore()

    async def _run():
        item_ids = await send_alert_notification(store, tenant_id="tenant-a", alert=_alert(severity, **overrides))
        return [await store.get(item_id) for item_id in item_ids]

    return asyncio.run(_run())


def test_low_severity_alert_only_notifies_employee() -> None:
    items = _sent_items("low")
    assert [(item.target, item.template_type) for item in items] == [("ana@example.com", "burnout_alert")]
    assert render_item(items[0])["subject"] == "Wellness check: Burnout risk"


def test_medium_severity_alert_notifies_employee_and_manager() -> None:
    items = _sent_items("Medium")
    assert [(item.target, item.template_type, item.priority) for item in items] == [
        ("ana@example.com", "burnout_alert", "medium"),
        ("luis@example.com", "system_alert", "medium"),
    ]


def test_high_severity_alert_only_notifies_manager() -> None:
    items = _sent_items("high")
    assert [(item.target, item.template_type, item.priority) for item in items] == [
        ("luis@example.com", "system_alert", "high"),
    ]
    assert "Action required: yes" in render_item(items[0])["html"]


def test_alert_without_manager_email_skips_manager() -> None:
    assert _sent_items("high", manager_email=None) == []


def test_send_test_email_uses_sample_data() -> None:
    store = InMemoryDeliveryQueueStore()
    item = asyncio.run(
        send_test_email(store, tenant_id="tenant-a", to="hr@example.com", template_type="team_summary", now=NOW)
    )

    assert item.priority == "low"
    rendered = render_item(item)
    assert rendered["subject"] == "Team wellness summary 2026-03-02 - 2026-03-02"
    assert "92%" in rendered["html"]


def test_schedule_email_defers_delivery() -> None:
    store = InMemoryDeliveryQueueStore()
    later = NOW + timedelta(days=1)

    async def _run():
        item = await schedule_email(
            store,
            tenant_id="tenant-a",
            to="hr@example.com",
            template_type="turnover_risk",
            data={"user_name": "Ana", "manager_name": "Luis"},
            scheduled_at=later,
        )
        return item, await store.fetch_due(10, NOW + timedelta(hours=1))

    item, due = asyncio.run(_run())

    assert item.scheduled_at == later
    assert due == []


def test_unknown_template_is_rejected_before_enqueue() -> None:
    store = InMemoryDeliveryQueueStore()
    with pytest.raises(ValueError):
        asyncio.run(
            enqueue_templated_email(store, tenant_id="tenant-a", to="hr@example.com", template_type="nope", data={})
        )
    assert asyncio.run(store.list_items("tenant-a")) == []


def test_queue_stats_summarizes_recent_items() -> None:
    store = InMemoryDeliveryQueueStore(clock=lambda: NOW)

    async def _populate():
        items = [
            await enqueue_templated_email(
                store, tenant_id="tenant-a", to="hr@example.com", template_type=template_type, data={}
            )
            for template_type in ("burnout_alert", "burnout_alert", "system_alert", "team_summary")
        ]
        for item in items[:3]:
            await store.mark_attempt_start(item.id)
        await store.mark_sent(items[0].id, NOW)
        await store.mark_sent(items[1].id, NOW)
        await store.mark_failed(items[2].id, error="HTTP 500", next_retry_count=3, next_scheduled_at=NOW, terminal=True)
        await enqueue_templated_email(
            store, tenant_id="tenant-b", to="hr@example.com", template_type="burnout_alert", data={}
        )
        return await queue_stats(store, tenant_id="tenant-a", days=7, now=NOW + timedelta(hours=1))

    stats = asyncio.run(_populate())

    assert stats == {
        "days": 7,
        "total": 4,
        "total_sent": 2,
        "total_failed": 1,
        "pending": 1,
        "retrying": 0,
        "success_rate": 66.67,
        "by_type": {"burnout_alert": 2, "system_alert": 1, "team_summary": 1},
        "by_channel": {"email": 4},
    }


def test_templated_email_fills_placeholders_once(monkeypatch) -> None:
    store = InMemoryDeliveryQueueStore()
    sent: list[dict[str, object]] = []
    monkeypatch.setattr(
        email_adapter,
        "transport_from_settings",
        lambda: SmtpTransport(host="smtp.example.com", port=587, from_email="noreply@example.com"),
    )

    async def _run():
        item = await enqueue_templated_email(
            store,
            tenant_id="tenant-a",
            to="ana@example.com",
            template_type="burnout_alert",
            data={
                "user_name": "Ana",
                "alert_type": "Check {{severity}}",
                "message": "literal {{user_name}} token",
                "severity": "low",
            },
        )
        adapter = EmailAdapter(InMemorySubscriptionDirectory(), sender=lambda **kwargs: sent.append(kwargs))
        return await adapter.send(item)

    result = asyncio.run(_run())

    assert result.success is True
    assert sent[0]["subject"] == "Wellness check: Check {{severity}}"
    assert "<p>Hi Ana,</p>" in sent[0]["html"]
    assert "literal {{user_name}} token" in sent[0]["html"]
    assert "literal Ana token" not in sent[0]["html"]
