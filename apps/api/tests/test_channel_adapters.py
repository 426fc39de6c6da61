import asyncio
import json
from datetime import UTC, datetime

import httpx
import pytest

from reben.core.errors import ConfigurationError
from reben.integrations.models import IntegrationConfig
from reben.notifications.emailer import EmailSendError
from reben.notifications.memory_store import InMemorySubscriptionDirectory
from reben.notifications.models import NotificationItem, WebhookSubscription
from reben.notifications.signer import canonical_json, verify_signature
from reben.worker.adapters.base import HttpPoster
from reben.worker.adapters.chat import ChatAdapter
from reben.worker.adapters.email import EmailAdapter, render_item
from reben.worker.adapters.webhook import WebhookAdapter, build_envelope

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)
ENVELOPE = {
    "event_type": "alert_created",
    "data": {"severity": "high", "employee_name": "Ana"},
    "timestamp": "2026-03-02T09:00:00Z",
    "tenant_id": "tenant-a",
}


def _item(**overrides) -> NotificationItem:
    values = {
        "id": "item-1",
        "tenant_id": "tenant-a",
        "channel": "webhook",
        "target": "https://hooks.example.com/reben",
        "payload": ENVELOPE,
        "scheduled_at": NOW,
        "created_at": NOW,
        "event_type": "alert_created",
    }
    values.update(overrides)
    return NotificationItem(**values)


def _poster(handler) -> HttpPoster:
    return HttpPoster(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)), timeout_seconds=10.0)


def _directory_with_subscription() -> InMemorySubscriptionDirectory:
    directory = InMemorySubscriptionDirectory()
    asyncio.run(
        directory.create_webhook_subscription(
            WebhookSubscription(
                id="sub-1",
                tenant_id="tenant-a",
                url="https://hooks.example.com/reben",
                secret="whsec_test_secret",
                events=["alert_created"],
            )
        )
    )
    return directory


def test_webhook_adapter_sends_signed_canonical_body() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(202)

    adapter = WebhookAdapter(_directory_with_subscription(), poster=_poster(handler))
    result = asyncio.run(adapter.send(_item(subscription_id="sub-1")))

    assert result.success is True
    assert result.http_status == 202
    request = captured[0]
    assert request.method == "POST"
    assert request.content == canonical_json(ENVELOPE)
    assert json.loads(request.content) == ENVELOPE
    assert request.headers["Content-Type"] == "application/json"
    assert request.headers["User-Agent"] == "REBEN-Webhook/1.0"
    assert request.headers["X-REBEN-Event"] == "alert_created"
    assert request.headers["X-REBEN-Delivery"] == "item-1"
    assert request.headers["X-REBEN-Signature"].startswith("sha256=")
    assert verify_signature("whsec_test_secret", request.content, request.headers["X-REBEN-Signature"])


def test_webhook_adapter_without_subscription_sends_unsigned() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200)

    adapter = WebhookAdapter(InMemorySubscriptionDirectory(), poster=_poster(handler))
    result = asyncio.run(adapter.send(_item(integration_id="zapier-1")))

    assert result.success is True
    assert "X-REBEN-Signature" not in captured[0].headers


def test_webhook_adapter_reports_http_errors_and_timeouts() -> None:
    def failing(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream exploded")

    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    directory = _directory_with_subscription()
    failed = asyncio.run(WebhookAdapter(directory, poster=_poster(failing)).send(_item(subscription_id="sub-1")))
    timed_out = asyncio.run(WebhookAdapter(directory, poster=_poster(slow)).send(_item(subscription_id="sub-1")))

    assert failed.success is False
    assert failed.http_status == 500
    assert failed.error == "HTTP 500: upstream exploded"
    assert timed_out.success is False
    assert timed_out.http_status is None
    assert timed_out.error == "Timed out after 10s"


def test_webhook_adapter_rejects_deleted_subscription() -> None:
    adapter = WebhookAdapter(InMemorySubscriptionDirectory(), poster=_poster(lambda request: httpx.Response(200)))
    with pytest.raises(ConfigurationError):
        asyncio.run(adapter.send(_item(subscription_id="gone")))


def test_build_envelope_wraps_bare_payloads() -> None:
    envelope = build_envelope(_item(payload={"message": "hello"}, event_type="checkin_completed"))
    assert envelope == {
        "event_type": "checkin_completed",
        "data": {"message": "hello"},
        "timestamp": "2026-03-02T09:00:00Z",
        "tenant_id": "tenant-a",
    }


def test_chat_adapter_posts_payload_as_json() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, text="ok")

    payload = {"text": "Wellness alert", "channel": "#bienestar"}
    adapter = ChatAdapter(poster=_poster(handler))
    result = asyncio.run(
        adapter.send(_item(channel="chat", target="https://hooks.slack.com/services/T/B/X", payload=payload))
    )

    assert result.success is True
    assert str(captured[0].url) == "https://hooks.slack.com/services/T/B/X"
    assert json.loads(captured[0].content) == payload


def _email_directory() -> InMemorySubscriptionDirectory:
    directory = InMemorySubscriptionDirectory()
    asyncio.run(
        directory.save_integration(
            IntegrationConfig(
                id="email-1",
                tenant_id="tenant-a",
                type="email_notifications",
                active=True,
                config={
                    "smtp_host": "smtp.example.com",
                    "smtp_port": 465,
                    "username": "mailer",
                    "password": "hunter2",
                    "from_email": "alerts@example.com",
                    "use_ssl": True,
                },
            )
        )
    )
    return directory


def test_email_adapter_renders_and_sends_with_integration_transport() -> None:
    sent: list[dict[str, object]] = []

    def fake_sender(**kwargs) -> None:
        sent.append(kwargs)

    item = _item(
        channel="email",
        target="manager@example.com",
        payload={"employee_name": "Ana", "message": "Mood dropped"},
        subject="Critical wellness alert - {{employee_name}}",
        rendered_body="<p>{{employee_name}}: {{message}}</p>",
        integration_id="email-1",
    )
    result = asyncio.run(EmailAdapter(_email_directory(), sender=fake_sender).send(item))

    assert result.success is True
    assert sent[0]["to"] == "manager@example.com"
    assert sent[0]["subject"] == "Critical wellness alert - Ana"
    assert sent[0]["html"] == "<p>Ana: Mood dropped</p>"
    assert sent[0]["text"] == "Ana: Mood dropped"
    transport = sent[0]["transport"]
    assert transport.host == "smtp.example.com"
    assert transport.port == 465
    assert transport.use_ssl is True
    assert transport.from_email == "alerts@example.com"


def test_email_adapter_turns_send_errors_into_failed_results() -> None:
    def failing_sender(**kwargs) -> None:
        raise EmailSendError("Failed to send notification email: connection refused")

    item = _item(
        channel="email",
        target="manager@example.com",
        payload={"user_name": "Ana"},
        template_type="burnout_alert",
        integration_id="email-1",
    )
    result = asyncio.run(EmailAdapter(_email_directory(), sender=failing_sender).send(item))

    assert result.success is False
    assert "connection refused" in (result.error or "")


def test_render_item_requires_body_or_known_template() -> None:
    with pytest.raises(ConfigurationError):
        render_item(_item(channel="email", target="a@example.com", payload={}))
    with pytest.raises(ConfigurationError):
        render_item(_item(channel="email", target="a@example.com", payload={}, template_type="nope"))

    rendered = render_item(
        _item(channel="email", target="a@example.com", payload={"user_name": "Ana"}, template_type="burnout_alert")
    )
    assert "Ana" in rendered["html"]
