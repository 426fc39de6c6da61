import asyncio

import pytest
from fastapi.testclient import TestClient

from reben.api.deps import get_directory, get_queue_store
from reben.api.v1.schemas.events import EventIn
from reben.api.v1.endpoints import webhooks as webhooks_endpoint
from reben.auth import tenants
from reben.core.supabase_jwt import VerifiedSupabaseAuth, verify_supabase_auth
from reben.main import app
from reben.notifications.memory_store import InMemoryDeliveryQueueStore, InMemorySubscriptionDirectory
from reben.notifications.models import EVENT_TYPES, NotificationItemDraft, WebhookSubscription
from reben.services.ai_analysis import GeminiClient
from reben.worker.adapters.base import DeliveryResult

TENANT_ID = "11111111-1111-1111-1111-111111111111"
OTHER_TENANT_ID = "22222222-2222-2222-2222-222222222222"


@pytest.fixture
def store() -> InMemoryDeliveryQueueStore:
    return InMemoryDeliveryQueueStore()


@pytest.fixture
def directory() -> InMemorySubscriptionDirectory:
    return InMemorySubscriptionDirectory()


@pytest.fixture
def client_as(monkeypatch, store, directory):
    def _client(role: str = "HR_ADMIN") -> TestClient:
        async def fake_select_profile(access_token: str, user_id: str) -> dict[str, str]:
            assert access_token == "token-123"
            return {"id": user_id, "tenant_id": TENANT_ID, "role": role}

        monkeypatch.setattr(tenants, "select_profile", fake_select_profile)
        app.dependency_overrides[verify_supabase_auth] = lambda: VerifiedSupabaseAuth(
            access_token="token-123",
            claims={"sub": "user-1"},
        )
        app.dependency_overrides[get_queue_store] = lambda: store
        app.dependency_overrides[get_directory] = lambda: directory
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()


def test_healthz_echoes_request_id() -> None:
    response = TestClient(app).get("/healthz", headers={"X-Request-ID": "req-1"})
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert response.headers["X-Request-ID"] == "req-1"


def test_webhooks_require_token() -> None:
    response = TestClient(app).get("/api/v1/webhooks")
    assert response.status_code == 401


def test_webhooks_require_hr_admin(client_as) -> None:
    response = client_as("EMPLOYEE").get("/api/v1/webhooks")
    assert response.status_code == 403


def test_create_webhook_reveals_secret_once(client_as) -> None:
    client = client_as()
    created = client.post(
        "/api/v1/webhooks",
        json={"name": "HRIS", "url": "https://hooks.example.com/reben", "events": ["alert_created"]},
    )
    listed = client.get("/api/v1/webhooks")

    assert created.status_code == 201
    secret = created.json()["secret"]
    assert secret.startswith("whsec_")
    assert listed.status_code == 200
    webhooks = listed.json()["webhooks"]
    assert len(webhooks) == 1
    assert webhooks[0]["secret"] == f"{secret[:10]}********"
    assert webhooks[0]["events"] == ["alert_created"]


def test_create_webhook_rejects_unknown_events(client_as) -> None:
    response = client_as().post(
        "/api/v1/webhooks",
        json={"name": "HRIS", "url": "https://hooks.example.com/reben", "events": ["payroll_closed"]},
    )
    assert response.status_code == 400
    assert response.json() == {"detail": "Unknown event type: payroll_closed"}


def test_other_tenants_webhooks_are_not_visible(client_as, directory) -> None:
    asyncio.run(
        directory.create_webhook_subscription(
            WebhookSubscription(
                id="sub-other",
                tenant_id=OTHER_TENANT_ID,
                url="https://hooks.example.com/other",
                secret="whsec_other_tenant",
                events=["alert_created"],
            )
        )
    )
    client = client_as()

    assert client.get("/api/v1/webhooks").json() == {"webhooks": []}
    assert client.patch("/api/v1/webhooks/sub-other", json={"active": False}).status_code == 404
    assert client.delete("/api/v1/webhooks/sub-other").status_code == 404


def test_update_and_delete_webhook(client_as, directory) -> None:
    client = client_as()
    created = client.post(
        "/api/v1/webhooks",
        json={"name": "HRIS", "url": "https://hooks.example.com/reben", "events": ["alert_created"]},
    ).json()

    patched = client.patch(f"/api/v1/webhooks/{created['id']}", json={"active": False})
    deleted = client.delete(f"/api/v1/webhooks/{created['id']}")

    assert patched.status_code == 200
    assert patched.json()["active"] is False
    assert deleted.status_code == 204
    assert asyncio.run(directory.get_webhook_subscription(created["id"])) is None


def test_webhook_test_endpoint_reports_delivery_result(client_as, directory, monkeypatch) -> None:
    calls: list[str] = []

    async def fake_send_test_webhook(directory_arg, subscription, *, adapter=None) -> DeliveryResult:
        calls.append(subscription.id)
        return DeliveryResult.failed("HTTP 404", 404)

    monkeypatch.setattr(webhooks_endpoint, "send_test_webhook", fake_send_test_webhook)
    client = client_as()
    created = client.post(
        "/api/v1/webhooks",
        json={"name": "HRIS", "url": "https://hooks.example.com/reben", "events": ["alert_created"]},
    ).json()

    response = client.post(f"/api/v1/webhooks/{created['id']}/test")

    assert response.status_code == 200
    assert response.json() == {"success": False, "http_status": 404, "error": "HTTP 404"}
    assert calls == [created["id"]]


def test_publish_event_enqueues_for_subscribers(client_as, store) -> None:
    client = client_as()
    client.post(
        "/api/v1/webhooks",
        json={"name": "HRIS", "url": "https://hooks.example.com/reben", "events": ["alert_created"]},
    )

    response = client.post("/api/v1/events", json={"type": "alert_created", "data": {"severity": "high"}})

    assert response.status_code == 200
    item_ids = response.json()["item_ids"]
    assert len(item_ids) == 1
    item = asyncio.run(store.get(item_ids[0]))
    assert item.tenant_id == TENANT_ID
    assert item.payload["event_type"] == "alert_created"
    assert item.priority == "high"


def test_publish_event_rejects_unknown_types(client_as) -> None:
    response = client_as().post("/api/v1/events", json={"type": "payroll_closed", "data": {}})
    assert response.status_code == 422


@pytest.mark.parametrize("event_type", EVENT_TYPES)
def test_event_input_accepts_every_catalog_event(event_type) -> None:
    assert EventIn(type=event_type).type == event_type


def test_run_dispatch_cycle_returns_summary(client_as) -> None:
    response = client_as().post("/api/v1/dispatch/run")
    assert response.status_code == 200
    assert response.json() == {
        "fetched": 0,
        "sent": 0,
        "retried": 0,
        "failed": 0,
        "skipped": 0,
        "errors": 0,
        "purged": 0,
        "released": 0,
    }


def test_integration_activation_requires_fields(client_as) -> None:
    client = client_as()
    rejected = client.post("/api/v1/integrations", json={"type": "slack", "name": "Slack", "active": True})
    created = client.post(
        "/api/v1/integrations",
        json={"type": "slack", "name": "Slack", "config": {"webhook_url": "https://hooks.slack.com/services/T/B/X"}},
    )

    assert rejected.status_code == 400
    assert rejected.json() == {"detail": "Integration 'slack' is missing required fields: webhook_url"}
    assert created.status_code == 201
    body = created.json()
    assert body["active"] is False
    assert body["config"]["webhook_url"] == "********"
    assert body["config"]["channel"] == "#bienestar"
    assert body["missing_fields"] == []

    activated = client.patch(f"/api/v1/integrations/{body['id']}", json={"active": True})
    assert activated.status_code == 200
    assert activated.json()["active"] is True
    assert [item["id"] for item in client.get("/api/v1/integrations").json()["integrations"]] == [body["id"]]


def test_notification_listing_stats_and_retry(client_as, store) -> None:
    async def _seed() -> str:
        item = await store.enqueue(
            NotificationItemDraft(
                tenant_id=TENANT_ID,
                channel="webhook",
                target="https://hooks.example.com/reben",
                event_type="alert_created",
            )
        )
        await store.mark_attempt_start(item.id)
        await store.mark_failed(
            item.id, error="bad config", next_retry_count=0, next_scheduled_at=item.scheduled_at, terminal=True
        )
        return item.id

    item_id = asyncio.run(_seed())
    client = client_as()

    failed = client.get("/api/v1/notifications", params={"status": "failed"})
    stats = client.get("/api/v1/notifications/stats", params={"days": 7})
    retried = client.post("/api/v1/notifications/retry-failed")
    pending = client.get("/api/v1/notifications", params={"status": "pending"})

    assert [item["id"] for item in failed.json()["notifications"]] == [item_id]
    assert failed.json()["notifications"][0]["last_error"] == "bad config"
    assert stats.json()["total_failed"] == 1
    assert stats.json()["success_rate"] == 0.0
    assert stats.json()["by_type"] == {"alert_created": 1}
    assert retried.json() == {"requeued": 1}
    assert [item["id"] for item in pending.json()["notifications"]] == [item_id]


def test_alert_notification_requires_manager(client_as) -> None:
    payload = {
        "user_email": "ana@example.com",
        "user_name": "Ana",
        "alert_type": "Burnout risk",
        "severity": "medium",
        "message": "Mood dropped",
        "manager_email": "luis@example.com",
    }

    forbidden = client_as("EMPLOYEE").post("/api/v1/notifications/alert", json=payload)
    accepted = client_as("MANAGER").post("/api/v1/notifications/alert", json=payload)

    assert forbidden.status_code == 403
    assert accepted.status_code == 202
    assert len(accepted.json()["item_ids"]) == 2


def test_wellness_analysis_falls_back_without_model(client_as, monkeypatch) -> None:
    async def unavailable(self, prompt: str) -> str:
        raise RuntimeError("GEMINI_API_KEY is not configured")

    monkeypatch.setattr(GeminiClient, "generate", unavailable)

    response = client_as("MANAGER").post(
        "/api/v1/analysis/wellness",
        json={"wellness_score": 50, "risk_employees": 4, "total_checkins": 8, "critical_alerts": 1},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["risk_level"] == "high"
    assert body["confidence_score"] == 85
