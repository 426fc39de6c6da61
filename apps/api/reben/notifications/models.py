from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Channel = Literal["webhook", "email", "chat"]
DeliveryStatus = Literal["pending", "retrying", "sent", "failed"]
Priority = Literal["high", "medium", "low"]

PRIORITY_RANK: dict[str, int] = {"high": 3, "medium": 2, "low": 1}
TERMINAL_STATUSES: frozenset[str] = frozenset({"sent", "failed"})

EVENT_TYPES: tuple[str, ...] = (
    "alert_created",
    "alert_resolved",
    "employee_status_changed",
    "checkin_completed",
    "burnout_risk_detected",
    "team_report_generated",
)
TEST_EVENT_TYPE = "test_webhook"


def utc_now() -> datetime:
    return datetime.now(UTC)


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


class Event(BaseModel):
    type: str = Field(min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)
    tenant_id: str = Field(min_length=1)
    occurred_at: datetime = Field(default_factory=utc_now)

    def envelope(self) -> dict[str, Any]:
        return {
            "event_type": self.type,
            "data": self.data,
            "timestamp": to_iso(self.occurred_at),
            "tenant_id": self.tenant_id,
        }


class NotificationItemDraft(BaseModel):
    tenant_id: str
    channel: Channel
    target: str = Field(min_length=1)
    payload: dict[str, Any] = Field(default_factory=dict)
    subject: str | None = None
    rendered_body: str | None = None
    priority: Priority = "medium"
    max_retries: int = Field(default=3, ge=1)
    scheduled_at: datetime | None = None
    event_type: str | None = None
    subscription_id: str | None = None
    integration_id: str | None = None
    template_type: str | None = None


class NotificationItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    tenant_id: str
    channel: Channel
    target: str
    payload: dict[str, Any] = Field(default_factory=dict)
    subject: str | None = None
    rendered_body: str | None = None
    status: DeliveryStatus = "pending"
    priority: Priority = "medium"
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=1)
    scheduled_at: datetime
    last_error: str | None = None
    sent_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None
    event_type: str | None = None
    subscription_id: str | None = None
    integration_id: str | None = None
    template_type: str | None = None

    @model_validator(mode="after")
    def check_retry_bound(self) -> "NotificationItem":
        if self.retry_count > self.max_retries:
            raise ValueError("retry_count cannot exceed max_retries")
        return self

    @property
    def priority_rank(self) -> int:
        return PRIORITY_RANK[self.priority]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class WebhookSubscription(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    tenant_id: str
    name: str = ""
    url: str
    secret: str
    events: list[str] = Field(default_factory=list)
    active: bool = True
    description: str | None = None
    success_count: int = 0
    error_count: int = 0
    last_triggered_at: datetime | None = None
    created_at: datetime | None = None

    def listens_to(self, event_type: str) -> bool:
        return event_type in self.events

    @property
    def masked_secret(self) -> str:
        if len(self.secret) <= 10:
            return "*" * len(self.secret)
        return f"{self.secret[:10]}{'*' * 8}"


class DeliveryAttemptLog(BaseModel):
    integration_id: str
    tenant_id: str
    action: str
    status: Literal["success", "error"]
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
