from datetime import datetime

from pydantic import BaseModel, Field

from reben.notifications.models import WebhookSubscription


class WebhookCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    url: str = Field(min_length=1, max_length=4096)
    events: list[str] = Field(min_length=1)
    description: str | None = Field(default=None, max_length=2000)


class WebhookUpdateIn(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    url: str | None = Field(default=None, max_length=4096)
    events: list[str] | None = None
    active: bool | None = None
    description: str | None = Field(default=None, max_length=2000)


class WebhookOut(BaseModel):
    id: str
    name: str
    url: str
    events: list[str]
    active: bool
    description: str | None = None
    secret: str
    success_count: int
    error_count: int
    last_triggered_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_subscription(cls, subscription: WebhookSubscription, *, reveal_secret: bool = False) -> "WebhookOut":
        return cls(
            id=subscription.id,
            name=subscription.name,
            url=subscription.url,
            events=subscription.events,
            active=subscription.active,
            description=subscription.description,
            secret=subscription.secret if reveal_secret else subscription.masked_secret,
            success_count=subscription.success_count,
            error_count=subscription.error_count,
            last_triggered_at=subscription.last_triggered_at,
            created_at=subscription.created_at,
        )


class DeliveryResultOut(BaseModel):
    success: bool
    http_status: int | None = None
    error: str | None = None
