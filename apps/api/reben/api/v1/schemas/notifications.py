from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from reben.notifications.templates import TemplateType

NotificationStatus = Literal["pending", "retrying", "sent", "failed"]


class NotificationItemOut(BaseModel):
    id: str
    channel: str
    target: str
    status: NotificationStatus
    priority: str
    retry_count: int
    max_retries: int
    scheduled_at: datetime
    last_error: str | None = None
    sent_at: datetime | None = None
    created_at: datetime
    event_type: str | None = None
    template_type: str | None = None
    subject: str | None = None


class NotificationStatsOut(BaseModel):
    days: int
    total: int
    total_sent: int
    total_failed: int
    pending: int
    retrying: int
    success_rate: float
    by_type: dict[str, int]
    by_channel: dict[str, int]


class RequeueOut(BaseModel):
    requeued: int


class TemplatedEmailIn(BaseModel):
    to: str = Field(min_length=3, max_length=320)
    template_type: TemplateType
    data: dict[str, Any] = Field(default_factory=dict)
    priority: Literal["high", "medium", "low"] = "medium"
    scheduled_at: datetime | None = None


class SampleEmailIn(BaseModel):
    to: str = Field(min_length=3, max_length=320)
    template_type: TemplateType


class EnqueuedOut(BaseModel):
    item_ids: list[str]
