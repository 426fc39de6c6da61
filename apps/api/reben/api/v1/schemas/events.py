from typing import Any

from pydantic import BaseModel, Field, field_validator

from reben.notifications.models import EVENT_TYPES


class EventIn(BaseModel):
    type: str
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("type")
    @classmethod
    def _check_type(cls, value: str) -> str:
        candidate = value.strip()
        if candidate not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {candidate}")
        return candidate


class EventRoutedOut(BaseModel):
    item_ids: list[str]


class DispatchSummaryOut(BaseModel):
    fetched: int
    sent: int
    retried: int
    failed: int
    skipped: int
    errors: int
    purged: int
    released: int
