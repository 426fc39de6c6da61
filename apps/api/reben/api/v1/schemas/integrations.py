from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from reben.integrations.models import SENSITIVE_FIELDS, IntegrationConfig, IntegrationType


class IntegrationCreateIn(BaseModel):
    type: IntegrationType
    name: str = Field(default="", max_length=200)
    config: dict[str, Any] = Field(default_factory=dict)
    active: bool = False


class IntegrationUpdateIn(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    config: dict[str, Any] | None = None
    active: bool | None = None


class IntegrationOut(BaseModel):
    id: str
    type: IntegrationType
    name: str
    config: dict[str, Any]
    active: bool
    required_fields: list[str]
    missing_fields: list[str]
    updated_at: datetime | None = None

    @classmethod
    def from_config(cls, integration: IntegrationConfig) -> "IntegrationOut":
        sensitive = SENSITIVE_FIELDS.get(integration.type, ())
        masked = {
            key: ("********" if key in sensitive and value else value)
            for key, value in integration.config.items()
        }
        return cls(
            id=integration.id,
            type=integration.type,
            name=integration.name,
            config=masked,
            active=integration.active,
            required_fields=list(integration.required_fields),
            missing_fields=integration.missing_fields(),
            updated_at=integration.updated_at,
        )
