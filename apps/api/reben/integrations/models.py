from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, ValidationError, field_validator

from reben.core.errors import ConfigurationError, IntegrationValidationError

IntegrationType = Literal["slack", "microsoft_teams", "zapier", "email_notifications"]

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "slack": ("webhook_url",),
    "microsoft_teams": ("webhook_url",),
    "zapier": ("webhook_url",),
    "email_notifications": ("smtp_host", "username", "password", "from_email"),
}

SENSITIVE_FIELDS: dict[str, tuple[str, ...]] = {
    "slack": ("webhook_url",),
    "microsoft_teams": ("webhook_url",),
    "zapier": ("webhook_url",),
    "email_notifications": ("password",),
}

DEFAULT_CONFIG: dict[str, dict[str, Any]] = {
    "slack": {"webhook_url": "", "channel": "#bienestar"},
    "microsoft_teams": {"webhook_url": "", "channel_id": ""},
    "zapier": {"webhook_url": "", "triggers_enabled": True},
    "email_notifications": {
        "smtp_host": "",
        "smtp_port": 587,
        "username": "",
        "password": "",
        "from_email": "",
        "templates_enabled": True,
    },
}

_HTTP_URL: TypeAdapter[HttpUrl] = TypeAdapter(HttpUrl)


def validate_target_url(value: str) -> str:
    candidate = (value or "").strip()
    if not candidate:
        raise ConfigurationError("A target URL is required.")
    try:
        _HTTP_URL.validate_python(candidate)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid target URL: {candidate}") from exc
    return candidate


class _WebhookTargetSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    webhook_url: str

    @field_validator("webhook_url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        try:
            return validate_target_url(value)
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc


class SlackSettings(_WebhookTargetSettings):
    type: Literal["slack"] = "slack"
    channel: str = "#bienestar"


class TeamsSettings(_WebhookTargetSettings):
    type: Literal["microsoft_teams"] = "microsoft_teams"
    channel_id: str | None = None


class ZapierSettings(_WebhookTargetSettings):
    type: Literal["zapier"] = "zapier"
    triggers_enabled: bool = True


class EmailSmtpSettings(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["email_notifications"] = "email_notifications"
    smtp_host: str
    smtp_port: int = 587
    username: str
    password: str
    from_email: str
    use_ssl: bool = False
    templates_enabled: bool = True

    @field_validator("from_email")
    @classmethod
    def _check_from_email(cls, value: str) -> str:
        candidate = value.strip()
        local, _, domain = candidate.partition("@")
        if not local or "." not in domain:
            raise ValueError("from_email must be an email address")
        return candidate


IntegrationSettings = Annotated[
    Union[SlackSettings, TeamsSettings, ZapierSettings, EmailSmtpSettings],
    Field(discriminator="type"),
]
_SETTINGS_ADAPTER: TypeAdapter[IntegrationSettings] = TypeAdapter(IntegrationSettings)


class IntegrationConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    tenant_id: str
    type: IntegrationType
    name: str = ""
    config: dict[str, Any] = Field(default_factory=dict)
    active: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("config", mode="before")
    @classmethod
    def _normalize_config(cls, value: Any) -> dict[str, Any]:
        if isinstance(value, dict):
            return value
        return {}

    @property
    def required_fields(self) -> tuple[str, ...]:
        return REQUIRED_FIELDS[self.type]

    def missing_fields(self) -> list[str]:
        return [field for field in self.required_fields if not _has_value(self.config.get(field))]

    def settings(self) -> IntegrationSettings:
        try:
            return _SETTINGS_ADAPTER.validate_python({**self.config, "type": self.type})
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'][1:]) or 'config'}: {error['msg']}"
                for error in exc.errors()
            )
            raise ConfigurationError(f"Invalid {self.type} configuration: {problems}") from exc


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def validate_for_activation(integration: IntegrationConfig) -> IntegrationSettings:
    """Raise unless every required field is present and the typed settings parse."""
    missing = integration.missing_fields()
    if missing:
        raise IntegrationValidationError(integration.type, missing)
    return integration.settings()


def split_sensitive_config(
    integration_type: str,
    config: dict[str, Any],
) -> tuple[dict[str, Any], dict[str, Any]]:
    sensitive_keys = SENSITIVE_FIELDS.get(integration_type, ())
    public = {key: value for key, value in config.items() if key not in sensitive_keys}
    secret = {key: config[key] for key in sensitive_keys if key in config}
    return public, secret
