from __future__ import annotations

import uuid
from typing import Any

from reben.core.errors import ConfigurationError
from reben.integrations.messages import build_test_message
from reben.integrations.models import (
    DEFAULT_CONFIG,
    EmailSmtpSettings,
    IntegrationConfig,
    IntegrationType,
    SlackSettings,
    TeamsSettings,
    ZapierSettings,
    validate_for_activation,
)
from reben.notifications.models import DeliveryAttemptLog, TEST_EVENT_TYPE, to_iso, utc_now
from reben.notifications.store import SubscriptionDirectory
from reben.worker.adapters.base import DeliveryResult, HttpPoster


async def create_integration(
    directory: SubscriptionDirectory,
    *,
    tenant_id: str,
    integration_type: IntegrationType,
    name: str,
    config: dict[str, Any] | None = None,
    active: bool = False,
) -> IntegrationConfig:
    integration = IntegrationConfig(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        type=integration_type,
        name=name.strip() or integration_type,
        config={**DEFAULT_CONFIG[integration_type], **(config or {})},
        active=active,
        created_at=utc_now(),
        updated_at=utc_now(),
    )
    if integration.active:
        validate_for_activation(integration)
    return await directory.save_integration(integration)


async def update_integration(
    directory: SubscriptionDirectory,
    integration: IntegrationConfig,
    *,
    name: str | None = None,
    config: dict[str, Any] | None = None,
    active: bool | None = None,
) -> IntegrationConfig:
    """Merge config changes and toggle activation; an active integration must validate."""
    updated = integration.model_copy(
        update={
            "name": name.strip() if name is not None and name.strip() else integration.name,
            "config": {**integration.config, **(config or {})},
            "active": integration.active if active is None else active,
            "updated_at": utc_now(),
        }
    )
    if updated.active:
        validate_for_activation(updated)
    return await directory.save_integration(updated)


async def send_test_integration(
    directory: SubscriptionDirectory,
    integration: IntegrationConfig,
    *,
    poster: HttpPoster | None = None,
) -> DeliveryResult:
    settings = validate_for_activation(integration)
    poster = poster or HttpPoster()
    if isinstance(settings, SlackSettings):
        result = await poster.post(
            settings.webhook_url,
            json=build_test_message("slack", channel=settings.channel),
        )
    elif isinstance(settings, TeamsSettings):
        result = await poster.post(settings.webhook_url, json=build_test_message("microsoft_teams"))
    elif isinstance(settings, ZapierSettings):
        result = await poster.post(
            settings.webhook_url,
            json={
                "event_type": TEST_EVENT_TYPE,
                "data": {"message": "Integration test from REBEN"},
                "timestamp": to_iso(utc_now()),
                "tenant_id": integration.tenant_id,
            },
        )
    elif isinstance(settings, EmailSmtpSettings):
        raise ConfigurationError("Email integrations are tested by sending a test email.")
    else:  # pragma: no cover - the settings union is exhaustive
        raise ConfigurationError(f"Unsupported integration type: {integration.type}")

    await directory.record_integration_log(
        DeliveryAttemptLog(
            integration_id=integration.id,
            tenant_id=integration.tenant_id,
            action=TEST_EVENT_TYPE,
            status="success" if result.success else "error",
            error_message=None if result.success else result.error,
        )
    )
    return result
