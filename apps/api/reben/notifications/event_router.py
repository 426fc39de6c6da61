from __future__ import annotations

from collections.abc import Callable
from typing import Any

from reben.core.errors import ConfigurationError
from reben.core.logging import get_logger
from reben.core.settings import Settings, get_settings
from reben.integrations.messages import build_slack_message, build_teams_message
from reben.integrations.models import (
    EmailSmtpSettings,
    IntegrationConfig,
    SlackSettings,
    TeamsSettings,
    ZapierSettings,
)
from reben.notifications.models import EVENT_TYPES, Event, NotificationItemDraft, Priority, WebhookSubscription
from reben.notifications.signer import canonical_json
from reben.notifications.store import DeliveryQueueStore, SubscriptionDirectory

logger = get_logger("notifications.event_router")

EventPredicate = Callable[[Event], bool]


def _any_event(event: Event) -> bool:
    return True


def _high_severity(event: Event) -> bool:
    return str(event.data.get("severity") or "").strip().lower() == "high"


# Which events each integration type reacts to, with an optional extra condition.
INTEGRATION_EVENT_INTEREST: dict[str, dict[str, EventPredicate]] = {
    "slack": {"alert_created": _any_event, "burnout_risk_detected": _any_event},
    "microsoft_teams": {"alert_created": _any_event, "burnout_risk_detected": _any_event},
    "zapier": {event_type: _any_event for event_type in EVENT_TYPES},
    "email_notifications": {"alert_created": _high_severity},
}

ALERT_EMAIL_SUBJECT = "Critical wellness alert - {{employee_name}}"
ALERT_EMAIL_BODY = (
    "<h2>Critical alert detected</h2>"
    "<p><strong>Employee:</strong> {{employee_name}}</p>"
    "<p><strong>Type:</strong> {{type}}</p>"
    "<p><strong>Message:</strong> {{message}}</p>"
    "<p><strong>Date:</strong> {{occurred_at}}</p>"
    "<p>We recommend reaching out to the employee as soon as possible.</p>"
)


def integration_wants(integration: IntegrationConfig, event: Event) -> bool:
    predicate = INTEGRATION_EVENT_INTEREST.get(integration.type, {}).get(event.type)
    return predicate is not None and predicate(event)


def _severity_priority(event: Event) -> Priority:
    return "high" if _high_severity(event) else "medium"


class EventRouter:
    """Fans one tenant event out into queue items; delivery happens later in the dispatcher."""

    def __init__(
        self,
        store: DeliveryQueueStore,
        directory: SubscriptionDirectory,
        *,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.directory = directory
        self.settings = settings or get_settings()

    async def route(self, event: Event) -> list[str]:
        envelope = event.envelope()
        canonical_json(envelope)

        drafts: list[NotificationItemDraft] = []
        subscriptions = await self.directory.list_webhook_subscriptions(
            event.tenant_id,
            event_type=event.type,
            active_only=True,
        )
        for subscription in subscriptions:
            if not self._subscription_matches(subscription, event):
                continue
            drafts.append(self._webhook_draft(subscription, event, envelope))

        integrations = await self.directory.list_integrations(event.tenant_id, active_only=True)
        for integration in integrations:
            if integration.tenant_id != event.tenant_id or not integration.active:
                continue
            if not integration_wants(integration, event):
                continue
            draft = self._integration_draft(integration, event, envelope)
            if draft is not None:
                drafts.append(draft)

        item_ids: list[str] = []
        for draft in drafts:
            item = await self.store.enqueue(draft)
            item_ids.append(item.id)

        logger.info(
            "event_router.routed",
            extra={
                "component": "router",
                "tenant_id": event.tenant_id,
                "event_type": event.type,
                "subscriptions": len(subscriptions),
                "items": len(item_ids),
            },
        )
        return item_ids

    @staticmethod
    def _subscription_matches(subscription: WebhookSubscription, event: Event) -> bool:
        return (
            subscription.tenant_id == event.tenant_id
            and subscription.active
            and subscription.listens_to(event.type)
        )

    def _webhook_draft(
        self,
        subscription: WebhookSubscription,
        event: Event,
        envelope: dict[str, Any],
    ) -> NotificationItemDraft:
        return NotificationItemDraft(
            tenant_id=event.tenant_id,
            channel="webhook",
            target=subscription.url,
            payload=envelope,
            priority=_severity_priority(event),
            max_retries=self.settings.NOTIFY_MAX_RETRIES,
            event_type=event.type,
            subscription_id=subscription.id,
        )

    def _integration_draft(
        self,
        integration: IntegrationConfig,
        event: Event,
        envelope: dict[str, Any],
    ) -> NotificationItemDraft | None:
        try:
            settings = integration.settings()
        except ConfigurationError as exc:
            logger.warning(
                "event_router.integration_invalid",
                extra={
                    "component": "router",
                    "integration_id": integration.id,
                    "integration_type": integration.type,
                    "error": str(exc),
                },
            )
            return None
        common: dict[str, Any] = {
            "tenant_id": event.tenant_id,
            "max_retries": self.settings.NOTIFY_MAX_RETRIES,
            "event_type": event.type,
            "integration_id": integration.id,
        }
        if isinstance(settings, SlackSettings):
            return NotificationItemDraft(
                channel="chat",
                target=settings.webhook_url,
                payload=build_slack_message(event, channel=settings.channel),
                priority=_severity_priority(event),
                **common,
            )
        if isinstance(settings, TeamsSettings):
            return NotificationItemDraft(
                channel="chat",
                target=settings.webhook_url,
                payload=build_teams_message(event),
                priority=_severity_priority(event),
                **common,
            )
        if isinstance(settings, ZapierSettings):
            if not settings.triggers_enabled:
                return None
            return NotificationItemDraft(
                channel="webhook",
                target=settings.webhook_url,
                payload=envelope,
                priority=_severity_priority(event),
                **common,
            )
        if isinstance(settings, EmailSmtpSettings):
            recipient = str(event.data.get("manager_email") or "").strip() or settings.from_email
            variables = {
                "employee_name": "N/A",
                "type": "N/A",
                "message": "N/A",
                **{key: value for key, value in event.data.items() if value is not None},
                "occurred_at": envelope["timestamp"],
            }
            return NotificationItemDraft(
                channel="email",
                target=recipient,
                payload=variables,
                subject=ALERT_EMAIL_SUBJECT,
                rendered_body=ALERT_EMAIL_BODY,
                priority="high",
                template_type="alert_notification",
                **common,
            )
        return None
