from __future__ import annotations

from collections.abc import Callable

from fastapi.concurrency import run_in_threadpool

from reben.core.errors import ConfigurationError
from reben.integrations.models import EmailSmtpSettings
from reben.notifications.emailer import (
    EmailNotConfiguredError,
    EmailSendError,
    SmtpTransport,
    send_email,
    transport_from_integration,
    transport_from_settings,
)
from reben.notifications.models import NotificationItem
from reben.notifications.store import SubscriptionDirectory
from reben.notifications.templates import EmailTemplate, get_email_template, render_email
from reben.worker.adapters.base import DeliveryResult

EmailSender = Callable[..., None]


def render_item(item: NotificationItem) -> dict[str, str]:
    """Fill the stored subject and body, or the named template, from the item payload exactly once."""
    if item.subject and item.rendered_body:
        template = EmailTemplate(type=item.template_type or "custom", subject=item.subject, html=item.rendered_body)
        return render_email(template, item.payload)
    if item.template_type:
        try:
            template = get_email_template(item.template_type)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        return render_email(template, item.payload)
    raise ConfigurationError(f"Email item {item.id} has neither a rendered body nor a template")


class EmailAdapter:
    def __init__(
        self,
        directory: SubscriptionDirectory,
        *,
        sender: EmailSender = send_email,
    ) -> None:
        self._directory = directory
        self._sender = sender

    async def send(self, item: NotificationItem) -> DeliveryResult:
        message = render_item(item)
        try:
            transport = await self._transport_for(item)
            await run_in_threadpool(
                self._sender,
                to=item.target,
                subject=message["subject"],
                html=message["html"],
                text=message["text"],
                transport=transport,
                request_id=f"notify-{item.id}",
            )
        except (EmailNotConfiguredError, EmailSendError) as exc:
            return DeliveryResult.failed(str(exc))
        return DeliveryResult.ok()

    async def _transport_for(self, item: NotificationItem) -> SmtpTransport:
        if item.integration_id:
            integration = await self._directory.get_integration(item.integration_id)
            if integration is not None and integration.type == "email_notifications":
                settings = integration.settings()
                if isinstance(settings, EmailSmtpSettings):
                    return transport_from_integration(settings)
        return transport_from_settings()
