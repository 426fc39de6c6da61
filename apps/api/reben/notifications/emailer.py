from __future__ import annotations

import smtplib
from dataclasses import dataclass
from email.message import EmailMessage

from reben.core.logging import get_logger
from reben.core.settings import get_settings
from reben.integrations.models import EmailSmtpSettings

logger = get_logger("notifications.emailer")


class EmailNotConfiguredError(RuntimeError):
    pass


class EmailSendError(RuntimeError):
    pass


@dataclass(frozen=True)
class SmtpTransport:
    host: str
    port: int
    from_email: str
    username: str | None = None
    password: str | None = None
    use_tls: bool = True
    use_ssl: bool = False


def transport_from_settings() -> SmtpTransport:
    settings = get_settings()
    host = (settings.SMTP_HOST or "").strip()
    from_email = (settings.EMAIL_FROM or "").strip()
    if not host or not from_email:
        raise EmailNotConfiguredError("SMTP transport is not configured.")
    return SmtpTransport(
        host=host,
        port=settings.SMTP_PORT,
        from_email=from_email,
        username=(settings.SMTP_USERNAME or "").strip() or None,
        password=settings.SMTP_PASSWORD,
        use_tls=settings.SMTP_USE_TLS,
        use_ssl=settings.SMTP_USE_SSL,
    )


def transport_from_integration(config: EmailSmtpSettings) -> SmtpTransport:
    return SmtpTransport(
        host=config.smtp_host.strip(),
        port=config.smtp_port,
        from_email=config.from_email,
        username=config.username.strip() or None,
        password=config.password,
        use_tls=not config.use_ssl,
        use_ssl=config.use_ssl,
    )


def send_email(
    *,
    to: str,
    subject: str,
    html: str,
    text: str,
    transport: SmtpTransport | None = None,
    request_id: str | None = None,
) -> None:
    transport = transport or transport_from_settings()
    recipient_domain = _recipient_domain(to)

    message = EmailMessage()
    message["From"] = transport.from_email
    message["To"] = to
    message["Subject"] = subject
    message.set_content(text)
    message.add_alternative(html, subtype="html")

    try:
        if transport.use_ssl:
            with smtplib.SMTP_SSL(host=transport.host, port=transport.port, timeout=10) as server:
                _login_if_needed(server, transport)
                server.send_message(message)
        else:
            with smtplib.SMTP(host=transport.host, port=transport.port, timeout=10) as server:
                if transport.use_tls:
                    server.starttls()
                _login_if_needed(server, transport)
                server.send_message(message)
    except OSError as exc:
        logger.warning(
            "notifications.email_send_failed",
            extra={
                "component": "worker",
                "request_id": request_id,
                "recipient_domain": recipient_domain,
            },
        )
        raise EmailSendError(f"Failed to send notification email: {exc}") from exc

    logger.info(
        "notifications.email_sent",
        extra={
            "component": "worker",
            "request_id": request_id,
            "recipient_domain": recipient_domain,
        },
    )


def _recipient_domain(recipient: str) -> str:
    value = recipient.strip().lower()
    if "@" not in value:
        return "unknown"
    return value.rsplit("@", maxsplit=1)[-1] or "unknown"


def _login_if_needed(server: smtplib.SMTP, transport: SmtpTransport) -> None:
    if transport.username and transport.password:
        server.login(transport.username, transport.password)
