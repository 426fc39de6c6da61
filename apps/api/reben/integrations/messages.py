from __future__ import annotations

from datetime import datetime
from typing import Any

from reben.notifications.models import Event

_SLACK_COLORS = {"high": "danger", "medium": "warning"}
_TEAMS_COLORS = {"high": "D9534F", "medium": "F0AD4E"}
_DEFAULT_SLACK_COLOR = "good"
_DEFAULT_TEAMS_COLOR = "5CB85C"

TEST_MESSAGE_TEXT = "Integration test from REBEN"


def _severity(data: dict[str, Any]) -> str:
    return str(data.get("severity") or "").strip().lower()


def alert_title(event: Event) -> str:
    if event.type == "burnout_risk_detected":
        return "Burnout risk detected"
    return "Wellness alert"


def alert_headline(event: Event) -> str:
    message = str(event.data.get("message") or "").strip() or "New alert detected"
    icon = ":warning:" if event.type == "burnout_risk_detected" else ":rotating_light:"
    return f"{icon} *{alert_title(event)}*\n{message}"


def build_slack_message(event: Event, *, channel: str | None = None) -> dict[str, Any]:
    severity = _severity(event.data)
    employee = str(event.data.get("employee_name") or "").strip() or "N/A"
    return {
        "text": alert_headline(event),
        "channel": (channel or "").strip() or "#bienestar",
        "username": "REBEN",
        "icon_emoji": ":heart:",
        "attachments": [
            {
                "color": _SLACK_COLORS.get(severity, _DEFAULT_SLACK_COLOR),
                "fields": [
                    {"title": "Employee", "value": employee, "short": True},
                    {"title": "Date", "value": _display_date(event.occurred_at), "short": True},
                ],
            }
        ],
    }


def build_teams_message(event: Event) -> dict[str, Any]:
    severity = _severity(event.data)
    message = str(event.data.get("message") or "").strip() or "New alert detected"
    return {
        "@type": "MessageCard",
        "@context": "http://schema.org/extensions",
        "summary": alert_title(event),
        "themeColor": _TEAMS_COLORS.get(severity, _DEFAULT_TEAMS_COLOR),
        "title": alert_title(event),
        "text": message,
    }


def build_test_message(integration_type: str, *, channel: str | None = None) -> dict[str, Any]:
    if integration_type == "microsoft_teams":
        return {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "summary": TEST_MESSAGE_TEXT,
            "themeColor": _DEFAULT_TEAMS_COLOR,
            "text": TEST_MESSAGE_TEXT,
        }
    return {
        "text": TEST_MESSAGE_TEXT,
        "channel": (channel or "").strip() or "#bienestar",
        "username": "REBEN",
        "icon_emoji": ":heart:",
    }


def _display_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")
