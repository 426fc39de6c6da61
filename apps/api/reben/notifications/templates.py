from __future__ import annotations

import html as html_lib
import re
from dataclasses import dataclass
from typing import Any, Literal

TemplateType = Literal[
    "burnout_alert",
    "turnover_risk",
    "low_satisfaction",
    "team_summary",
    "system_alert",
]

_TOKEN_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_.-]+)\s*\}\}")
_TAG_PATTERN = re.compile(r"<[^>]+>")
_BLANK_LINES = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class EmailTemplate:
    type: str
    subject: str
    html: str


def interpolate(template: str, variables: dict[str, Any]) -> str:
    """Replace ``{{key}}`` tokens; tokens with no matching key are kept as written."""

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in variables:
            return match.group(0)
        value = variables[key]
        return "" if value is None else str(value)

    return _TOKEN_PATTERN.sub(_replace, template)


def html_to_text(value: str) -> str:
    with_breaks = re.sub(r"<\s*(br|/p|/li|/h\d|/tr)\s*/?>", "\n", value, flags=re.IGNORECASE)
    stripped = html_lib.unescape(_TAG_PATTERN.sub("", with_breaks))
    lines = [line.strip() for line in stripped.splitlines()]
    return _BLANK_LINES.sub("\n\n", "\n".join(lines)).strip()


DEFAULT_EMAIL_TEMPLATES: dict[str, EmailTemplate] = {
    "burnout_alert": EmailTemplate(
        type="burnout_alert",
        subject="Wellness check: {{alert_type}}",
        html=(
            "<html><body>"
            "<p>Hi {{user_name}},</p>"
            "<p>We noticed a signal worth your attention: <strong>{{alert_type}}</strong> "
            "(severity {{severity}}).</p>"
            "<p>{{message}}</p>"
            "<p>Your wellbeing matters. Reach out to your manager or HR whenever you need support.</p>"
            "</body></html>"
        ),
    ),
    "turnover_risk": EmailTemplate(
        type="turnover_risk",
        subject="Turnover risk detected for {{user_name}}",
        html=(
            "<html><body>"
            "<p>Hello {{manager_name}},</p>"
            "<p>Recent check-ins suggest <strong>{{user_name}}</strong> may be at risk of leaving.</p>"
            "<p>{{message}}</p>"
            "<p>Consider scheduling a one-on-one conversation this week.</p>"
            "</body></html>"
        ),
    ),
    "low_satisfaction": EmailTemplate(
        type="low_satisfaction",
        subject="Low satisfaction trend: {{user_name}}",
        html=(
            "<html><body>"
            "<p>Hello {{manager_name}},</p>"
            "<p>Satisfaction scores for <strong>{{user_name}}</strong> have dropped.</p>"
            "<p>{{message}}</p>"
            "</body></html>"
        ),
    ),
    "team_summary": EmailTemplate(
        type="team_summary",
        subject="Team wellness summary {{week_start}} - {{week_end}}",
        html=(
            "<html><body>"
            "<p>Hello {{manager_name}},</p>"
            "<p>Average wellness: <strong>{{avg_wellness}}</strong><br/>"
            "Participation rate: <strong>{{participation_rate}}%</strong><br/>"
            "Active alerts: <strong>{{active_alerts}}</strong></p>"
            "</body></html>"
        ),
    ),
    "system_alert": EmailTemplate(
        type="system_alert",
        subject="[{{severity}}] Wellness alert for {{user_name}}",
        html=(
            "<html><body>"
            "<p>Hello {{manager_name}},</p>"
            "<p>A <strong>{{alert_type}}</strong> alert was raised for <strong>{{user_name}}</strong>.</p>"
            "<p>{{message}}</p>"
            "<p>Action required: {{action_required}}</p>"
            "</body></html>"
        ),
    ),
}


def get_email_template(template_type: str) -> EmailTemplate:
    template = DEFAULT_EMAIL_TEMPLATES.get(template_type)
    if template is None:
        raise ValueError(f"Template not found for type: {template_type}")
    return template


def render_email(template: EmailTemplate, variables: dict[str, Any]) -> dict[str, str]:
    html = interpolate(template.html, variables)
    return {
        "subject": interpolate(template.subject, variables),
        "html": html,
        "text": html_to_text(html),
    }
