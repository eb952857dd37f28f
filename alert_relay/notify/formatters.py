"""Pure functions that turn a Message into channel-specific wire payloads."""

from __future__ import annotations

import datetime
from dataclasses import dataclass
from html import escape as html_escape
from typing import Any

from alert_relay.core.config import DiscordConfig, SlackConfig, TeamsConfig
from alert_relay.core.types import Severity
from alert_relay.notify.types import Message, Metadata

SOURCE = "devops-monitor"
FOOTER = "DevOps Monitor"
EMAIL_DEFAULT_TITLE = "DevOps Monitor Alert"
TEAMS_ACTIVITY_IMAGE = "https://via.placeholder.com/64x64/0078d4/ffffff?text=!"

# ── Severity appearance tables ──────────────────────────────────

_COLORS: dict[Severity, str] = {
    Severity.CRITICAL: "danger",
    Severity.WARNING: "warning",
    Severity.INFO: "good",
    Severity.RESOLVED: "good",
}

_HEX_COLORS: dict[Severity, int] = {
    Severity.CRITICAL: 0xFF0000,  # red
    Severity.WARNING: 0xFFA500,   # orange
    Severity.INFO: 0x00FF00,      # green
    Severity.RESOLVED: 0x00FF00,  # green
}

_HTML_COLORS: dict[Severity, str] = {
    Severity.CRITICAL: "#dc3545",
    Severity.WARNING: "#fd7e14",
    Severity.INFO: "#28a745",
    Severity.RESOLVED: "#28a745",
}

_EMOJIS: dict[Severity, str] = {
    Severity.CRITICAL: "\U0001f6a8",
    Severity.WARNING: "⚠️",
    Severity.INFO: "ℹ️",
    Severity.RESOLVED: "✅",
}

# Metadata keys rendered as extra fields, in display order.
_CONTEXT_FIELDS: tuple[tuple[str, str], ...] = (
    ("instance", "Instance"),
    ("service", "Service"),
    ("component", "Component"),
)


def severity_color(severity: str | None) -> str:
    """Slack/Teams colour keyword for a severity."""
    return _COLORS[Severity.parse(severity)]


def severity_hex_color(severity: str | None) -> int:
    """Integer RGB colour for Discord embeds."""
    return _HEX_COLORS[Severity.parse(severity)]


def severity_html_color(severity: str | None) -> str:
    return _HTML_COLORS[Severity.parse(severity)]


def severity_emoji(severity: str | None) -> str:
    return _EMOJIS[Severity.parse(severity)]


def severity_label(severity: str | None) -> str:
    """Uppercased label; keeps the caller's wording even when unrecognised."""
    return (severity or Severity.INFO.value).upper()


def _timestamp(now: datetime.datetime | None) -> datetime.datetime:
    return now or datetime.datetime.now(datetime.timezone.utc)


def _context_fields(metadata: Metadata) -> list[tuple[str, str]]:
    """(label, value) pairs for the context keys that are set."""
    pairs = []
    for key, label in _CONTEXT_FIELDS:
        value = getattr(metadata, key)
        if value:
            pairs.append((label, value))
    return pairs


# ── Formatters ──────────────────────────────────────────────────


def format_slack(
    message: Message,
    severity: str | None,
    metadata: Metadata,
    config: SlackConfig,
    now: datetime.datetime | None = None,
) -> dict[str, Any]:
    """Build a Slack incoming-webhook payload with one coloured attachment."""
    ts = _timestamp(now)
    fields: list[dict[str, Any]] = [
        {"title": "Severity", "value": severity_label(severity), "short": True},
        {"title": "Timestamp", "value": ts.isoformat(), "short": True},
    ]
    fields.extend(
        {"title": label, "value": value, "short": True}
        for label, value in _context_fields(metadata)
    )

    attachment: dict[str, Any] = {
        "color": severity_color(severity),
        "title": f"{severity_emoji(severity)} {message.display_title}",
        "text": message.text,
        "fields": fields,
        "footer": FOOTER,
        "ts": int(ts.timestamp()),
    }
    if metadata.runbook_url:
        attachment["actions"] = [
            {"type": "button", "text": "View Runbook", "url": metadata.runbook_url}
        ]

    return {
        "channel": metadata.channel or config.default_channel,
        "username": config.username,
        "icon_emoji": config.icon_emoji,
        "attachments": [attachment],
    }


def format_teams(
    message: Message,
    severity: str | None,
    metadata: Metadata,
    config: TeamsConfig,
    now: datetime.datetime | None = None,
) -> dict[str, Any]:
    """Build a legacy Office 365 connector ``MessageCard``."""
    ts = _timestamp(now)
    facts = [{"name": "Timestamp", "value": ts.isoformat()}]
    facts.extend({"name": label, "value": value} for label, value in _context_fields(metadata))

    section: dict[str, Any] = {
        "activityTitle": f"{severity_emoji(severity)} {message.display_title}",
        "activitySubtitle": f"Severity: {severity_label(severity)}",
        "activityImage": TEAMS_ACTIVITY_IMAGE,
        "text": message.text,
        "facts": facts,
        "markdown": True,
    }
    if metadata.runbook_url:
        section["potentialAction"] = [
            {
                "@type": "OpenUri",
                "name": "View Runbook",
                "targets": [{"os": "default", "uri": metadata.runbook_url}],
            }
        ]

    return {
        "@type": "MessageCard",
        "@context": "http://schema.org/extensions",
        "themeColor": severity_color(severity),
        "summary": message.title or config.title,
        "sections": [section],
    }


def format_discord(
    message: Message,
    severity: str | None,
    metadata: Metadata,
    config: DiscordConfig,
    now: datetime.datetime | None = None,
) -> dict[str, Any]:
    """Build a Discord webhook payload with a single colour-coded embed."""
    fields: list[dict[str, Any]] = [
        {"name": "Severity", "value": severity_label(severity), "inline": True},
    ]
    fields.extend(
        {"name": label, "value": value, "inline": True}
        for label, value in _context_fields(metadata)
    )

    embed: dict[str, Any] = {
        "title": f"{severity_emoji(severity)} {message.display_title}",
        "description": message.text,
        "color": severity_hex_color(severity),
        "timestamp": _timestamp(now).isoformat(),
        "fields": fields,
        "footer": {"text": FOOTER},
    }
    if metadata.runbook_url:
        embed["url"] = metadata.runbook_url

    payload: dict[str, Any] = {"username": config.username, "embeds": [embed]}
    if config.avatar_url:
        payload["avatar_url"] = config.avatar_url
    return payload


@dataclass(frozen=True)
class EmailContent:
    """Rendered email subject and HTML body."""

    subject: str
    html: str


def format_email(
    message: Message,
    severity: str | None,
    metadata: Metadata,
    now: datetime.datetime | None = None,
) -> EmailContent:
    """Render the ``[SEVERITY] title`` subject and the HTML document."""
    title = message.title or EMAIL_DEFAULT_TITLE
    return EmailContent(
        subject=f"[{severity_label(severity)}] {title}",
        html=render_email_html(message, severity, metadata, now=now),
    )


def render_email_html(
    message: Message,
    severity: str | None,
    metadata: Metadata,
    now: datetime.datetime | None = None,
) -> str:
    """Self-contained HTML alert with a severity-coloured header banner."""
    color = severity_html_color(severity)
    title = html_escape(message.title or EMAIL_DEFAULT_TITLE)
    body = html_escape(message.text)

    meta_items = [
        '<div class="metadata-item"><span class="metadata-label">Timestamp:</span> '
        f"{_timestamp(now).isoformat()}</div>"
    ]
    meta_items.extend(
        '<div class="metadata-item"><span class="metadata-label">'
        f"{label}:</span> {html_escape(value)}</div>"
        for label, value in _context_fields(metadata)
    )
    runbook = ""
    if metadata.runbook_url:
        runbook = (
            f'<p><a href="{html_escape(metadata.runbook_url, quote=True)}">'
            "View Runbook</a></p>"
        )
    metadata_block = "\n        ".join(meta_items)

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>DevOps Monitor Alert</title>
  <style>
    body {{ font-family: Arial, sans-serif; margin: 0; padding: 20px; background-color: #f5f5f5; }}
    .container {{ max-width: 600px; margin: 0 auto; background-color: white; border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1); }}
    .header {{ background-color: {color}; color: white; padding: 20px; border-radius: 8px 8px 0 0; }}
    .content {{ padding: 20px; }}
    .footer {{ padding: 20px; background-color: #f8f9fa; border-radius: 0 0 8px 8px; font-size: 12px; color: #666; }}
    .metadata {{ background-color: #f8f9fa; padding: 15px; border-radius: 4px; margin: 15px 0; }}
    .metadata-item {{ margin: 5px 0; }}
    .metadata-label {{ font-weight: bold; }}
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>{title}</h1>
      <p>Severity: {html_escape(severity_label(severity))}</p>
    </div>
    <div class="content">
      <p>{body}</p>
      <div class="metadata">
        {metadata_block}
      </div>
    </div>
    <div class="footer">
      <p>This alert was generated by DevOps Monitor</p>
      {runbook}
    </div>
  </div>
</body>
</html>
"""


def format_webhook(
    message: Message,
    severity: str | None,
    metadata: Metadata,
    now: datetime.datetime | None = None,
) -> dict[str, Any]:
    """Uniform JSON body posted to every generic webhook endpoint."""
    return {
        "message": message.model_dump(exclude_none=True),
        "severity": severity or Severity.INFO.value,
        "metadata": metadata.as_dict(),
        "timestamp": _timestamp(now).isoformat(),
        "source": SOURCE,
    }
