"""Core module — config, shared enums, logging."""

from alert_relay.core.config import (
    ChannelsConfig,
    DiscordConfig,
    EmailConfig,
    NotificationsConfig,
    Settings,
    SlackConfig,
    TeamsConfig,
    WebhookConfig,
    WebhookEndpoint,
    get_settings,
    load_settings,
    reset_settings,
)
from alert_relay.core.logging import setup_logging
from alert_relay.core.types import ChannelKind, Severity, resolve_selector

__all__ = [
    "ChannelKind",
    "ChannelsConfig",
    "DiscordConfig",
    "EmailConfig",
    "NotificationsConfig",
    "Settings",
    "Severity",
    "SlackConfig",
    "TeamsConfig",
    "WebhookConfig",
    "WebhookEndpoint",
    "get_settings",
    "load_settings",
    "reset_settings",
    "resolve_selector",
    "setup_logging",
]
