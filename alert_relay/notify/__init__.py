"""Notification formatting, delivery and dispatch subsystem."""

from alert_relay.notify.adapter import AlertAdapter, alert_to_notification
from alert_relay.notify.channels import (
    DiscordChannel,
    EmailChannel,
    NotificationChannel,
    SlackChannel,
    SmtpTransport,
    TeamsChannel,
    WebhookChannel,
    build_channel,
)
from alert_relay.notify.dispatcher import NotificationDispatcher
from alert_relay.notify.exceptions import (
    ChannelDeliveryError,
    ConfigPersistError,
    EndpointDeliveryError,
    RelayError,
    ValidationError,
)
from alert_relay.notify.factory import create_notification_service
from alert_relay.notify.service import NotificationService
from alert_relay.notify.store import ConfigStore, FileConfigStore, MemoryConfigStore
from alert_relay.notify.types import (
    Alert,
    AlertBatch,
    DeliveryOutcome,
    EndpointResult,
    Message,
    Metadata,
)

__all__ = [
    "Alert",
    "AlertAdapter",
    "AlertBatch",
    "ChannelDeliveryError",
    "ConfigPersistError",
    "ConfigStore",
    "DeliveryOutcome",
    "DiscordChannel",
    "EmailChannel",
    "EndpointDeliveryError",
    "EndpointResult",
    "FileConfigStore",
    "MemoryConfigStore",
    "Message",
    "Metadata",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationService",
    "RelayError",
    "SlackChannel",
    "SmtpTransport",
    "TeamsChannel",
    "ValidationError",
    "WebhookChannel",
    "alert_to_notification",
    "build_channel",
    "create_notification_service",
]
