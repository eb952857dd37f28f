"""Convenience factory for wiring the notification stack."""

from __future__ import annotations

from alert_relay.core.config import Settings
from alert_relay.notify.channels import build_channel
from alert_relay.notify.dispatcher import ChannelFactory, NotificationDispatcher
from alert_relay.notify.service import NotificationService
from alert_relay.notify.store import ConfigStore, FileConfigStore


def create_notification_service(
    settings: Settings,
    store: ConfigStore | None = None,
    channel_factory: ChannelFactory = build_channel,
) -> NotificationService:
    """Build store + dispatcher + service from settings.

    The store defaults to a YAML file at ``settings.notifications_path``.
    """
    if store is None:
        store = FileConfigStore(settings.notifications_path)
    dispatcher = NotificationDispatcher(store, channel_factory=channel_factory)
    return NotificationService(store, dispatcher=dispatcher)
