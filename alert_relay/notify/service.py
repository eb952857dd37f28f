"""Notification service — the inbound operations of the relay."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pydantic
import structlog

from alert_relay.core.config import NotificationsConfig
from alert_relay.core.types import Severity
from alert_relay.notify.adapter import AlertAdapter
from alert_relay.notify.dispatcher import NotificationDispatcher
from alert_relay.notify.exceptions import ValidationError
from alert_relay.notify.store import ConfigStore
from alert_relay.notify.types import AlertBatch, DeliveryOutcome, Message, Metadata

logger = structlog.get_logger(__name__)

TEST_TITLE = "Test Notification"
TEST_BODY = "This is a test notification from DevOps Monitor"


class NotificationService:
    """Facade over the store, dispatcher and alert adapter.

    Usage::

        service = NotificationService(FileConfigStore("config/notifications.yaml"))
        outcomes = await service.send({"channel": "all", "message": {"title": "Disk full"}})
        await service.close()
    """

    def __init__(
        self,
        store: ConfigStore,
        dispatcher: NotificationDispatcher | None = None,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher or NotificationDispatcher(store)
        self._adapter = AlertAdapter(self._dispatcher)

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    # ── Operations ──────────────────────────────────────────────

    async def send(self, request: Mapping[str, Any]) -> list[DeliveryOutcome]:
        """Validate a notify request and dispatch it.

        Args:
            request: ``{channel, message, severity="info", metadata={}}``.
                ``message`` is a mapping (title plus message/description)
                or a plain string used as the body.

        Raises:
            ValidationError: channel or message missing, or malformed.
        """
        channel = request.get("channel")
        raw_message = request.get("message")
        if not channel or not raw_message:
            raise ValidationError("channel and message are required")
        if not isinstance(channel, str):
            raise ValidationError("channel must be a string")
        if not isinstance(raw_message, (str, Mapping)):
            raise ValidationError("message must be an object or a string")

        severity = request.get("severity") or Severity.INFO.value
        if not isinstance(severity, str):
            raise ValidationError("severity must be a string")

        raw_metadata = request.get("metadata") or {}
        if not isinstance(raw_metadata, Mapping):
            raise ValidationError("metadata must be an object")
        try:
            message = Message.from_payload(raw_message)
            metadata = Metadata.model_validate(dict(raw_metadata))
        except pydantic.ValidationError as exc:
            raise ValidationError(f"invalid notification: {exc}") from exc

        return await self.notify(channel, message, severity, metadata)

    async def notify(
        self,
        channel: str,
        message: Message,
        severity: str = "info",
        metadata: Metadata | None = None,
    ) -> list[DeliveryOutcome]:
        """Typed entry point — dispatch an already-built message."""
        return await self._dispatcher.dispatch(channel, message, severity, metadata)

    async def process_alert_batch(
        self, payload: AlertBatch | Mapping[str, Any]
    ) -> list[list[DeliveryOutcome]]:
        """Dispatch each alert of an Alertmanager webhook body."""
        return await self._adapter.process(payload)

    async def test(self, channel: str) -> list[DeliveryOutcome]:
        """Send the canned test notification to ``channel`` (or ``all``)."""
        message = Message(title=TEST_TITLE, body=TEST_BODY)
        logger.info("test_notification_requested", channel=channel)
        return await self.notify(channel, message, Severity.INFO.value)

    # ── Configuration ───────────────────────────────────────────

    def get_config(self) -> NotificationsConfig:
        return self._store.get()

    async def set_config(self, partial: Mapping[str, Any]) -> NotificationsConfig:
        """Merge ``partial`` into the config, persist it, rebuild senders."""
        if not isinstance(partial, Mapping):
            raise ValidationError("config update must be an object")
        updated = self._store.update(partial)
        await self._dispatcher.refresh()
        logger.info("config_updated", keys=sorted(partial), enabled=updated.enabled_kinds())
        return updated

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        await self._dispatcher.close()
