"""Alertmanager webhook adaptation — one dispatch per alert in the batch."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import Any

import pydantic
import structlog

from alert_relay.core.types import ALL_CHANNELS, Severity
from alert_relay.notify.dispatcher import NotificationDispatcher
from alert_relay.notify.exceptions import ValidationError
from alert_relay.notify.types import Alert, AlertBatch, DeliveryOutcome, Message, Metadata

logger = structlog.get_logger(__name__)


def alert_to_notification(alert: Alert) -> tuple[Message, str, Metadata]:
    """Normalise one alert into (message, severity, metadata).

    Title falls back summary → alertname → "Alert"; body is the
    description; severity defaults to ``info``. Metadata keys are only set
    when the source label or annotation is present.
    """
    labels = alert.labels
    annotations = alert.annotations

    message = Message(
        title=annotations.get("summary") or labels.get("alertname") or "Alert",
        body=annotations.get("description") or "",
    )
    severity = labels.get("severity") or Severity.INFO.value

    context: dict[str, str | None] = {
        "instance": labels.get("instance"),
        "service": labels.get("service"),
        "component": labels.get("component"),
        "runbook_url": annotations.get("runbook_url"),
        "status": alert.status,
    }
    metadata = Metadata(**{k: v for k, v in context.items() if v})
    return message, severity, metadata


def parse_alert_batch(payload: AlertBatch | Mapping[str, Any]) -> AlertBatch:
    if isinstance(payload, AlertBatch):
        return payload
    try:
        return AlertBatch.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"invalid alert batch: {exc}") from exc


class AlertAdapter:
    """Turns Alertmanager-style batches into independent dispatches."""

    def __init__(self, dispatcher: NotificationDispatcher) -> None:
        self._dispatcher = dispatcher

    async def process(
        self, payload: AlertBatch | Mapping[str, Any]
    ) -> list[list[DeliveryOutcome]]:
        """Dispatch every alert to all enabled channels.

        Alerts run concurrently; the result keeps batch order, one outcome
        list per alert.
        """
        batch = parse_alert_batch(payload)
        logger.info("alert_batch_received", alerts=len(batch.alerts))
        if not batch.alerts:
            return []
        return list(await asyncio.gather(*(self._process_one(a) for a in batch.alerts)))

    async def _process_one(self, alert: Alert) -> list[DeliveryOutcome]:
        message, severity, metadata = alert_to_notification(alert)
        return await self._dispatcher.dispatch(ALL_CHANNELS, message, severity, metadata)
