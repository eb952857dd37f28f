"""Central notification dispatcher — fans a message out to enabled channels."""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable

import structlog

from alert_relay.core.config import ChannelConfig, NotificationsConfig
from alert_relay.core.types import ChannelKind, resolve_selector
from alert_relay.notify.channels import NotificationChannel, build_channel
from alert_relay.notify.exceptions import ChannelDeliveryError, ValidationError
from alert_relay.notify.store import ConfigStore
from alert_relay.notify.types import DeliveryOutcome, Message, Metadata

# Dedicated structured logger for dispatch decisions.
decision_logger = structlog.get_logger("decision_log")

logger = structlog.get_logger(__name__)

ChannelFactory = Callable[[ChannelKind, NotificationsConfig], NotificationChannel]


class NotificationDispatcher:
    """Routes one message to every selected, enabled channel.

    - Each dispatch reads a single config snapshot from the store.
    - Channels run as concurrent tasks; a failing or slow channel never
      affects its siblings, and the call returns once all have settled.
    - Outcomes come back in ``ChannelKind`` order, one per attempted channel.
    - Senders are cached per kind and rebuilt when that kind's config
      changes (so the SMTP transport follows email config updates).
    - A replaced sender stays open until its in-flight deliveries settle.
    """

    def __init__(
        self,
        store: ConfigStore,
        channel_factory: ChannelFactory = build_channel,
    ) -> None:
        self._store = store
        self._channel_factory = channel_factory
        # kind -> (config block the sender was built from, sender)
        self._channels: dict[ChannelKind, tuple[ChannelConfig, NotificationChannel]] = {}
        self._retired: list[NotificationChannel] = []
        self._in_flight: Counter[NotificationChannel] = Counter()

    @property
    def store(self) -> ConfigStore:
        return self._store

    # ── Dispatch ────────────────────────────────────────────────

    async def dispatch(
        self,
        selector: str | None,
        message: Message,
        severity: str = "info",
        metadata: Metadata | None = None,
    ) -> list[DeliveryOutcome]:
        """Deliver ``message`` and return one outcome per attempted channel.

        Raises:
            ValidationError: ``selector`` names no known channel.
        """
        metadata = metadata or Metadata()
        config = self._store.get()
        kinds = self.select(selector, config)

        self._log_decision(selector, message, severity, metadata, kinds)
        if not kinds:
            return []

        outcomes = await asyncio.gather(
            *(self._deliver(kind, config, message, severity, metadata) for kind in kinds)
        )
        failed = sum(1 for o in outcomes if not o.success)
        logger.info(
            "dispatch_completed",
            attempted=len(outcomes),
            failed=failed,
            title=message.display_title,
        )
        return list(outcomes)

    @staticmethod
    def select(selector: str | None, config: NotificationsConfig) -> list[ChannelKind]:
        """Channel kinds a dispatch with ``selector`` would attempt."""
        try:
            target = resolve_selector(selector)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        return [kind for kind in config.enabled_kinds() if target is None or kind == target]

    async def _deliver(
        self,
        kind: ChannelKind,
        config: NotificationsConfig,
        message: Message,
        severity: str,
        metadata: Metadata,
    ) -> DeliveryOutcome:
        try:
            channel = self._channel_for(kind, config)
        except Exception as exc:
            logger.exception("channel_build_error", channel=kind.value)
            return DeliveryOutcome(
                channel=kind, success=False, error=str(exc) or type(exc).__name__
            )

        self._in_flight[channel] += 1
        try:
            result = await channel.deliver(message, severity, metadata)
        except ChannelDeliveryError as exc:
            logger.warning("channel_delivery_failed", channel=kind.value, error=str(exc))
            return DeliveryOutcome(channel=kind, success=False, error=str(exc))
        except Exception as exc:
            logger.exception("channel_dispatch_error", channel=kind.value)
            return DeliveryOutcome(
                channel=kind, success=False, error=str(exc) or type(exc).__name__
            )
        finally:
            await self._release(channel)
        return DeliveryOutcome(channel=kind, success=True, result=result)

    def _log_decision(
        self,
        selector: str | None,
        message: Message,
        severity: str,
        metadata: Metadata,
        kinds: list[ChannelKind],
    ) -> None:
        decision_logger.info(
            "dispatch",
            selector=selector,
            severity=severity,
            title=message.display_title,
            metadata=metadata.as_dict(),
            channels=[k.value for k in kinds],
        )

    # ── Sender cache ────────────────────────────────────────────

    def _channel_for(self, kind: ChannelKind, config: NotificationsConfig) -> NotificationChannel:
        block = config.channels.for_kind(kind)
        cached = self._channels.get(kind)
        if cached is not None and cached[0] == block:
            return cached[1]
        channel = self._channel_factory(kind, config)
        self._channels[kind] = (block, channel)
        if cached is not None:
            self._retired.append(cached[1])
        return channel

    async def _release(self, channel: NotificationChannel) -> None:
        """Drop one in-flight delivery; close the sender if it was the last on a retired one."""
        self._in_flight[channel] -= 1
        if self._in_flight[channel] > 0:
            return
        del self._in_flight[channel]
        if channel in self._retired:
            self._retired.remove(channel)
            await self._close_channel(channel)

    async def refresh(self) -> None:
        """Retire senders whose config block no longer matches the store.

        Idle retired senders are closed now; busy ones close when their
        last in-flight delivery settles.
        """
        config = self._store.get()
        stale = [
            kind
            for kind, (block, _) in self._channels.items()
            if config.channels.for_kind(kind) != block
        ]
        for kind in stale:
            _, channel = self._channels.pop(kind)
            logger.info(
                "channel_retired",
                channel=kind.value,
                in_flight=self._in_flight[channel],
            )
            self._retired.append(channel)

        idle = [ch for ch in self._retired if not self._in_flight[ch]]
        self._retired = [ch for ch in self._retired if self._in_flight[ch]]
        for channel in idle:
            await self._close_channel(channel)

    async def _close_channel(self, channel: NotificationChannel) -> None:
        try:
            await channel.close()
        except Exception:
            logger.exception("channel_close_error", channel=type(channel).__name__)

    # ── Lifecycle ───────────────────────────────────────────────

    async def close(self) -> None:
        channels = [channel for _, channel in self._channels.values()]
        channels.extend(self._retired)
        self._channels.clear()
        self._retired = []
        for channel in channels:
            await self._close_channel(channel)
