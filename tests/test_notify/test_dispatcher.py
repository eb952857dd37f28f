"""Tests for NotificationDispatcher — selection, isolation, ordering, sender cache."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import patch

import pytest

from alert_relay.core.config import NotificationsConfig
from alert_relay.core.types import ChannelKind
from alert_relay.notify.channels import NotificationChannel
from alert_relay.notify.dispatcher import NotificationDispatcher
from alert_relay.notify.exceptions import ChannelDeliveryError, ValidationError
from alert_relay.notify.store import MemoryConfigStore
from alert_relay.notify.types import Message, Metadata


# ── Helpers ─────────────────────────────────────────────────────


class FakeChannel(NotificationChannel):
    """In-memory channel for testing."""

    def __init__(
        self,
        kind: ChannelKind,
        fail: bool = False,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.kind = kind
        self.sent: list[tuple[Message, str, Metadata]] = []
        self._fail = fail
        self._error = error
        self._delay = delay
        self.closed = False

    async def deliver(self, message: Message, severity: str, metadata: Metadata) -> Any:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self.closed:
            raise ChannelDeliveryError(self.kind, "sender closed during delivery")
        if self._error is not None:
            raise self._error
        if self._fail:
            raise ChannelDeliveryError(self.kind, "fake error")
        self.sent.append((message, severity, metadata))
        return f"{self.kind.value}-ok"

    async def close(self) -> None:
        self.closed = True


class FakeFactory:
    """Channel factory that records every sender it builds."""

    def __init__(self, failing: set[ChannelKind] | None = None, **kw: Any) -> None:
        self._failing = failing or set()
        self._kw = kw
        self.built: list[FakeChannel] = []

    def __call__(self, kind: ChannelKind, config: NotificationsConfig) -> FakeChannel:
        ch = FakeChannel(kind, fail=kind in self._failing, **self._kw)
        self.built.append(ch)
        return ch

    def for_kind(self, kind: ChannelKind) -> list[FakeChannel]:
        return [ch for ch in self.built if ch.kind is kind]


def _config(*enabled: ChannelKind, global_enabled: bool = True) -> NotificationsConfig:
    return NotificationsConfig.model_validate(
        {
            "enabled": global_enabled,
            "channels": {kind.value: {"enabled": True} for kind in enabled},
        }
    )


def _dispatcher(
    config: NotificationsConfig, factory: FakeFactory | None = None
) -> tuple[NotificationDispatcher, FakeFactory, MemoryConfigStore]:
    factory = factory or FakeFactory()
    store = MemoryConfigStore(config)
    return NotificationDispatcher(store, channel_factory=factory), factory, store


def _msg() -> Message:
    return Message(title="High CPU", body="cpu > 90%")


ALL_KINDS = tuple(ChannelKind)


# ── Selection ───────────────────────────────────────────────────


class TestSelection:
    async def test_all_channels_disabled_returns_empty(self) -> None:
        disp, factory, _ = _dispatcher(_config())
        outcomes = await disp.dispatch("all", _msg())
        assert outcomes == []
        assert factory.built == []

    async def test_global_disable_returns_empty(self) -> None:
        disp, factory, _ = _dispatcher(_config(*ALL_KINDS, global_enabled=False))
        outcomes = await disp.dispatch("all", _msg())
        assert outcomes == []
        assert factory.built == []

    async def test_all_attempts_every_enabled_channel(self) -> None:
        disp, factory, _ = _dispatcher(_config(ChannelKind.SLACK, ChannelKind.EMAIL))
        outcomes = await disp.dispatch("all", _msg(), "warning")
        assert [o.channel for o in outcomes] == [ChannelKind.SLACK, ChannelKind.EMAIL]
        assert all(o.success for o in outcomes)
        assert {ch.kind for ch in factory.built} == {ChannelKind.SLACK, ChannelKind.EMAIL}

    async def test_none_selector_means_all(self) -> None:
        disp, _, _ = _dispatcher(_config(ChannelKind.TEAMS, ChannelKind.DISCORD))
        outcomes = await disp.dispatch(None, _msg())
        assert len(outcomes) == 2

    async def test_named_channel_targets_only_that_channel(self) -> None:
        disp, factory, _ = _dispatcher(_config(*ALL_KINDS))
        outcomes = await disp.dispatch("discord", _msg())
        assert [o.channel for o in outcomes] == [ChannelKind.DISCORD]
        assert [ch.kind for ch in factory.built] == [ChannelKind.DISCORD]

    async def test_chat_alias_targets_slack(self) -> None:
        disp, _, _ = _dispatcher(_config(*ALL_KINDS))
        outcomes = await disp.dispatch("chat", _msg())
        assert [o.channel for o in outcomes] == [ChannelKind.SLACK]

    async def test_named_disabled_channel_returns_empty(self) -> None:
        disp, factory, _ = _dispatcher(_config(ChannelKind.SLACK))
        assert await disp.dispatch("email", _msg()) == []
        assert factory.built == []

    async def test_unknown_selector_raises_before_delivery(self) -> None:
        disp, factory, _ = _dispatcher(_config(*ALL_KINDS))
        with pytest.raises(ValidationError, match="unknown channel"):
            await disp.dispatch("pagerduty", _msg())
        assert factory.built == []


# ── Isolation and ordering ──────────────────────────────────────


class TestIsolation:
    async def test_one_failure_others_succeed(self) -> None:
        factory = FakeFactory(failing={ChannelKind.DISCORD})
        disp, _, _ = _dispatcher(_config(*ALL_KINDS), factory)

        outcomes = await disp.dispatch("all", _msg(), "critical")

        assert len(outcomes) == 5
        failed = [o for o in outcomes if not o.success]
        assert len(failed) == 1
        assert failed[0].channel is ChannelKind.DISCORD
        assert failed[0].error == "fake error"
        for ch in factory.built:
            if ch.kind is not ChannelKind.DISCORD:
                assert len(ch.sent) == 1

    async def test_unexpected_exception_is_captured(self) -> None:
        factory = FakeFactory(error=RuntimeError("boom"))
        disp, _, _ = _dispatcher(_config(ChannelKind.SLACK), factory)
        outcomes = await disp.dispatch("all", _msg())
        assert outcomes[0].success is False
        assert outcomes[0].error == "boom"

    async def test_factory_error_is_captured(self) -> None:
        def broken_factory(kind: ChannelKind, config: NotificationsConfig) -> NotificationChannel:
            raise ValueError("cannot build")

        store = MemoryConfigStore(_config(ChannelKind.EMAIL))
        disp = NotificationDispatcher(store, channel_factory=broken_factory)
        outcomes = await disp.dispatch("all", _msg())
        assert outcomes[0].success is False
        assert outcomes[0].error == "cannot build"

    async def test_outcomes_in_fixed_order_regardless_of_latency(self) -> None:
        delays = {
            ChannelKind.SLACK: 0.03,
            ChannelKind.TEAMS: 0.0,
            ChannelKind.DISCORD: 0.02,
            ChannelKind.EMAIL: 0.01,
            ChannelKind.WEBHOOK: 0.0,
        }

        def factory(kind: ChannelKind, config: NotificationsConfig) -> FakeChannel:
            return FakeChannel(kind, delay=delays[kind])

        store = MemoryConfigStore(_config(*ALL_KINDS))
        disp = NotificationDispatcher(store, channel_factory=factory)
        outcomes = await disp.dispatch("all", _msg())
        assert [o.channel for o in outcomes] == list(ChannelKind)

    async def test_channels_run_concurrently(self) -> None:
        factory = FakeFactory(delay=0.1)
        disp, _, _ = _dispatcher(_config(*ALL_KINDS), factory)
        loop = asyncio.get_running_loop()
        start = loop.time()
        await disp.dispatch("all", _msg())
        assert loop.time() - start < 0.4

    async def test_success_result_recorded(self) -> None:
        disp, _, _ = _dispatcher(_config(ChannelKind.TEAMS))
        outcomes = await disp.dispatch("all", _msg())
        assert outcomes[0].result == "teams-ok"
        assert outcomes[0].error is None

    async def test_message_severity_metadata_forwarded(self) -> None:
        disp, factory, _ = _dispatcher(_config(ChannelKind.SLACK))
        meta = Metadata(instance="web-1")
        await disp.dispatch("all", _msg(), "resolved", meta)
        message, severity, metadata = factory.built[0].sent[0]
        assert message.title == "High CPU"
        assert severity == "resolved"
        assert metadata is meta


# ── Sender cache ────────────────────────────────────────────────


class TestSenderCache:
    async def test_sender_reused_while_config_unchanged(self) -> None:
        disp, factory, _ = _dispatcher(_config(ChannelKind.EMAIL))
        await disp.dispatch("all", _msg())
        await disp.dispatch("all", _msg())
        assert len(factory.for_kind(ChannelKind.EMAIL)) == 1

    async def test_sender_rebuilt_when_its_config_changes(self) -> None:
        disp, factory, store = _dispatcher(_config(ChannelKind.EMAIL, ChannelKind.SLACK))
        await disp.dispatch("all", _msg())

        store.update(
            {
                "channels": {
                    "email": {"enabled": True, "smtp": {"host": "smtp.new.example"}},
                    "slack": {"enabled": True},
                }
            }
        )
        await disp.refresh()
        await disp.dispatch("all", _msg())

        emails = factory.for_kind(ChannelKind.EMAIL)
        assert len(emails) == 2
        assert emails[0].closed is True
        assert len(factory.for_kind(ChannelKind.SLACK)) == 1

    async def test_rebuild_without_refresh_retires_old_sender(self) -> None:
        disp, factory, store = _dispatcher(_config(ChannelKind.EMAIL))
        await disp.dispatch("all", _msg())
        store.update({"channels": {"email": {"enabled": True, "to": ["new@example.com"]}}})
        await disp.dispatch("all", _msg())

        old, new = factory.for_kind(ChannelKind.EMAIL)
        assert old.closed is False
        await disp.refresh()
        assert old.closed is True
        assert new.closed is False

    async def test_config_swap_keeps_in_flight_sender_open(self) -> None:
        factory = FakeFactory(delay=0.2)
        disp, _, store = _dispatcher(_config(ChannelKind.SLACK), factory)

        task = asyncio.create_task(disp.dispatch("all", _msg()))
        await asyncio.sleep(0.05)
        store.update({"channels": {"slack": {"enabled": True, "username": "relay-bot"}}})
        await disp.refresh()

        old = factory.built[0]
        assert old.closed is False

        outcomes = await task
        assert outcomes[0].success is True
        assert old.closed is True

    async def test_retired_sender_closed_after_last_delivery(self) -> None:
        factory = FakeFactory(delay=0.1)
        disp, _, store = _dispatcher(_config(ChannelKind.EMAIL), factory)

        first = asyncio.create_task(disp.dispatch("all", _msg()))
        second = asyncio.create_task(disp.dispatch("all", _msg()))
        await asyncio.sleep(0.02)
        store.update({"channels": {"email": {"enabled": True, "to": ["new@example.com"]}}})
        await disp.refresh()

        results = await asyncio.gather(first, second)
        assert all(outcomes[0].success for outcomes in results)
        assert len(factory.built) == 1
        assert factory.built[0].closed is True

    async def test_close_closes_busy_retired_sender(self) -> None:
        factory = FakeFactory(delay=0.1)
        disp, _, store = _dispatcher(_config(ChannelKind.TEAMS), factory)

        task = asyncio.create_task(disp.dispatch("all", _msg()))
        await asyncio.sleep(0.02)
        store.update({"channels": {"teams": {"enabled": True, "title": "Ops"}}})
        await disp.refresh()
        await disp.close()
        await task

        assert factory.built[0].closed is True

    async def test_close_closes_all(self) -> None:
        disp, factory, _ = _dispatcher(_config(ChannelKind.SLACK, ChannelKind.WEBHOOK))
        await disp.dispatch("all", _msg())
        await disp.close()
        assert all(ch.closed for ch in factory.built)

    async def test_close_empty(self) -> None:
        disp, _, _ = _dispatcher(_config())
        await disp.close()  # should not raise


# ── Decision logging ────────────────────────────────────────────


class TestDecisionLogging:
    async def test_decision_logged_even_when_nothing_enabled(self) -> None:
        disp, _, _ = _dispatcher(_config())
        with patch("alert_relay.notify.dispatcher.decision_logger") as mock_log:
            await disp.dispatch("all", _msg(), "critical", Metadata(service="api"))
        mock_log.info.assert_called_once()
        call_kwargs = mock_log.info.call_args[1]
        assert mock_log.info.call_args[0][0] == "dispatch"
        assert call_kwargs["severity"] == "critical"
        assert call_kwargs["channels"] == []
        assert call_kwargs["metadata"] == {"service": "api"}
