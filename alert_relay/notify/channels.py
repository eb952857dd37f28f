"""Notification channels — Slack, Teams, Discord, email and generic webhooks.

Each channel formats the message for its destination and delivers it.
``deliver`` returns a channel-specific result on success and raises
:class:`ChannelDeliveryError` on failure; the dispatcher turns both into
``DeliveryOutcome`` records.
"""

from __future__ import annotations

import abc
import asyncio
import functools
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any

import aiohttp
import httpx
import structlog

from alert_relay.core.config import (
    DiscordConfig,
    EmailConfig,
    NotificationsConfig,
    SlackConfig,
    SmtpConfig,
    TeamsConfig,
    WebhookConfig,
    WebhookEndpoint,
)
from alert_relay.core.types import ChannelKind
from alert_relay.notify.exceptions import ChannelDeliveryError, EndpointDeliveryError
from alert_relay.notify.formatters import (
    format_discord,
    format_email,
    format_slack,
    format_teams,
    format_webhook,
)
from alert_relay.notify.types import EndpointResult, Message, Metadata

logger = structlog.get_logger(__name__)


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    kind: ChannelKind

    @abc.abstractmethod
    async def deliver(self, message: Message, severity: str, metadata: Metadata) -> Any:
        """Send a notification. Raises ChannelDeliveryError on failure."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


# ── Chat webhooks ───────────────────────────────────────────────


class JsonWebhookChannel(NotificationChannel):
    """Shared POST-a-JSON-payload delivery for chat webhooks."""

    def __init__(self, webhook_url: str) -> None:
        self._webhook_url = webhook_url
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    @abc.abstractmethod
    def build_payload(
        self, message: Message, severity: str, metadata: Metadata
    ) -> dict[str, Any]:
        """Format the channel-specific JSON body."""

    async def deliver(self, message: Message, severity: str, metadata: Metadata) -> Any:
        if not self._webhook_url:
            raise ChannelDeliveryError(self.kind, "webhook_url is not configured")

        payload = self.build_payload(message, severity, metadata)
        try:
            session = self._get_session()
            async with session.post(self._webhook_url, json=payload) as resp:
                status = resp.status
                body = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise ChannelDeliveryError(self.kind, str(exc) or type(exc).__name__) from exc

        if not 200 <= status < 300:
            logger.warning(
                "webhook_send_failed",
                channel=self.kind.value,
                status=status,
                body=body[:200],
            )
            raise ChannelDeliveryError(self.kind, f"HTTP {status}: {body[:200]}")

        logger.info("notification_sent", channel=self.kind.value, status=status)
        return body or None

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class SlackChannel(JsonWebhookChannel):
    """Slack incoming webhook with a colour-coded attachment."""

    kind = ChannelKind.SLACK

    def __init__(self, config: SlackConfig) -> None:
        super().__init__(config.webhook_url)
        self._config = config

    def build_payload(
        self, message: Message, severity: str, metadata: Metadata
    ) -> dict[str, Any]:
        return format_slack(message, severity, metadata, self._config)


class TeamsChannel(JsonWebhookChannel):
    kind = ChannelKind.TEAMS

    def __init__(self, config: TeamsConfig) -> None:
        super().__init__(config.webhook_url)
        self._config = config

    def build_payload(
        self, message: Message, severity: str, metadata: Metadata
    ) -> dict[str, Any]:
        return format_teams(message, severity, metadata, self._config)


class DiscordChannel(JsonWebhookChannel):
    kind = ChannelKind.DISCORD

    def __init__(self, config: DiscordConfig) -> None:
        super().__init__(config.webhook_url)
        self._config = config

    def build_payload(
        self, message: Message, severity: str, metadata: Metadata
    ) -> dict[str, Any]:
        return format_discord(message, severity, metadata, self._config)


# ── Email ───────────────────────────────────────────────────────


class SmtpTransport:
    """Blocking SMTP client; sends run in the default executor.

    ``secure`` selects implicit TLS (SMTP_SSL). Otherwise STARTTLS is used
    when the server offers it. Login happens only when a user is set.
    """

    def __init__(self, config: SmtpConfig, timeout: float = 30.0) -> None:
        self._config = config
        self._timeout = timeout

    @property
    def config(self) -> SmtpConfig:
        return self._config

    async def send(
        self, sender: str, recipients: list[str], subject: str, html: str
    ) -> dict[str, Any]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            functools.partial(self._send_sync, sender, recipients, subject, html),
        )

    def _send_sync(
        self, sender: str, recipients: list[str], subject: str, html: str
    ) -> dict[str, Any]:
        msg = MIMEMultipart("alternative")
        msg["From"] = sender
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        msg.attach(MIMEText(html, "html", "utf-8"))

        cfg = self._config
        smtp_cls = smtplib.SMTP_SSL if cfg.secure else smtplib.SMTP
        with smtp_cls(cfg.host, cfg.port, timeout=self._timeout) as server:
            server.ehlo()
            if not cfg.secure and server.has_extn("starttls"):
                server.starttls()
                server.ehlo()
            if cfg.auth.user:
                server.login(cfg.auth.user, cfg.auth.password.get_secret_value())
            refused = server.send_message(msg, from_addr=sender, to_addrs=recipients)

        return {
            "accepted": [r for r in recipients if r not in refused],
            "rejected": {r: str(err) for r, err in refused.items()},
        }


class EmailChannel(NotificationChannel):
    """Delivers an HTML email to every configured recipient."""

    kind = ChannelKind.EMAIL

    def __init__(self, config: EmailConfig, transport: SmtpTransport | None = None) -> None:
        self._config = config
        self._transport = transport or SmtpTransport(config.smtp)
        logger.info("email_transport_configured", host=config.smtp.host, port=config.smtp.port)

    @property
    def transport(self) -> SmtpTransport:
        return self._transport

    async def deliver(self, message: Message, severity: str, metadata: Metadata) -> Any:
        if not self._config.to:
            raise ChannelDeliveryError(self.kind, "no email recipients configured")

        content = format_email(message, severity, metadata)
        try:
            result = await self._transport.send(
                self._config.from_address, self._config.to, content.subject, content.html
            )
        except (smtplib.SMTPException, OSError) as exc:
            raise ChannelDeliveryError(self.kind, str(exc) or type(exc).__name__) from exc

        logger.info("notification_sent", channel=self.kind.value, recipients=len(self._config.to))
        return result

    async def close(self) -> None:
        # Connections are opened per send; nothing is held between sends.
        return None


# ── Generic webhooks ────────────────────────────────────────────


class WebhookChannel(NotificationChannel):
    """POSTs the uniform payload to every configured endpoint concurrently.

    Endpoint failures are recorded per endpoint; the channel itself only
    fails if something outside the per-endpoint handling breaks.
    """

    kind = ChannelKind.WEBHOOK

    def __init__(self, config: WebhookConfig) -> None:
        self._endpoints = list(config.endpoints)
        self._http: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient()
        return self._http

    async def deliver(
        self, message: Message, severity: str, metadata: Metadata
    ) -> list[EndpointResult]:
        payload = format_webhook(message, severity, metadata)
        return list(
            await asyncio.gather(
                *(self._deliver_endpoint(ep, payload) for ep in self._endpoints)
            )
        )

    async def _deliver_endpoint(
        self, endpoint: WebhookEndpoint, payload: dict[str, Any]
    ) -> EndpointResult:
        try:
            status = await self._post(endpoint, payload)
        except EndpointDeliveryError as exc:
            logger.warning(
                "endpoint_delivery_failed",
                endpoint=exc.endpoint,
                url=endpoint.url,
                status=exc.status,
                error=str(exc),
            )
            return EndpointResult(endpoint=exc.endpoint, success=False, error=str(exc))
        except Exception as exc:
            logger.exception(
                "endpoint_delivery_failed",
                endpoint=endpoint.label,
                url=endpoint.url,
            )
            return EndpointResult(
                endpoint=endpoint.label,
                success=False,
                error=str(exc) or type(exc).__name__,
            )
        return EndpointResult(endpoint=endpoint.label, success=True, status=status)

    async def _post(self, endpoint: WebhookEndpoint, payload: dict[str, Any]) -> int:
        try:
            response = await self._get_client().post(
                endpoint.url,
                json=payload,
                headers=endpoint.headers,
                timeout=endpoint.timeout_ms / 1000,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            code = exc.response.status_code
            raise EndpointDeliveryError(
                endpoint.label, f"endpoint returned {code}", status=code
            ) from exc
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise EndpointDeliveryError(
                endpoint.label, str(exc) or type(exc).__name__
            ) from exc
        return response.status_code

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None


def build_channel(kind: ChannelKind, config: NotificationsConfig) -> NotificationChannel:
    """Construct the sender for ``kind`` from its config block."""
    channels = config.channels
    if kind is ChannelKind.SLACK:
        return SlackChannel(channels.slack)
    if kind is ChannelKind.TEAMS:
        return TeamsChannel(channels.teams)
    if kind is ChannelKind.DISCORD:
        return DiscordChannel(channels.discord)
    if kind is ChannelKind.EMAIL:
        return EmailChannel(channels.email)
    if kind is ChannelKind.WEBHOOK:
        return WebhookChannel(channels.webhook)
    raise ValueError(f"unsupported channel kind: {kind}")
