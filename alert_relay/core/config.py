"""Pydantic settings and notification channel configuration models."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    SerializationInfo,
    field_serializer,
    field_validator,
)

from alert_relay.core.types import ChannelKind

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

DEFAULT_ENDPOINT_TIMEOUT_MS = 5000


# ── Notification channels ───────────────────────────────────────


class SlackConfig(BaseModel):
    """Slack-style incoming webhook."""

    enabled: bool = False
    webhook_url: str = ""
    default_channel: str = "#alerts"
    username: str = "DevOps Monitor"
    icon_emoji: str = ":bell:"


class TeamsConfig(BaseModel):
    """Microsoft Teams connector webhook."""

    enabled: bool = False
    webhook_url: str = ""
    title: str = "DevOps Monitor Alert"


class DiscordConfig(BaseModel):
    """Discord webhook."""

    enabled: bool = False
    webhook_url: str = ""
    username: str = "DevOps Monitor"
    avatar_url: str = ""


class SmtpAuthConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user: str = ""
    password: SecretStr = Field(default=SecretStr(""), alias="pass")

    @field_serializer("password")
    def _dump_password(self, value: SecretStr, info: SerializationInfo) -> str:
        # Masked unless the caller is persisting the config.
        if info.context and info.context.get("reveal_secrets"):
            return value.get_secret_value()
        return str(value)


class SmtpConfig(BaseModel):
    """SMTP server settings. ``secure`` selects implicit TLS."""

    host: str = "localhost"
    port: int = 587
    secure: bool = False
    auth: SmtpAuthConfig = SmtpAuthConfig()


class EmailConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = False
    smtp: SmtpConfig = SmtpConfig()
    from_address: str = Field(
        default="alerts@devops-monitoring.local", alias="from"
    )
    to: list[str] = ["admin@devops-monitoring.local"]

    @field_validator("to", mode="before")
    @classmethod
    def _split_recipients(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [addr.strip() for addr in value.split(",") if addr.strip()]
        return value


class WebhookEndpoint(BaseModel):
    """A single generic webhook target."""

    name: str = ""
    url: str
    headers: dict[str, str] = {}
    timeout_ms: int = Field(
        default=DEFAULT_ENDPOINT_TIMEOUT_MS,
        validation_alias=AliasChoices("timeout_ms", "timeout"),
        serialization_alias="timeout",
    )

    @field_validator("headers", mode="before")
    @classmethod
    def _none_headers(cls, value: Any) -> Any:
        return value or {}

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def _default_timeout(cls, value: Any) -> Any:
        return value or DEFAULT_ENDPOINT_TIMEOUT_MS

    @property
    def label(self) -> str:
        return self.name or self.url


class WebhookConfig(BaseModel):
    enabled: bool = False
    endpoints: list[WebhookEndpoint] = []


ChannelConfig = SlackConfig | TeamsConfig | DiscordConfig | EmailConfig | WebhookConfig


class ChannelsConfig(BaseModel):
    """Per-kind channel configuration, keyed the way it is persisted."""

    slack: SlackConfig = SlackConfig()
    teams: TeamsConfig = TeamsConfig()
    discord: DiscordConfig = DiscordConfig()
    email: EmailConfig = EmailConfig()
    webhook: WebhookConfig = WebhookConfig()

    def for_kind(self, kind: ChannelKind) -> ChannelConfig:
        return getattr(self, kind.value)


class NotificationsConfig(BaseModel):
    """Root of the persisted notification configuration."""

    enabled: bool = True
    channels: ChannelsConfig = ChannelsConfig()

    def enabled_kinds(self) -> list[ChannelKind]:
        """Channel kinds that would be attempted, in dispatch order."""
        if not self.enabled:
            return []
        return [kind for kind in ChannelKind if self.channels.for_kind(kind).enabled]

    def to_document(self, reveal_secrets: bool = False) -> dict[str, Any]:
        """Plain-dict form using the persisted key names (``from``, ``pass``)."""
        return self.model_dump(
            mode="json",
            by_alias=True,
            context={"reveal_secrets": reveal_secrets},
        )


# ── Service settings ────────────────────────────────────────────


class ServerConfig(BaseModel):
    """HTTP listener configuration."""

    host: str = "0.0.0.0"
    port: int = 5001


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(BaseModel):
    """Root settings container."""

    server: ServerConfig = ServerConfig()
    logging: LoggingConfig = LoggingConfig()
    notifications_path: Path = Path("config/notifications.yaml")


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
