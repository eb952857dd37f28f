"""Tests for alert_relay/core/config.py — YAML loading, defaults, aliases, secrets."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from alert_relay.core.config import (
    EmailConfig,
    LoggingConfig,
    NotificationsConfig,
    ServerConfig,
    Settings,
    WebhookEndpoint,
    get_settings,
    load_settings,
    reset_settings,
)
from alert_relay.core.types import ChannelKind


@pytest.fixture(autouse=True)
def _clean_settings() -> None:
    """Reset the global settings cache before each test."""
    reset_settings()


class TestDefaults:
    """Settings should have sensible defaults when no YAML is provided."""

    def test_default_server_config(self) -> None:
        cfg = ServerConfig()
        assert cfg.host == "0.0.0.0"
        assert cfg.port == 5001

    def test_default_logging_config(self) -> None:
        cfg = LoggingConfig()
        assert cfg.level == "INFO"
        assert cfg.format == "json"

    def test_default_settings(self) -> None:
        s = Settings()
        assert s.server.port == 5001
        assert s.notifications_path == Path("config/notifications.yaml")

    def test_default_notifications_all_channels_disabled(self) -> None:
        cfg = NotificationsConfig()
        assert cfg.enabled is True
        for kind in ChannelKind:
            assert cfg.channels.for_kind(kind).enabled is False
        assert cfg.enabled_kinds() == []

    def test_default_channel_placeholders(self) -> None:
        cfg = NotificationsConfig()
        assert cfg.channels.slack.default_channel == "#alerts"
        assert cfg.channels.slack.icon_emoji == ":bell:"
        assert cfg.channels.teams.title == "DevOps Monitor Alert"
        assert cfg.channels.discord.username == "DevOps Monitor"
        assert cfg.channels.email.smtp.port == 587
        assert cfg.channels.email.from_address == "alerts@devops-monitoring.local"
        assert cfg.channels.email.to == ["admin@devops-monitoring.local"]
        assert cfg.channels.webhook.endpoints == []


class TestEnabledKinds:
    def test_enabled_kinds_in_dispatch_order(self) -> None:
        cfg = NotificationsConfig.model_validate(
            {
                "channels": {
                    "webhook": {"enabled": True},
                    "slack": {"enabled": True},
                    "email": {"enabled": True},
                }
            }
        )
        assert cfg.enabled_kinds() == [
            ChannelKind.SLACK,
            ChannelKind.EMAIL,
            ChannelKind.WEBHOOK,
        ]

    def test_global_disable_wins(self) -> None:
        cfg = NotificationsConfig.model_validate(
            {"enabled": False, "channels": {"slack": {"enabled": True}}}
        )
        assert cfg.enabled_kinds() == []


class TestEmailConfig:
    def test_persisted_key_names(self) -> None:
        cfg = EmailConfig.model_validate(
            {
                "enabled": True,
                "from": "ops@example.com",
                "smtp": {"auth": {"user": "ops", "pass": "hunter2"}},
            }
        )
        assert cfg.from_address == "ops@example.com"
        assert cfg.smtp.auth.password.get_secret_value() == "hunter2"

    def test_recipients_from_comma_string(self) -> None:
        cfg = EmailConfig.model_validate({"to": "a@example.com, b@example.com"})
        assert cfg.to == ["a@example.com", "b@example.com"]

    def test_password_masked_by_default(self) -> None:
        cfg = NotificationsConfig.model_validate(
            {"channels": {"email": {"smtp": {"auth": {"user": "u", "pass": "secret"}}}}}
        )
        doc = cfg.to_document()
        assert doc["channels"]["email"]["smtp"]["auth"]["pass"] == "**********"
        assert doc["channels"]["email"]["from"] == "alerts@devops-monitoring.local"

    def test_password_revealed_for_persistence(self) -> None:
        cfg = NotificationsConfig.model_validate(
            {"channels": {"email": {"smtp": {"auth": {"user": "u", "pass": "secret"}}}}}
        )
        doc = cfg.to_document(reveal_secrets=True)
        assert doc["channels"]["email"]["smtp"]["auth"]["pass"] == "secret"

    def test_document_round_trip(self) -> None:
        cfg = NotificationsConfig.model_validate(
            {"channels": {"email": {"enabled": True, "smtp": {"auth": {"pass": "pw"}}}}}
        )
        again = NotificationsConfig.model_validate(cfg.to_document(reveal_secrets=True))
        assert again == cfg


class TestWebhookEndpoint:
    def test_default_timeout(self) -> None:
        ep = WebhookEndpoint(url="https://example.com/hook")
        assert ep.timeout_ms == 5000
        assert ep.headers == {}

    def test_timeout_key_alias(self) -> None:
        ep = WebhookEndpoint.model_validate({"url": "https://x", "timeout": 1500})
        assert ep.timeout_ms == 1500

    def test_timeout_persisted_under_timeout_key(self) -> None:
        ep = WebhookEndpoint(url="https://x", timeout_ms=1500)
        assert ep.model_dump(by_alias=True)["timeout"] == 1500

    def test_zero_timeout_falls_back_to_default(self) -> None:
        ep = WebhookEndpoint.model_validate({"url": "https://x", "timeout": 0})
        assert ep.timeout_ms == 5000

    def test_null_headers(self) -> None:
        ep = WebhookEndpoint.model_validate({"url": "https://x", "headers": None})
        assert ep.headers == {}

    def test_label_prefers_name(self) -> None:
        assert WebhookEndpoint(name="pager", url="https://x").label == "pager"
        assert WebhookEndpoint(url="https://x").label == "https://x"


class TestYamlLoading:
    """Settings should load correctly from YAML files."""

    def test_load_from_yaml(self, tmp_path: Path) -> None:
        config_data = {
            "server": {"host": "127.0.0.1", "port": 9000},
            "logging": {"level": "DEBUG", "format": "console"},
            "notifications_path": str(tmp_path / "n.yaml"),
        }
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump(config_data))

        s = load_settings(config_file)
        assert s.server.host == "127.0.0.1"
        assert s.server.port == 9000
        assert s.logging.format == "console"
        assert s.notifications_path == tmp_path / "n.yaml"

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        s = load_settings(tmp_path / "nonexistent.yaml")
        assert s.server.port == 5001

    def test_empty_yaml_uses_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")
        s = load_settings(config_file)
        assert s.logging.level == "INFO"

    def test_get_settings_caches(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(yaml.dump({"server": {"port": 7000}}))
        load_settings(config_file)
        assert get_settings().server.port == 7000
        assert get_settings() is get_settings()
