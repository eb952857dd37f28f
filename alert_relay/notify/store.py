"""Configuration store — holds the live NotificationsConfig and persists updates.

The live config is never mutated in place. ``update`` builds a complete new
``NotificationsConfig`` and swaps the reference, so a dispatch that grabbed
a snapshot keeps seeing a consistent tree.
"""

from __future__ import annotations

import abc
import json
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pydantic
import structlog
import yaml

from alert_relay.core.config import NotificationsConfig
from alert_relay.notify.exceptions import ConfigPersistError, ValidationError

logger = structlog.get_logger(__name__)

_MASK = "**********"


class ConfigStore(abc.ABC):
    """Holds the current config; subclasses supply persistence."""

    def __init__(self, config: NotificationsConfig | None = None) -> None:
        self._config = config if config is not None else self.load()
        self._write_lock = threading.Lock()

    def get(self) -> NotificationsConfig:
        """Return the current config snapshot."""
        return self._config

    def update(self, partial: Mapping[str, Any]) -> NotificationsConfig:
        """Shallow-merge ``partial`` into the config and persist it.

        Top-level keys replace the current values wholesale (a ``channels``
        key replaces every channel block). Persist failures are logged and
        do not roll back the in-memory change.

        Raises:
            ValidationError: the merged document is not a valid config.
        """
        with self._write_lock:
            current = self._config
            merged = {**current.to_document(reveal_secrets=True), **dict(partial)}
            try:
                updated = NotificationsConfig.model_validate(merged)
            except pydantic.ValidationError as exc:
                raise ValidationError(f"invalid notifications config: {exc}") from exc
            updated = _keep_masked_password(updated, current)
            self._config = updated

        try:
            self.save(updated)
        except ConfigPersistError:
            logger.exception("config_persist_failed")
        return updated

    @abc.abstractmethod
    def load(self) -> NotificationsConfig:
        """Read the persisted config, falling back to defaults."""

    @abc.abstractmethod
    def save(self, config: NotificationsConfig) -> None:
        """Persist ``config``. Raises ConfigPersistError on failure."""


class MemoryConfigStore(ConfigStore):
    """Non-persistent store for tests and embedding."""

    def __init__(self, config: NotificationsConfig | None = None) -> None:
        self.saved: list[NotificationsConfig] = []
        super().__init__(config)

    def load(self) -> NotificationsConfig:
        return NotificationsConfig()

    def save(self, config: NotificationsConfig) -> None:
        self.saved.append(config)


class FileConfigStore(ConfigStore):
    """YAML file store with a JSON sibling as read fallback.

    The file holds ``{"notifications": {...}}``; a bare notifications
    document without the wrapper key is accepted on read.
    """

    def __init__(self, path: str | Path, config: NotificationsConfig | None = None) -> None:
        self._path = Path(path)
        super().__init__(config)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> NotificationsConfig:
        json_path = self._path.with_suffix(".json")
        try:
            if self._path.exists():
                with open(self._path) as f:
                    raw = yaml.safe_load(f)
                logger.info("config_loaded", path=str(self._path))
            elif json_path.exists():
                with open(json_path) as f:
                    raw = json.load(f)
                logger.info("config_loaded", path=str(json_path), fallback="json")
            else:
                logger.warning("config_missing_using_defaults", path=str(self._path))
                return NotificationsConfig()
            return NotificationsConfig.model_validate(_unwrap(raw))
        except (OSError, ValueError, yaml.YAMLError):
            # pydantic.ValidationError is a ValueError
            logger.exception("config_load_failed", path=str(self._path))
            return NotificationsConfig()

    def save(self, config: NotificationsConfig) -> None:
        document = {"notifications": config.to_document(reveal_secrets=True)}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            with open(tmp_path, "w") as f:
                yaml.safe_dump(document, f, indent=2, sort_keys=False, allow_unicode=True)
            tmp_path.replace(self._path)
        except OSError as exc:
            raise ConfigPersistError(f"failed to write {self._path}: {exc}") from exc
        logger.info("config_saved", path=str(self._path))


def _unwrap(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return {}
    inner = raw.get("notifications")
    if isinstance(inner, dict):
        return inner
    return raw


def _keep_masked_password(
    updated: NotificationsConfig, current: NotificationsConfig
) -> NotificationsConfig:
    """Keep the stored SMTP password when a masked value is written back."""
    auth = updated.channels.email.smtp.auth
    if auth.password.get_secret_value() != _MASK:
        return updated
    old_auth = current.channels.email.smtp.auth
    channels = updated.channels
    email = channels.email
    smtp = email.smtp.model_copy(
        update={"auth": auth.model_copy(update={"password": old_auth.password})}
    )
    return updated.model_copy(
        update={
            "channels": channels.model_copy(
                update={"email": email.model_copy(update={"smtp": smtp})}
            )
        }
    )
