"""Domain types for the notification dispatch subsystem."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from alert_relay.core.types import ChannelKind, Severity

DEFAULT_TITLE = "Alert"

# Body text may arrive under any of these keys; first non-empty wins.
_BODY_KEYS = ("message", "description", "body")


class Message(BaseModel):
    """Normalised alert text ready for formatting."""

    model_config = ConfigDict(frozen=True)

    title: str | None = None
    body: str | None = None

    @classmethod
    def from_payload(cls, value: Mapping[str, Any] | str) -> Message:
        """Build a Message from a request payload or a bare string."""
        if isinstance(value, str):
            return cls(body=value)
        body = next((value[k] for k in _BODY_KEYS if value.get(k)), None)
        return cls(
            title=_as_text(value.get("title")),
            body=_as_text(body),
        )

    @property
    def display_title(self) -> str:
        return self.title or DEFAULT_TITLE

    @property
    def text(self) -> str:
        return self.body or ""


class Metadata(BaseModel):
    """Optional context attached to a notification.

    Known keys drive extra fields in the formatted payloads; anything else
    is carried through untouched to the generic webhook payload.
    """

    model_config = ConfigDict(frozen=True, extra="allow", coerce_numbers_to_str=True)

    instance: str | None = None
    service: str | None = None
    component: str | None = None
    runbook_url: str | None = None
    channel: str | None = None
    status: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class EndpointResult(BaseModel):
    """Outcome of one generic webhook endpoint."""

    endpoint: str
    success: bool
    status: int | None = None
    error: str | None = None


class DeliveryOutcome(BaseModel):
    """Outcome of one channel attempt within a dispatch."""

    channel: ChannelKind
    success: bool
    result: Any = None
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Successes always carry ``result`` (possibly null); failures carry ``error``."""
        data = self.model_dump(mode="json", exclude_none=True)
        if self.success:
            data.setdefault("result", None)
        return data


class Alert(BaseModel):
    """One alert from an Alertmanager-compatible webhook."""

    model_config = ConfigDict(extra="allow")

    status: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or {}


class AlertBatch(BaseModel):
    """Alertmanager webhook body — only ``alerts`` is consumed."""

    model_config = ConfigDict(extra="allow")

    alerts: list[Alert] = Field(default_factory=list)

    @field_validator("alerts", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return value or []


def _as_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return value if isinstance(value, str) else str(value)


__all__ = [
    "Alert",
    "AlertBatch",
    "ChannelKind",
    "DeliveryOutcome",
    "EndpointResult",
    "Message",
    "Metadata",
    "Severity",
]
