"""Shared enums for notification routing."""

from __future__ import annotations

from enum import StrEnum


class Severity(StrEnum):
    """Fixed severity vocabulary that drives channel styling."""

    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"
    RESOLVED = "resolved"

    @classmethod
    def parse(cls, value: object) -> Severity:
        """Map any input to a severity; unknown values fall back to INFO."""
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.INFO


class ChannelKind(StrEnum):
    """Destination kinds, declared in dispatch order."""

    SLACK = "slack"
    TEAMS = "teams"
    DISCORD = "discord"
    EMAIL = "email"
    WEBHOOK = "webhook"


ALL_CHANNELS = "all"

# Selector names accepted in addition to the kind values themselves.
_SELECTOR_ALIASES: dict[str, ChannelKind] = {
    "chat": ChannelKind.SLACK,
}


def resolve_selector(selector: str | None) -> ChannelKind | None:
    """Resolve a channel selector to a kind.

    Returns None for "all" (or an empty selector) meaning every enabled
    channel. Raises ValueError for names that match no channel kind.
    """
    if selector is None:
        return None
    name = selector.strip().lower()
    if not name or name == ALL_CHANNELS:
        return None
    if name in _SELECTOR_ALIASES:
        return _SELECTOR_ALIASES[name]
    try:
        return ChannelKind(name)
    except ValueError:
        raise ValueError(f"unknown channel: {selector}") from None
