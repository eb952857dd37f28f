"""Exception hierarchy for notification dispatch."""

from __future__ import annotations


class RelayError(Exception):
    """Base exception for all relay errors."""


class ValidationError(RelayError):
    """Caller input is missing a required field or is malformed."""


class ChannelDeliveryError(RelayError):
    """A channel sender failed to deliver a notification."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(message)
        self.channel = channel


class EndpointDeliveryError(RelayError):
    """A single generic webhook endpoint failed."""

    def __init__(self, endpoint: str, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status = status


class ConfigPersistError(RelayError):
    """The updated configuration could not be written to the store."""
