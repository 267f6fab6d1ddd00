"""Listener domain exceptions."""

from __future__ import annotations


class WatchError(Exception):
    """Base for listener domain errors."""

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, object] | None = None,
        original_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}
        self.original_error = original_error


class WatchConfigurationError(WatchError):
    """Config validation or load failure."""


class ConnectionSetupError(WatchError):
    """Could not open the accessibility bus or register for events."""


class TransportError(WatchError):
    """An inbound message could not be read from the bus."""


class RemoteObjectError(WatchError):
    """A remote object handle could not be built."""
