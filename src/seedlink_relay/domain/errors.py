"""Errors raised by the relay core.

All of them are recoverable and scoped to a single connection; the
startup-time ConfigurationError lives with the configuration loader.
"""

from __future__ import annotations

from typing import Any


class RelayError(Exception):
    """Base class for relay errors."""


class ProtocolError(RelayError):
    """A client frame could not be decoded or requested a disallowed operation."""


class UnknownChannelError(RelayError):
    """An operation referenced a channel that is not configured."""

    def __init__(self, channel: Any, action: str = "lookup") -> None:
        super().__init__(f"Invalid channel {action} requested: {channel}")
        self.channel = channel
        self.action = action


class TransportError(RelayError):
    """A frame or ping could not be written to a client transport."""
