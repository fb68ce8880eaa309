"""Client command models.

A client frame is a JSON object whose keys select operations:

    {"subscribe": "NL.HGN", "unsubscribe": "NL.OPLO", "info": "NL.HGN", "channels": true}

Frames are validated strictly: a single unrecognized key rejects the whole
frame before anything is executed. Valid frames are converted into a list of
command objects in the fixed execution order subscribe, unsubscribe, info,
channels.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from seedlink_relay.domain.errors import ProtocolError

# Recognized operations, in the order they are advertised to clients
OPERATIONS: tuple[str, ...] = ("subscribe", "unsubscribe", "channels", "info")

INVALID_OPERATION_MESSAGE = "Invalid operation requested. Expected: " + ", ".join(OPERATIONS)


@dataclass(frozen=True)
class Subscribe:
    """Add the connection to a channel's subscribers."""

    channel: Any


@dataclass(frozen=True)
class Unsubscribe:
    """Remove the connection from a channel's subscribers."""

    channel: Any


@dataclass(frozen=True)
class Info:
    """Describe the selectors of a channel."""

    channel: Any


@dataclass(frozen=True)
class ListChannels:
    """List every configured channel name."""


Command = Subscribe | Unsubscribe | Info | ListChannels


class CommandMessage(BaseModel):
    """Schema of one client frame.

    Values are taken as sent: a channel that is not a configured name
    (a number, for instance) fails only its own command, and any truthy
    `channels` value lists the channels.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    subscribe: Any = None
    unsubscribe: Any = None
    channels: Any = None
    info: Any = None

    def to_commands(self) -> list[Command]:
        """Convert present (truthy) keys to commands in execution order."""
        commands: list[Command] = []
        if self.subscribe:
            commands.append(Subscribe(self.subscribe))
        if self.unsubscribe:
            commands.append(Unsubscribe(self.unsubscribe))
        if self.info:
            commands.append(Info(self.info))
        if self.channels:
            commands.append(ListChannels())
        return commands


def decode_frame(frame: str | bytes) -> dict[str, Any]:
    """Decode a raw frame into a JSON object.

    Raises:
        ProtocolError: If the frame is not valid JSON or not an object
    """
    try:
        payload = json.loads(frame)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(f"Invalid JSON message: {e}") from e

    if not isinstance(payload, dict):
        raise ProtocolError("Invalid message: expected a JSON object")

    return payload


def parse_commands(frame: str | bytes) -> list[Command]:
    """Parse and validate a client frame.

    Args:
        frame: Raw text or binary WebSocket frame

    Returns:
        Commands to execute, in execution order (possibly empty)

    Raises:
        ProtocolError: If the frame is malformed or contains an unknown key
    """
    try:
        message = CommandMessage.model_validate(decode_frame(frame))
    except ValidationError as e:
        # Only unrecognized keys can fail; values are checked per command
        raise ProtocolError(INVALID_OPERATION_MESSAGE) from e

    return message.to_commands()
