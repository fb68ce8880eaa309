"""Command dispatcher for client frames.

Validates one client frame at a time and executes the requested
operations against the connection registry. Replies go only to the
connection that sent the frame.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from seedlink_relay.domain.errors import ProtocolError, UnknownChannelError
from seedlink_relay.domain.model.commands import (
    Command,
    Info,
    ListChannels,
    Subscribe,
    Unsubscribe,
    parse_commands,
)

if TYPE_CHECKING:
    from seedlink_relay.adapters.northbound.websocket.connection import ClientConnection
    from seedlink_relay.application.registry import ConnectionRegistry

logger = structlog.get_logger(__name__)


class CommandDispatcher:
    """Executes client commands against the registry.

    A frame with an unknown key is rejected as a whole. Commands of a
    valid frame run independently: an unknown channel in one does not
    prevent the others from executing.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    def handle(self, connection: ClientConnection, frame: str | bytes) -> None:
        """Handle one frame received from a connection.

        Never raises: every failure becomes an error reply to the sender.
        """
        try:
            commands = parse_commands(frame)
        except ProtocolError as e:
            logger.debug(
                "Rejected client frame",
                connection_id=connection.connection_id,
                error=str(e),
            )
            connection.send(e)
            return

        for command in commands:
            try:
                self.execute(connection, command)
            except UnknownChannelError as e:
                logger.debug(
                    "Unknown channel requested",
                    connection_id=connection.connection_id,
                    channel=e.channel,
                )
                connection.send(e)
            except Exception as e:
                logger.exception(
                    "Command failed",
                    connection_id=connection.connection_id,
                    command=type(command).__name__,
                )
                connection.send(e)

    def execute(self, connection: ClientConnection, command: Command) -> None:
        """Execute a single parsed command.

        Raises:
            UnknownChannelError: If subscribe/unsubscribe names an unknown channel
        """
        match command:
            case Subscribe(channel=channel):
                self._registry.add(channel, connection)
            case Unsubscribe(channel=channel):
                self._registry.remove(channel, connection)
            case Info(channel=channel):
                # Unknown channels get no reply
                if self._registry.exists(channel):
                    connection.send(self._registry.get_channel(channel).describe_selectors())
            case ListChannels():
                connection.send(" ".join(self._registry.channel_names()))
