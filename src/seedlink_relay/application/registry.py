"""Connection registry for Seedlink Relay.

Tracks the open client connections and, per channel, the set of
connections subscribed to it. All mutation happens on the event loop
thread in synchronous calls, so membership changes never interleave.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import structlog

from seedlink_relay.domain.errors import UnknownChannelError

if TYPE_CHECKING:
    from seedlink_relay.adapters.northbound.websocket.connection import ClientConnection
    from seedlink_relay.domain.model.channels import Channel

logger = structlog.get_logger(__name__)


class ConnectionRegistry:
    """Owns the channel map and the subscriber set of every channel.

    Responsibilities:
    - Hold the channels created at startup
    - Track currently open connections
    - Add and remove subscriptions without duplicates
    - Wake a channel's source on its first subscriber and put it
      back to sleep when the last one leaves
    """

    def __init__(self, channels: Iterable[Channel] = ()) -> None:
        self._channels: dict[str, Channel] = {}
        self._connections: dict[str, ClientConnection] = {}
        for channel in channels:
            self.add_channel(channel)

    def add_channel(self, channel: Channel) -> None:
        """Register a channel.

        Raises:
            ValueError: If a channel with the same name is already registered
        """
        if channel.name in self._channels:
            raise ValueError(f"Channel '{channel.name}' is already registered")
        self._channels[channel.name] = channel

    def exists(self, channel: Any) -> bool:
        """Check whether a channel name has been configured."""
        return isinstance(channel, str) and channel in self._channels

    def get_channel(self, channel: Any, action: str = "lookup") -> Channel:
        """Return a channel by name.

        Raises:
            UnknownChannelError: If the channel is not configured (or not a string)
        """
        if not self.exists(channel):
            raise UnknownChannelError(channel, action)
        return self._channels[channel]

    def channel_names(self) -> list[str]:
        """Return all configured channel names, sorted."""
        return sorted(self._channels)

    @property
    def channels(self) -> list[Channel]:
        """Return all configured channels."""
        return list(self._channels.values())

    @property
    def connections(self) -> list[ClientConnection]:
        """Return a snapshot of the open connections."""
        return list(self._connections.values())

    def open(self, connection: ClientConnection) -> None:
        """Track a newly accepted connection."""
        self._connections[connection.connection_id] = connection

    def is_open(self, connection: ClientConnection) -> bool:
        """Check whether a connection is still tracked."""
        return self._connections.get(connection.connection_id) is connection

    def add(self, channel: Any, connection: ClientConnection) -> bool:
        """Subscribe a connection to a channel.

        Adding an existing member leaves the membership unchanged. Any
        subscribe restarts a channel source that stopped after exhausting
        its upstream retries.

        Returns:
            True if the connection was newly added

        Raises:
            UnknownChannelError: If the channel is not configured
        """
        target = self.get_channel(channel, "subscription")
        if connection in target.subscribers:
            self._restart_if_stopped(target)
            return False

        target.subscribers.add(connection)
        logger.debug(
            "Subscription added",
            connection_id=connection.connection_id,
            channel=channel,
            subscribers=target.subscriber_count,
        )
        if target.subscriber_count == 1:
            self._set_demand(target, True)
        else:
            self._restart_if_stopped(target)
        return True

    def remove(self, channel: Any, connection: ClientConnection) -> bool:
        """Unsubscribe a connection from a channel.

        Removing a non-member has no effect.

        Returns:
            True if the connection was a member

        Raises:
            UnknownChannelError: If the channel is not configured
        """
        target = self.get_channel(channel, "unsubscription")
        return self._discard(target, connection)

    def remove_everywhere(self, connection: ClientConnection) -> bool:
        """Remove a closed connection from every channel and stop tracking it.

        Returns:
            True if the connection was still tracked, False on repeated calls
        """
        was_open = self._connections.pop(connection.connection_id, None) is not None
        left = [
            channel.name
            for channel in self._channels.values()
            if self._discard(channel, connection)
        ]
        if was_open:
            logger.debug(
                "Connection removed from registry",
                connection_id=connection.connection_id,
                channels=left,
            )
        return was_open

    def members_of(self, channel: str) -> tuple[ClientConnection, ...]:
        """Return the connections subscribed to a channel.

        Raises:
            UnknownChannelError: If the channel is not configured
        """
        return tuple(self.get_channel(channel).subscribers)

    def channels_of(self, connection: ClientConnection) -> list[str]:
        """Return the sorted names of the channels a connection is subscribed to."""
        return sorted(
            channel.name for channel in self._channels.values() if connection in channel.subscribers
        )

    def get_statistics(self) -> dict[str, Any]:
        """Return connection and subscription counts."""
        return {
            "connections": len(self._connections),
            "subscribers": {
                name: channel.subscriber_count for name, channel in sorted(self._channels.items())
            },
        }

    def _discard(self, channel: Channel, connection: ClientConnection) -> bool:
        if connection not in channel.subscribers:
            return False

        channel.subscribers.discard(connection)
        logger.debug(
            "Subscription removed",
            connection_id=connection.connection_id,
            channel=channel.name,
            subscribers=channel.subscriber_count,
        )
        if channel.subscriber_count == 0:
            self._set_demand(channel, False)
        return True

    def _restart_if_stopped(self, channel: Channel) -> None:
        # A source that gave up upstream is woken again by any later subscribe
        if channel.source is not None and not channel.source.active:
            logger.info("Restarting stopped channel source", channel=channel.name)
            self._set_demand(channel, True)

    def _set_demand(self, channel: Channel, active: bool) -> None:
        if channel.source is None:
            return
        try:
            channel.source.set_demand(active)
        except Exception as e:
            logger.exception(
                "Channel source demand change failed",
                channel=channel.name,
                active=active,
                error=str(e),
            )
