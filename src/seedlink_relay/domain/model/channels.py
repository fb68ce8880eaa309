"""Channel domain models for Seedlink Relay.

A channel is a named stream backed by one upstream source. Each channel has:
- A unique name clients subscribe to
- The selectors (SEED stream identifiers) its source requests upstream
- The set of connections currently subscribed to it
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from seedlink_relay.adapters.upstream.base import ChannelSource
    from seedlink_relay.config.schema import SelectorConfig


@dataclass(frozen=True)
class Selector:
    """Upstream stream identifier: network, station, location and channel codes."""

    network: str
    station: str
    location: str
    channel: str

    @classmethod
    def from_config(cls, config: SelectorConfig) -> Selector:
        """Build a selector from its configuration model."""
        return cls(
            network=config.network,
            station=config.station,
            location=config.location,
            channel=config.channel,
        )

    def __str__(self) -> str:
        return ".".join((self.network, self.station, self.location, self.channel))


@dataclass(eq=False)
class Channel:
    """A configured channel and its subscriber set.

    Channels are created once at startup and live for the whole process.
    The subscriber set is mutated only through the ConnectionRegistry.
    """

    name: str
    selectors: tuple[Selector, ...] = ()
    source: ChannelSource | None = None
    subscribers: set[Any] = field(default_factory=set)

    def describe_selectors(self) -> str:
        """Render the selectors as a space-separated list of dotted identifiers."""
        return " ".join(str(selector) for selector in self.selectors)

    @property
    def subscriber_count(self) -> int:
        """Number of connections subscribed to this channel."""
        return len(self.subscribers)
