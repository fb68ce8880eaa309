"""Upstream channel sources.

Sources own the upstream connection of one channel and publish unpacked
records to the relay.
"""

from seedlink_relay.adapters.upstream.base import (
    BaseChannelSource,
    ChannelSource,
    ExponentialBackoff,
    RecordCallback,
    create_channel_source,
    register_source_type,
    registered_source_types,
)
from seedlink_relay.adapters.upstream.simulated import SimulatedChannelSource

__all__ = [
    "BaseChannelSource",
    "ChannelSource",
    "ExponentialBackoff",
    "RecordCallback",
    "SimulatedChannelSource",
    "create_channel_source",
    "register_source_type",
    "registered_source_types",
]
