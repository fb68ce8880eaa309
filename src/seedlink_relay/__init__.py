"""Seedlink Relay - Broadcasting unpacked Seedlink data over WebSockets.

This package provides a relay server that:
- Holds one upstream source per configured channel
- Lets WebSocket clients subscribe and unsubscribe from channels
- Fans out every upstream record to the channel's subscribers
- Evicts unresponsive clients with a ping/pong heartbeat
"""

__version__ = "1.1.1"

__author__ = "Seedlink Relay Team"

from seedlink_relay.domain.model.channels import Channel, Selector

__all__ = [
    "Channel",
    "Selector",
    "__version__",
]
