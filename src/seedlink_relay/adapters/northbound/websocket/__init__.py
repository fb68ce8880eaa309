"""WebSocket adapter for downstream clients."""

from seedlink_relay.adapters.northbound.websocket.connection import ClientConnection

__all__ = ["ClientConnection"]
