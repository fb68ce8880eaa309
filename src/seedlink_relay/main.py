"""Main entry point for the Seedlink Relay server."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Mapping
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, Any

import structlog
from websockets.asyncio.server import serve
from websockets.exceptions import ConnectionClosed

from seedlink_relay.adapters.northbound.websocket.connection import ClientConnection
from seedlink_relay.adapters.upstream.base import SourceFactory, create_channel_source
from seedlink_relay.application.dispatcher import CommandDispatcher
from seedlink_relay.application.liveness import LivenessMonitor
from seedlink_relay.application.registry import ConnectionRegistry
from seedlink_relay.config.loader import ConfigurationError, load_config
from seedlink_relay.domain.model.channels import Channel, Selector
from seedlink_relay.domain.model.messages import WELCOME_MESSAGE, encode_outbound
from seedlink_relay.observability.logging import LogContext, setup_logging

if TYPE_CHECKING:
    from pathlib import Path

    from websockets.asyncio.server import Server, ServerConnection

    from seedlink_relay.config.schema import RelayConfig

logger = structlog.get_logger(__name__)


class RelayState(Enum):
    """Lifecycle state of the relay server."""

    STARTING = "starting"
    RUNNING = "running"
    CLOSING = "closing"
    CLOSED = "closed"


class RelayServer:
    """Main orchestrator for the relay.

    Coordinates the lifecycle of:
    - Channels and their upstream sources
    - The WebSocket listener and client connections
    - The command dispatcher
    - The heartbeat liveness monitor
    """

    def __init__(
        self,
        config: RelayConfig,
        *,
        source_factory: SourceFactory = create_channel_source,
    ) -> None:
        self.config = config
        self._source_factory = source_factory
        self._state = RelayState.STARTING
        self._shutdown_event = asyncio.Event()
        self._server: Server | None = None
        self._registry = ConnectionRegistry()
        self._dispatcher = CommandDispatcher(self._registry)
        self._monitor = LivenessMonitor(
            self._registry,
            interval_s=config.server.heartbeat_interval_ms / 1000,
            on_evict=self._evict,
        )

    @property
    def state(self) -> RelayState:
        """Return the lifecycle state."""
        return self._state

    @property
    def registry(self) -> ConnectionRegistry:
        """Return the connection registry."""
        return self._registry

    @property
    def monitor(self) -> LivenessMonitor:
        """Return the liveness monitor."""
        return self._monitor

    @property
    def port(self) -> int | None:
        """Return the port the listener is bound to."""
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return int(sock.getsockname()[1])
        return None

    async def start(self) -> None:
        """Start the relay.

        Raises:
            ConfigurationError: If a channel cannot be built from configuration
            RuntimeError: If the relay was already started
        """
        if self._state is not RelayState.STARTING or self._server is not None:
            raise RuntimeError(f"Cannot start relay in state {self._state.value}")

        logger.info(
            "Starting Seedlink Relay",
            name=self.config.server.name,
            host=self.config.server.host,
            port=self.config.server.port,
        )

        self._init_channels()
        await self._init_listener()
        self._monitor.start()
        self._state = RelayState.RUNNING

        logger.info("Seedlink Relay started", port=self.port, channels=len(self.config.channels))

    def _init_channels(self) -> None:
        """Create every configured channel with its (sleeping) source."""
        for channel_config in self.config.channels:
            try:
                source = self._source_factory(
                    channel_config, partial(self.broadcast, channel_config.name)
                )
            except ConfigurationError:
                raise
            except Exception as e:
                raise ConfigurationError(
                    f"Cannot create source for channel '{channel_config.name}': {e}"
                ) from e

            self._registry.add_channel(
                Channel(
                    name=channel_config.name,
                    selectors=tuple(Selector.from_config(s) for s in channel_config.selectors),
                    source=source,
                )
            )
            logger.info(
                "Channel configured",
                channel=channel_config.name,
                source=channel_config.source.type,
                selectors=len(channel_config.selectors),
            )

    async def _init_listener(self) -> None:
        """Bind the WebSocket listener."""
        self._server = await serve(
            self._handle_connection,
            self.config.server.host,
            self.config.server.port,
            ping_interval=None,
            max_size=self.config.server.max_message_bytes,
        )

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        """Serve one client from accept until close."""
        if self._state is not RelayState.RUNNING:
            return

        connection = ClientConnection(
            websocket,
            debug=self.config.server.debug,
            queue_size=self.config.server.outbound_queue_size,
        )
        self._registry.open(connection)
        connection.start()
        connection.send(WELCOME_MESSAGE)

        logger.info(
            "Client connected",
            connection_id=connection.connection_id,
            remote=connection.remote_address,
            connections=len(self._registry.connections),
        )

        try:
            async for frame in websocket:
                with LogContext(connection_id=connection.connection_id):
                    self._dispatcher.handle(connection, frame)
        except ConnectionClosed:
            pass
        finally:
            self._drop(connection)

    def _drop(self, connection: ClientConnection) -> None:
        """Forget a connection closed by either side."""
        connection.discard()
        if self._registry.remove_everywhere(connection):
            logger.info(
                "Client disconnected",
                connection_id=connection.connection_id,
                dropped_frames=connection.dropped_frames,
            )

    def _evict(self, connection: ClientConnection) -> None:
        """Force-close a connection that missed a heartbeat."""
        logger.info(
            "Evicting unresponsive client",
            connection_id=connection.connection_id,
            remote=connection.remote_address,
        )
        connection.terminate()
        self._registry.remove_everywhere(connection)

    def broadcast(self, channel: str, record: Mapping[str, Any]) -> int:
        """Fan a record out to every subscriber of a channel.

        Returns:
            Number of connections the record was queued for
        """
        members = self._registry.members_of(channel)
        if not members:
            return 0

        frame = encode_outbound(record)
        return sum(1 for connection in members if connection.send_frame(frame))

    async def stop(self) -> None:
        """Close the relay immediately, without draining pending frames."""
        if self._state in (RelayState.CLOSING, RelayState.CLOSED):
            return

        logger.info("Stopping Seedlink Relay", connections=len(self._registry.connections))
        self._state = RelayState.CLOSING

        # Stop accepting before the open connections are torn down
        if self._server is not None:
            self._server.close(close_connections=False)

        await self._monitor.stop()

        for connection in self._registry.connections:
            connection.terminate()
            self._registry.remove_everywhere(connection)

        if self._server is not None:
            await self._server.wait_closed()
            self._server = None

        await asyncio.gather(
            *(channel.source.close() for channel in self._registry.channels if channel.source),
            return_exceptions=True,
        )

        self._state = RelayState.CLOSED
        logger.info("Seedlink Relay stopped")

    async def run_until_shutdown(self) -> None:
        """Run until shutdown is requested."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request shutdown (signal handler)."""
        self._shutdown_event.set()


async def run_relay(config_path: Path, override_path: Path | None = None) -> None:
    """Main entry point for running the relay."""
    setup_logging()

    config = load_config(config_path, override_path=override_path)

    relay = RelayServer(config)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, relay.request_shutdown)

    try:
        await relay.start()
        await relay.run_until_shutdown()
    finally:
        await relay.stop()


def main() -> None:
    """CLI entry point - delegates to typer app."""
    from seedlink_relay.cli.app import app  # noqa: PLC0415

    app()


if __name__ == "__main__":
    main()
