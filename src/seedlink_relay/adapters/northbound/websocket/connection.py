"""Client connection state for the WebSocket listener.

Each accepted WebSocket gets a ClientConnection holding its liveness flag
and a bounded outbound queue drained by a dedicated writer task. Sending is
synchronous and never blocks: frames are queued in order and written in
order, and frames that do not fit in the queue are dropped.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog
from websockets.exceptions import ConnectionClosed

from seedlink_relay.domain.errors import TransportError
from seedlink_relay.domain.model.messages import encode_outbound

if TYPE_CHECKING:
    from websockets.asyncio.server import ServerConnection

logger = structlog.get_logger(__name__)

# Queue marker for a heartbeat ping, written in order with data frames
_PING = object()


class ClientConnection:
    """A live WebSocket session owned by the relay server.

    Attributes:
        connection_id: Unique identity of the session
        remote_address: Peer address reported by the transport
        alive: Liveness flag, cleared when a ping is queued and set on pong
        closed: True once the connection was closed or evicted
        dropped_frames: Frames discarded because the outbound queue was full
    """

    def __init__(
        self,
        websocket: ServerConnection,
        *,
        debug: bool = False,
        queue_size: int = 1024,
    ) -> None:
        self._websocket = websocket
        self._debug = debug
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self._writer: asyncio.Task[None] | None = None

        self.connection_id = uuid.uuid4().hex[:12]
        self.remote_address = _format_address(getattr(websocket, "remote_address", None))
        self.alive = True
        self.closed = False
        self.dropped_frames = 0

    def __repr__(self) -> str:
        return f"ClientConnection(id={self.connection_id!r}, remote={self.remote_address!r})"

    @property
    def pending_frames(self) -> int:
        """Number of frames waiting to be written."""
        return self._queue.qsize()

    def start(self) -> None:
        """Start the writer task draining the outbound queue."""
        if self._writer is None:
            self._writer = asyncio.create_task(
                self._write_loop(),
                name=f"writer_{self.connection_id}",
            )

    def send(self, value: BaseException | str | Mapping[str, Any]) -> bool:
        """Queue a value wrapped in its outbound envelope.

        Returns:
            True if the frame was queued
        """
        return self.send_frame(encode_outbound(value, debug=self._debug))

    def send_frame(self, frame: str) -> bool:
        """Queue an already encoded frame.

        Returns:
            True if the frame was queued, False if closed or the queue is full
        """
        return self._enqueue(frame)

    def ping(self) -> bool:
        """Queue a heartbeat ping; the pong marks the connection alive."""
        return self._enqueue(_PING)

    def mark_alive(self) -> None:
        """Record a heartbeat response."""
        self.alive = True

    async def flush(self) -> None:
        """Wait until every queued frame has been handled by the writer."""
        await self._queue.join()

    def terminate(self) -> None:
        """Force-close the transport without a closing handshake."""
        if not self.closed:
            transport = getattr(self._websocket, "transport", None)
            if transport is not None:
                transport.abort()
        self.discard()

    def discard(self) -> None:
        """Stop writing to this connection. Safe to call more than once."""
        self.closed = True
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()

    def _enqueue(self, item: Any) -> bool:
        if self.closed:
            return False
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self.dropped_frames += 1
            logger.debug(
                "Outbound queue full, dropping frame",
                connection_id=self.connection_id,
                dropped=self.dropped_frames,
            )
            return False
        return True

    async def _write_loop(self) -> None:
        """Write queued frames in order until the transport fails."""
        while True:
            item = await self._queue.get()
            try:
                await self._transmit(item)
            except TransportError as e:
                logger.debug(
                    "Transport closed while writing",
                    connection_id=self.connection_id,
                    error=str(e),
                )
                self.closed = True
                return
            finally:
                self._queue.task_done()

    async def _transmit(self, item: Any) -> None:
        try:
            if item is _PING:
                pong_waiter = await self._websocket.ping()
                pong_waiter.add_done_callback(self._on_pong)
            else:
                await self._websocket.send(item)
        except (ConnectionClosed, OSError) as e:
            raise TransportError(str(e)) from e

    def _on_pong(self, waiter: asyncio.Future[Any]) -> None:
        if waiter.cancelled() or waiter.exception() is not None:
            return
        self.mark_alive()


def _format_address(address: Any) -> str:
    if isinstance(address, tuple) and len(address) >= 2:
        return f"{address[0]}:{address[1]}"
    if address is None:
        return "unknown"
    return str(address)
