"""Heartbeat-based liveness monitor.

Every interval each open connection is checked: connections that did not
answer the previous ping are evicted, the others get a new ping. A client
is therefore dropped after missing one full interval, and an unresponsive
client is detected at most two intervals after it stopped answering.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from seedlink_relay.adapters.northbound.websocket.connection import ClientConnection
    from seedlink_relay.application.registry import ConnectionRegistry

logger = structlog.get_logger(__name__)

EvictCallback = Callable[["ClientConnection"], None]


class LivenessMonitor:
    """Periodically pings connections and evicts the silent ones."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        interval_s: float,
        on_evict: EvictCallback,
    ) -> None:
        self._registry = registry
        self._interval_s = interval_s
        self._on_evict = on_evict
        self._task: asyncio.Task[None] | None = None

    @property
    def interval_s(self) -> float:
        """Seconds between heartbeat ticks."""
        return self._interval_s

    @property
    def running(self) -> bool:
        """Return whether the heartbeat timer is running."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the heartbeat timer."""
        if self.running:
            return
        self._task = asyncio.create_task(self._heartbeat_loop(), name="heartbeat")
        logger.info("Heartbeat started", interval_s=self._interval_s)

    async def stop(self) -> None:
        """Cancel the heartbeat timer."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Heartbeat stopped")

    def tick(self) -> list[ClientConnection]:
        """Run one heartbeat round.

        Returns:
            The connections evicted in this round
        """
        evicted: list[ClientConnection] = []
        for connection in self._registry.connections:
            if not connection.alive:
                evicted.append(connection)
                self._on_evict(connection)
                continue

            connection.alive = False
            connection.ping()

        if evicted:
            logger.info(
                "Evicted unresponsive connections",
                count=len(evicted),
                connection_ids=[c.connection_id for c in evicted],
            )
        return evicted

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            try:
                self.tick()
            except Exception as e:
                logger.warning("Heartbeat error", error=str(e))
