"""Shared fakes and builders for unit tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import MagicMock

from websockets.exceptions import ConnectionClosed

from seedlink_relay.adapters.northbound.websocket.connection import ClientConnection
from seedlink_relay.config.schema import ChannelConfig, RelayConfig
from seedlink_relay.domain.model.channels import Selector

CHANNELS: list[dict[str, Any]] = [
    {
        "name": "NL.OPLO",
        "selectors": [
            {"network": "NL", "station": "OPLO", "location": "01", "channel": "HGZ"},
        ],
    },
    {
        "name": "NL.HGN",
        "selectors": [
            {"network": "NL", "station": "HGN", "location": "02", "channel": "BHZ"},
            {"network": "NL", "station": "HGN", "location": "02", "channel": "BHN"},
            {"network": "NL", "station": "HGN", "location": "02", "channel": "BHE"},
        ],
    },
]


def make_config(**server: Any) -> RelayConfig:
    """Relay configuration with the NL.HGN and NL.OPLO channels."""
    return RelayConfig.model_validate(
        {
            "server": {"host": "127.0.0.1", "port": 0, **server},
            "channels": CHANNELS,
        }
    )


def make_connection(connection_id: str) -> MagicMock:
    """Stand-in connection recording everything sent to it."""
    connection = MagicMock(spec=ClientConnection)
    connection.connection_id = connection_id
    connection.alive = True
    connection.send_frame.return_value = True
    return connection


async def settle(rounds: int = 10) -> None:
    """Let pending tasks (writers, handlers) run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class StubSource:
    """Channel source that only records what the relay asks of it."""

    def __init__(self, config: ChannelConfig, emit: Any) -> None:
        self.config = config
        self.emit = emit
        self.demand: list[bool] = []
        self.closed = False

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def selectors(self) -> tuple[Selector, ...]:
        return tuple(Selector.from_config(s) for s in self.config.selectors)

    @property
    def active(self) -> bool:
        return bool(self.demand) and self.demand[-1]

    def set_demand(self, active: bool) -> None:
        self.demand.append(active)

    async def close(self) -> None:
        self.closed = True


class FakeWebSocket:
    """In-memory replacement for a websockets ServerConnection."""

    def __init__(self, remote_address: tuple[str, int] = ("127.0.0.1", 40000)) -> None:
        self.remote_address = remote_address
        self.sent: list[str] = []
        self.pong_waiters: list[asyncio.Future[float]] = []
        self.fail_writes = False
        self.transport = MagicMock()
        self.transport.abort.side_effect = self.disconnect
        self._incoming: asyncio.Queue[str | bytes | None] = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.fail_writes:
            raise ConnectionClosed(None, None)
        self.sent.append(message)

    async def ping(self) -> asyncio.Future[float]:
        if self.fail_writes:
            raise ConnectionClosed(None, None)
        waiter: asyncio.Future[float] = asyncio.get_running_loop().create_future()
        self.pong_waiters.append(waiter)
        return waiter

    def answer_pings(self) -> None:
        for waiter in self.pong_waiters:
            if not waiter.done():
                waiter.set_result(0.001)

    def feed(self, message: Any) -> None:
        """Deliver a client frame (dicts are JSON-encoded)."""
        if isinstance(message, dict):
            message = json.dumps(message)
        self._incoming.put_nowait(message)

    def disconnect(self) -> None:
        self._incoming.put_nowait(None)

    def messages(self) -> list[Any]:
        return [json.loads(m) for m in self.sent]

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> str | bytes:
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message
