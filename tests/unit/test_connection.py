"""Unit tests for the WebSocket client connection."""

from __future__ import annotations

import asyncio

import pytest
from helpers import FakeWebSocket, settle

from seedlink_relay.adapters.northbound.websocket.connection import ClientConnection
from seedlink_relay.domain.errors import UnknownChannelError


class TestSending:
    """Tests for the outbound queue and writer."""

    @pytest.mark.asyncio
    async def test_frames_written_in_order(self, fake_websocket: FakeWebSocket) -> None:
        connection = ClientConnection(fake_websocket)
        connection.start()

        connection.send("first")
        connection.send({"id": "NL.HGN.02.BHZ", "data": [1, 2]})
        connection.send(UnknownChannelError("XX", "subscription"))
        await connection.flush()

        assert fake_websocket.messages() == [
            {"success": "first"},
            {"id": "NL.HGN.02.BHZ", "data": [1, 2]},
            {"error": "Invalid channel subscription requested: XX"},
        ]
        connection.discard()

    @pytest.mark.asyncio
    async def test_debug_mode_sends_traceback(self, fake_websocket: FakeWebSocket) -> None:
        connection = ClientConnection(fake_websocket, debug=True)
        connection.start()

        connection.send(UnknownChannelError("XX", "subscription"))
        await connection.flush()

        [reply] = fake_websocket.messages()
        assert "UnknownChannelError: Invalid channel subscription requested: XX" in reply["error"]
        connection.discard()

    @pytest.mark.asyncio
    async def test_full_queue_drops_frames(self, fake_websocket: FakeWebSocket) -> None:
        connection = ClientConnection(fake_websocket, queue_size=2)

        assert connection.send_frame("a") is True
        assert connection.send_frame("b") is True
        assert connection.send_frame("c") is False
        assert connection.dropped_frames == 1
        assert connection.pending_frames == 2

        connection.start()
        await connection.flush()

        assert fake_websocket.sent == ["a", "b"]
        connection.discard()

    @pytest.mark.asyncio
    async def test_send_after_discard_is_ignored(self, fake_websocket: FakeWebSocket) -> None:
        connection = ClientConnection(fake_websocket)
        connection.start()
        connection.discard()

        assert connection.send("late") is False
        assert connection.ping() is False
        await settle()
        assert fake_websocket.sent == []

    @pytest.mark.asyncio
    async def test_transport_failure_stops_writer(self, fake_websocket: FakeWebSocket) -> None:
        connection = ClientConnection(fake_websocket)
        fake_websocket.fail_writes = True
        connection.start()

        connection.send("lost")
        await settle()

        assert connection.closed is True
        assert connection.send("later") is False


class TestHeartbeat:
    """Tests for ping/pong handling."""

    @pytest.mark.asyncio
    async def test_new_connection_is_alive(self, fake_websocket: FakeWebSocket) -> None:
        assert ClientConnection(fake_websocket).alive is True

    @pytest.mark.asyncio
    async def test_pong_marks_alive(self, fake_websocket: FakeWebSocket) -> None:
        connection = ClientConnection(fake_websocket)
        connection.start()

        connection.alive = False
        assert connection.ping() is True
        await connection.flush()
        assert len(fake_websocket.pong_waiters) == 1
        assert connection.alive is False

        fake_websocket.answer_pings()
        await settle()

        assert connection.alive is True
        connection.discard()

    @pytest.mark.asyncio
    async def test_cancelled_pong_leaves_flag_cleared(self, fake_websocket: FakeWebSocket) -> None:
        connection = ClientConnection(fake_websocket)
        connection.start()

        connection.alive = False
        connection.ping()
        await connection.flush()
        fake_websocket.pong_waiters[0].cancel()
        await settle()

        assert connection.alive is False
        connection.discard()

    @pytest.mark.asyncio
    async def test_failed_ping_closes_writer(self, fake_websocket: FakeWebSocket) -> None:
        connection = ClientConnection(fake_websocket)
        fake_websocket.fail_writes = True
        connection.start()

        connection.ping()
        await settle()

        assert connection.closed is True


class TestTermination:
    """Tests for force-closing a connection."""

    @pytest.mark.asyncio
    async def test_terminate_aborts_transport_once(self, fake_websocket: FakeWebSocket) -> None:
        connection = ClientConnection(fake_websocket)
        connection.start()

        connection.terminate()
        connection.terminate()
        await asyncio.sleep(0)

        fake_websocket.transport.abort.assert_called_once()
        assert connection.closed is True

    @pytest.mark.asyncio
    async def test_remote_address_and_identity(self) -> None:
        first = ClientConnection(FakeWebSocket(("10.0.0.1", 5000)))
        second = ClientConnection(FakeWebSocket(("10.0.0.2", 5001)))

        assert first.remote_address == "10.0.0.1:5000"
        assert first.connection_id != second.connection_id
