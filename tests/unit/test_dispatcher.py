"""Unit tests for the command dispatcher."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

import pytest
from helpers import make_connection

from seedlink_relay.application.dispatcher import CommandDispatcher
from seedlink_relay.application.registry import ConnectionRegistry
from seedlink_relay.domain.model.channels import Channel, Selector
from seedlink_relay.domain.model.messages import render_outbound

INVALID_OPERATION = "Invalid operation requested. Expected: subscribe, unsubscribe, channels, info"


def replies(connection: MagicMock) -> list[Any]:
    """Outbound envelopes sent to a stand-in connection."""
    return [render_outbound(call.args[0]) for call in connection.send.call_args_list]


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry(
        [
            Channel(
                name="NL.HGN",
                selectors=(
                    Selector("NL", "HGN", "02", "BHZ"),
                    Selector("NL", "HGN", "02", "BHN"),
                ),
            ),
            Channel(name="NL.OPLO", selectors=(Selector("NL", "OPLO", "", "HGZ"),)),
        ]
    )


@pytest.fixture
def dispatcher(registry: ConnectionRegistry) -> CommandDispatcher:
    return CommandDispatcher(registry)


def send(dispatcher: CommandDispatcher, connection: MagicMock, message: dict[str, Any]) -> None:
    dispatcher.handle(connection, json.dumps(message))


class TestSubscribe:
    """Tests for subscribe/unsubscribe commands."""

    def test_subscribe_adds_without_reply(
        self, dispatcher: CommandDispatcher, registry: ConnectionRegistry
    ) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"subscribe": "NL.HGN"})

        assert registry.members_of("NL.HGN") == (conn,)
        assert replies(conn) == []

    def test_repeated_subscribe_single_membership(
        self, dispatcher: CommandDispatcher, registry: ConnectionRegistry
    ) -> None:
        conn = make_connection("c1")
        for _ in range(3):
            send(dispatcher, conn, {"subscribe": "NL.HGN"})

        assert registry.members_of("NL.HGN") == (conn,)

    def test_subscribe_unknown_channel(
        self, dispatcher: CommandDispatcher, registry: ConnectionRegistry
    ) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"subscribe": "XX.FOO"})

        assert replies(conn) == [{"error": "Invalid channel subscription requested: XX.FOO"}]
        assert registry.channels_of(conn) == []

    def test_unsubscribe_unknown_channel(self, dispatcher: CommandDispatcher) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"unsubscribe": "XX.FOO"})

        assert replies(conn) == [{"error": "Invalid channel unsubscription requested: XX.FOO"}]

    def test_unsubscribe_non_member_is_silent(
        self, dispatcher: CommandDispatcher, registry: ConnectionRegistry
    ) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"unsubscribe": "NL.HGN"})

        assert replies(conn) == []
        assert registry.members_of("NL.HGN") == ()

    def test_unsubscribe_member(
        self, dispatcher: CommandDispatcher, registry: ConnectionRegistry
    ) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"subscribe": "NL.HGN"})
        send(dispatcher, conn, {"unsubscribe": "NL.HGN"})

        assert registry.members_of("NL.HGN") == ()

    def test_subscribe_and_unsubscribe_same_frame(
        self, dispatcher: CommandDispatcher, registry: ConnectionRegistry
    ) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"unsubscribe": "NL.HGN", "subscribe": "NL.HGN"})

        # subscribe runs first, then unsubscribe
        assert registry.members_of("NL.HGN") == ()


class TestQueries:
    """Tests for channels and info commands."""

    def test_channels_lists_sorted_names(self, dispatcher: CommandDispatcher) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"subscribe": "NL.HGN"})
        send(dispatcher, conn, {"channels": True})

        assert replies(conn) == [{"success": "NL.HGN NL.OPLO"}]

    def test_channels_independent_of_subscriptions(self, dispatcher: CommandDispatcher) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"channels": True})

        assert replies(conn) == [{"success": "NL.HGN NL.OPLO"}]

    def test_info_lists_selectors(self, dispatcher: CommandDispatcher) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"info": "NL.HGN"})

        assert replies(conn) == [{"success": "NL.HGN.02.BHZ NL.HGN.02.BHN"}]

    def test_info_empty_location(self, dispatcher: CommandDispatcher) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"info": "NL.OPLO"})

        assert replies(conn) == [{"success": "NL.OPLO..HGZ"}]

    def test_info_unknown_channel_is_silent(self, dispatcher: CommandDispatcher) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"info": "XX.FOO"})

        assert replies(conn) == []

    def test_info_replied_before_channels(self, dispatcher: CommandDispatcher) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"channels": True, "info": "NL.OPLO"})

        assert replies(conn) == [{"success": "NL.OPLO..HGZ"}, {"success": "NL.HGN NL.OPLO"}]

    def test_unknown_channel_does_not_stop_other_commands(
        self, dispatcher: CommandDispatcher
    ) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"subscribe": "XX.FOO", "channels": True})

        assert replies(conn) == [
            {"error": "Invalid channel subscription requested: XX.FOO"},
            {"success": "NL.HGN NL.OPLO"},
        ]

    def test_non_string_channel_fails_only_its_command(
        self, dispatcher: CommandDispatcher, registry: ConnectionRegistry
    ) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"subscribe": 123, "unsubscribe": ["NL.HGN"], "channels": True})

        assert replies(conn) == [
            {"error": "Invalid channel subscription requested: 123"},
            {"error": "Invalid channel unsubscription requested: ['NL.HGN']"},
            {"success": "NL.HGN NL.OPLO"},
        ]
        assert registry.channels_of(conn) == []

    def test_non_string_info_is_silent(self, dispatcher: CommandDispatcher) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"info": {"name": "NL.HGN"}, "channels": "all"})

        assert replies(conn) == [{"success": "NL.HGN NL.OPLO"}]


class TestInvalidFrames:
    """Tests for rejected frames."""

    def test_unknown_key(
        self, dispatcher: CommandDispatcher, registry: ConnectionRegistry
    ) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"foo": "bar"})

        assert replies(conn) == [{"error": INVALID_OPERATION}]
        assert registry.get_statistics()["subscribers"] == {"NL.HGN": 0, "NL.OPLO": 0}

    def test_unknown_key_prevents_valid_operations(
        self, dispatcher: CommandDispatcher, registry: ConnectionRegistry
    ) -> None:
        conn = make_connection("c1")
        send(dispatcher, conn, {"subscribe": "NL.HGN", "channels": True, "foo": "bar"})

        assert replies(conn) == [{"error": INVALID_OPERATION}]
        assert registry.members_of("NL.HGN") == ()

    def test_malformed_json(self, dispatcher: CommandDispatcher) -> None:
        conn = make_connection("c1")
        dispatcher.handle(conn, "not json")

        [reply] = replies(conn)
        assert reply["error"].startswith("Invalid JSON message")

    def test_unexpected_failure_is_reported_to_sender_only(
        self, dispatcher: CommandDispatcher, registry: ConnectionRegistry
    ) -> None:
        conn = make_connection("c1")
        bystander = make_connection("c2")
        registry.add = MagicMock(side_effect=RuntimeError("boom"))  # type: ignore[method-assign]

        send(dispatcher, conn, {"subscribe": "NL.HGN"})

        assert replies(conn) == [{"error": "boom"}]
        assert replies(bystander) == []
