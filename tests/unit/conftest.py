from __future__ import annotations

import pytest
from helpers import FakeWebSocket, make_config

from seedlink_relay.config.schema import RelayConfig


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if "unit" in item.path.parts:
            item.add_marker(pytest.mark.unit)


@pytest.fixture
def relay_config() -> RelayConfig:
    return make_config()


@pytest.fixture
def fake_websocket() -> FakeWebSocket:
    return FakeWebSocket()
