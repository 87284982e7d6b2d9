from __future__ import annotations

import time

from starlette.testclient import WebSocketTestSession

from parley.api import ws as ws_module
from parley.core.security import create_access_token


def test_channel_subscription_survives_keepalive_timeout(client, workspace) -> None:
    """Ensure that the server side keepalive pings keep the socket open."""

    token = create_access_token({"sub": "bob"})

    settings = ws_module.settings
    original_timeout = settings.websocket_keepalive_timeout_seconds
    original_interval = settings.websocket_keepalive_ping_interval_seconds

    settings.websocket_keepalive_timeout_seconds = 0.1
    settings.websocket_keepalive_ping_interval_seconds = 0.05

    try:
        with client.websocket_connect(
            f"/ws/channels/{workspace.general_id}?token={token}"
        ) as connection:
            _assert_keepalive_sequence(connection)
    finally:
        settings.websocket_keepalive_timeout_seconds = original_timeout
        settings.websocket_keepalive_ping_interval_seconds = original_interval


def _assert_keepalive_sequence(connection: WebSocketTestSession) -> None:
    """Observe two keepalive pings with client responses to keep the connection active."""

    subscribed = connection.receive_json()
    assert subscribed["type"] == "subscribed"

    time.sleep(0.15)
    ping = connection.receive_json()
    assert ping["type"] == "ping"
    connection.send_json({"type": "pong"})

    time.sleep(0.12)
    ping_again = connection.receive_json()
    assert ping_again["type"] == "ping"
    connection.send_json({"type": "pong"})

    connection.send_json({"type": "ping"})
    pong = connection.receive_json()
    assert pong["type"] == "pong"
