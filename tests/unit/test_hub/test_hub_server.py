"""Tests for the data hub WebSocket server."""

from __future__ import annotations

from fastapi.testclient import TestClient

from camrelay.hub.broadcast import DataHub
from camrelay.hub.server import create_app


class TestHealthEndpoint:
    def test_health_counts_peers(self) -> None:
        app = create_app()
        with TestClient(app) as client:
            assert client.get("/health").json() == {
                "status": "ok",
                "peers": 0,
                "messages_relayed": 0,
            }
            with client.websocket_connect("/"), client.websocket_connect("/"):
                assert client.get("/health").json()["peers"] == 2


class TestDataEndpoint:
    def test_message_reaches_every_other_peer(self) -> None:
        app = create_app()
        with TestClient(app) as client:
            with client.websocket_connect("/") as a, client.websocket_connect("/") as b, \
                    client.websocket_connect("/") as c:
                a.send_text('{"temp":25}')
                assert b.receive_text() == '{"temp":25}'
                assert c.receive_text() == '{"temp":25}'

                # A's first inbound message is B's reply, not an echo of its own
                b.send_text('{"ack":true}')
                assert a.receive_json() == {"ack": True}
                assert c.receive_json() == {"ack": True}

    def test_malformed_message_dropped_sender_stays(self) -> None:
        app = create_app()
        with TestClient(app) as client:
            with client.websocket_connect("/") as a, client.websocket_connect("/") as b:
                a.send_text("not-json")
                a.send_text('{"after":"error"}')
                assert b.receive_text() == '{"after":"error"}'
                assert client.get("/health").json()["peers"] == 2

    def test_binary_json_relayed_as_text(self) -> None:
        app = create_app()
        with TestClient(app) as client:
            with client.websocket_connect("/") as a, client.websocket_connect("/") as b:
                a.send_bytes(b'{"relay":1}')
                assert b.receive_text() == '{"relay":1}'

    def test_injected_hub_tracks_relayed_messages(self) -> None:
        hub = DataHub()
        app = create_app(hub=hub)
        with TestClient(app) as client:
            with client.websocket_connect("/") as a, client.websocket_connect("/") as b:
                a.send_text('{"n":1}')
                b.receive_text()
            assert client.get("/health").json()["messages_relayed"] == 1
        assert hub.messages_relayed == 1

    def test_write_limits_passed_to_hub(self) -> None:
        app = create_app(send_timeout=1.5, max_pending=8)
        hub: DataHub = app.state.hub
        assert hub._send_timeout == 1.5
        assert hub._max_pending == 8

