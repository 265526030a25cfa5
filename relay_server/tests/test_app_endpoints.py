"""
End-to-end tests through the FastAPI application.

HTTP status endpoints and full WebSocket sessions run against the real app
with FastAPI's TestClient.
"""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from relay_server.app.factory import create_app
from relay_server.config.models import AppConfig, LivenessConfig


@pytest.fixture
def app():
    return create_app(AppConfig())


@pytest.fixture
def client(app):
    """Create a test client with the lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


def _join(websocket, room, mode):
    websocket.send_json({"type": "join", "room": room, "mode": mode})


class TestStatusEndpoints:
    """HTTP status and diagnostics."""

    def test_root_status(self, client):
        """Test the short status document."""
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == {"status": "running", "message": "Pairing relay server is running", "rooms": 0}

    def test_diagnostics(self, client):
        """Test the diagnostics document before any peer connects."""
        response = client.get("/status")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "running"
        assert data["rooms"] == 0
        assert data["room_details"] == []
        assert data["connections"]["open_connections"] == 0
        assert data["liveness"]["running"] is True
        assert data["liveness"]["probe_interval"] == 30.0
        assert data["liveness"]["last_sweep"] is None

    def test_liveness_can_be_disabled(self):
        """Test that the monitor does not start when disabled."""
        app = create_app(AppConfig(liveness=LivenessConfig(enabled=False)))
        with TestClient(app) as client:
            assert client.get("/status").json()["liveness"]["running"] is False


class TestWebSocketSession:
    """Full relay sessions over the WebSocket endpoints."""

    def test_pair_relay_and_leave(self, client):
        """Test joining, pairing, relaying in both encodings and leaving."""
        with client.websocket_connect("/ws") as sensor, client.websocket_connect("/") as monitor:
            _join(sensor, "R1", "A")
            assert sensor.receive_json() == {"type": "room_info", "room": "R1", "peers": 1}

            _join(monitor, "R1", "B")
            assert monitor.receive_json() == {"type": "room_info", "room": "R1", "peers": 2}
            assert monitor.receive_json() == {"type": "peer_joined", "mode": "A"}
            assert sensor.receive_json() == {"type": "peer_joined", "mode": "B"}

            sensor.send_json({"type": "audio", "data": "x"})
            assert monitor.receive_json() == {"type": "audio", "data": "x"}

            sensor.send_bytes(b"\x00\x01\xfe\xff")
            assert monitor.receive_bytes() == b"\x00\x01\xfe\xff"

            monitor.send_json({"type": "audio", "data": {"chunk": 3}})
            assert sensor.receive_json() == {"type": "audio", "data": {"chunk": 3}}

            details = client.get("/status").json()["room_details"]
            assert [(room["room"], room["peers"]) for room in details] == [("R1", 2)]

            sensor.send_json({"type": "leave"})
            assert monitor.receive_json() == {"type": "peer_left", "mode": "A"}
            assert client.get("/").json()["rooms"] == 1

            monitor.send_json({"type": "leave"})
            monitor.send_json({"type": "ping", "timestamp": 1})
            assert monitor.receive_json() == {"type": "pong", "timestamp": 1}
            assert client.get("/").json()["rooms"] == 0

    def test_displaced_peer_is_closed(self, client):
        """Test that a second join for the same slot closes the first connection."""
        with client.websocket_connect("/ws") as first:
            _join(first, "R2", "A")
            assert first.receive_json()["type"] == "room_info"

            with client.websocket_connect("/ws") as second:
                _join(second, "R2", "A")
                assert second.receive_json() == {"type": "room_info", "room": "R2", "peers": 1}

                with pytest.raises(WebSocketDisconnect) as exc_info:
                    first.receive_json()
                assert exc_info.value.code == 1000
                assert exc_info.value.reason == "replaced by new attachment"

                assert client.get("/").json()["rooms"] == 1

    def test_peer_close_notifies_other_side(self, client):
        """Test that dropping the transport counts as leaving."""
        with client.websocket_connect("/ws") as monitor:
            _join(monitor, "R3", "B")
            monitor.receive_json()

            with client.websocket_connect("/ws") as sensor:
                _join(sensor, "R3", "A")
                sensor.receive_json()
                sensor.receive_json()
                assert monitor.receive_json() == {"type": "peer_joined", "mode": "A"}

            assert monitor.receive_json() == {"type": "peer_left", "mode": "A"}

    def test_protocol_errors(self, client):
        """Test that bad frames get error replies and the connection stays usable."""
        with client.websocket_connect("/ws") as peer:
            peer.send_text("definitely not json")
            assert peer.receive_json() == {"type": "error", "message": "Invalid message format"}

            peer.send_json({"type": "join", "room": "R4"})
            assert peer.receive_json() == {"type": "error", "message": "Room code and mode are required"}

            peer.send_json({"type": "join", "room": "R4", "mode": "Z"})
            assert peer.receive_json() == {"type": "error", "message": "Invalid mode"}

            peer.send_json({"type": "hello"})
            _join(peer, "R4", "A")
            assert peer.receive_json() == {"type": "room_info", "room": "R4", "peers": 1}

    @pytest.mark.parametrize("bad_type", [[], {}, 7])
    def test_non_string_type_keeps_socket_open(self, client, bad_type):
        """Test that a frame with a malformed type is answered and the socket still joins."""
        with client.websocket_connect("/ws") as peer:
            peer.send_json({"type": bad_type, "room": "R5", "mode": "A"})
            assert peer.receive_json() == {"type": "error", "message": "Invalid message format"}

            _join(peer, "R5", "A")
            assert peer.receive_json() == {"type": "room_info", "room": "R5", "peers": 1}

            peer.send_json({"type": "ping", "timestamp": 9})
            assert peer.receive_json() == {"type": "pong", "timestamp": 9}
