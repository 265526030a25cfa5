"""
Tests for the RelayConnection transport adapter.
"""

import asyncio
import json

import pytest

from relay_server.realtime.connection_models import Attachment, Role
from relay_server.realtime.relay_connection import EVICTION_CLOSE_CODE, RelayConnection

from ...helpers import ManualClock, create_mock_websocket, sent


@pytest.fixture
def connection(clock):
    return RelayConnection(create_mock_websocket(), outbound_queue_size=4, clock=clock, connection_id="conn-1")


class TestSend:
    """Non-blocking outbound queue."""

    def test_send_queues_frames_in_order(self, connection):
        """Test that frames are queued in send order."""
        assert connection.send({"type": "room_info", "room": "R1", "peers": 1})
        assert connection.send(b"\x01\x02")
        assert sent(connection) == [{"type": "room_info", "room": "R1", "peers": 1}, b"\x01\x02"]

    def test_send_drops_when_queue_full(self, connection):
        """Test that a full queue drops frames instead of blocking."""
        for i in range(4):
            assert connection.send({"type": "audio", "data": i})
        assert connection.send({"type": "audio", "data": 4}) is False
        assert connection.dropped_frames == 1
        assert [frame["data"] for frame in sent(connection)] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_send_after_close_is_rejected(self, connection):
        """Test that a closing connection accepts no frames."""
        await connection.close()
        assert connection.send({"type": "audio", "data": "x"}) is False
        assert sent(connection) == []

    def test_send_after_mark_closed_is_rejected(self, connection):
        """Test that a connection whose transport is gone accepts no frames."""
        connection.mark_closed()
        assert not connection.is_open
        assert connection.send({"type": "audio", "data": "x"}) is False


class TestClose:
    """Graceful close and abrupt terminate."""

    @pytest.mark.asyncio
    async def test_close_without_writer_closes_transport(self, connection):
        """Test that close() reaches the WebSocket when no writer is running."""
        await connection.close(code=1000, reason="replaced by new attachment")

        connection.websocket.close.assert_awaited_once_with(code=1000, reason="replaced by new attachment")
        assert connection.close_code == 1000
        assert not connection.is_open

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, connection):
        """Test that only the first close has an effect."""
        await connection.close(code=1000, reason="first")
        await connection.close(code=1001, reason="second")

        connection.websocket.close.assert_awaited_once_with(code=1000, reason="first")

    @pytest.mark.asyncio
    async def test_close_ignores_transport_errors(self, connection):
        """Test that a socket that is already gone does not raise."""
        connection.websocket.close.side_effect = RuntimeError("Unexpected ASGI message 'websocket.close'")
        await connection.close()
        assert not connection.is_open

    @pytest.mark.asyncio
    async def test_terminate_uses_eviction_code(self, connection):
        """Test that terminate closes with the eviction code."""
        connection.send({"type": "audio", "data": "stale"})

        await connection.terminate(reason="missed liveness probe")

        connection.websocket.close.assert_awaited_once_with(code=EVICTION_CLOSE_CODE, reason="missed liveness probe")
        assert not connection.is_open
        assert sent(connection) == []

    @pytest.mark.asyncio
    async def test_terminate_after_begin_close_still_closes_transport(self, connection):
        """Test that an eviction during a graceful close still reaches the transport."""
        connection.begin_close(code=1000, reason="replaced by new attachment")

        await connection.terminate(reason="idle timeout")

        connection.websocket.close.assert_awaited_once_with(code=1000, reason="replaced by new attachment")
        assert not connection.is_open

    def test_begin_close_stops_sends_without_waiting(self, connection):
        """Test that begin_close() takes effect immediately and only once."""
        assert connection.begin_close(code=1000, reason="replaced by new attachment") is True
        assert connection.begin_close(code=4000, reason="other") is False

        assert not connection.is_open
        assert connection.send({"type": "audio", "data": "x"}) is False
        assert connection.close_code == 1000
        connection.websocket.close.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_after_begin_close_keeps_first_reason(self, connection):
        """Test that the transport is closed once with the code recorded first."""
        connection.begin_close(code=1000, reason="replaced by new attachment")

        await connection.close(code=1001, reason="server shutting down")
        await connection.close()

        connection.websocket.close.assert_awaited_once_with(code=1000, reason="replaced by new attachment")

    @pytest.mark.asyncio
    async def test_writer_flushes_before_graceful_close(self, connection):
        """Test that queued frames are written before the close frame."""
        websocket = connection.websocket
        order = []
        websocket.send_text.side_effect = lambda text: order.append(("text", json.loads(text)))
        websocket.send_bytes.side_effect = lambda data: order.append(("bytes", data))
        websocket.close.side_effect = lambda code, reason: order.append(("close", code))

        connection.start()
        connection.send({"type": "peer_left", "mode": "A"})
        connection.send(b"\xff")
        await connection.close(code=1001, reason="server shutting down")
        await asyncio.wait_for(connection._writer_task, timeout=1.0)

        assert order == [("text", {"type": "peer_left", "mode": "A"}), ("bytes", b"\xff"), ("close", 1001)]

    @pytest.mark.asyncio
    async def test_writer_stops_on_transport_error(self, connection):
        """Test that a send failure ends delivery for this connection only."""
        connection.websocket.send_text.side_effect = RuntimeError("socket closed")
        connection.start()
        connection.send({"type": "audio", "data": "x"})

        await asyncio.wait_for(connection._writer_task, timeout=1.0)

        assert not connection.is_open

    @pytest.mark.asyncio
    async def test_shutdown_stops_idle_writer(self, connection):
        """Test that shutdown cancels a writer waiting on an empty queue."""
        connection.start()
        await asyncio.sleep(0)

        await connection.shutdown()

        assert connection._writer_task.done()
        assert connection.lifecycle.is_closed


class TestLivenessAndAttachment:
    """Bookkeeping used by the router and the liveness monitor."""

    def test_probe_sends_ping_frame(self, connection):
        """Test that a probe is a server ping frame."""
        assert connection.probe()
        frames = sent(connection)
        assert len(frames) == 1
        assert frames[0]["type"] == "ping"
        assert isinstance(frames[0]["timestamp"], int)

    def test_record_activity_updates_clock(self):
        """Test that inbound activity is timestamped with the connection clock."""
        clock = ManualClock(start=10.0)
        connection = RelayConnection(create_mock_websocket(), clock=clock)
        clock.advance(5)

        connection.record_activity()

        assert connection.last_activity == 15.0
        assert connection.state.frames_received == 1

    def test_record_activity_restores_liveness(self, connection):
        """Test that any inbound frame marks the connection alive again."""
        connection.is_alive = False
        connection.record_activity()
        assert connection.is_alive is True

    def test_attach_and_detach(self, connection):
        """Test the attachment lifecycle."""
        connection.attach("R1", Role.A)
        assert connection.attachment == Attachment("R1", Role.A)
        assert connection.lifecycle.current_state.id == "attached"

        assert connection.detach() == Attachment("R1", Role.A)
        assert connection.attachment is None
        assert connection.lifecycle.current_state.id == "detached"
        assert connection.detach() is None

    def test_connection_ids_are_unique(self):
        """Test that connections get distinct generated ids."""
        first = RelayConnection(create_mock_websocket())
        second = RelayConnection(create_mock_websocket())
        assert first.connection_id != second.connection_id
