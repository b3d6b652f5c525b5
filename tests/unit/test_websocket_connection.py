"""
Tests for the queued WebSocket connection handle.
"""

import asyncio

import pytest
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from signal_hub.realtime.connection import Connection, WebSocketConnection


class FakeWebSocket:
    def __init__(self, fail_after: int | None = None, error: Exception | None = None):
        self.application_state = WebSocketState.CONNECTED
        self.frames: list[dict] = []
        self.fail_after = fail_after
        self.error = error or WebSocketDisconnect(code=1006)
        self.stalled: asyncio.Event | None = None

    async def send_json(self, data):
        if self.stalled is not None:
            await self.stalled.wait()
        if self.fail_after is not None and len(self.frames) >= self.fail_after:
            raise self.error
        self.frames.append(data)


@pytest.mark.asyncio
async def test_frames_written_in_order():
    websocket = FakeWebSocket()
    connection = WebSocketConnection(websocket)
    connection.start()

    assert connection.send("presence:update", {"userId": "alice", "status": "online"})
    assert connection.send("typing:update", {"userId": "alice", "isTyping": True})
    await connection.close()

    assert websocket.frames == [
        {"event": "presence:update", "data": {"userId": "alice", "status": "online"}},
        {"event": "typing:update", "data": {"userId": "alice", "isTyping": True}},
    ]


@pytest.mark.asyncio
async def test_send_does_not_write_inline():
    websocket = FakeWebSocket()
    connection = WebSocketConnection(websocket)
    connection.start()

    connection.send("call:ended", {"callId": "c1"})
    assert websocket.frames == []

    await connection.close()
    assert len(websocket.frames) == 1


@pytest.mark.asyncio
async def test_full_queue_drops_frames():
    websocket = FakeWebSocket()
    connection = WebSocketConnection(websocket, max_queue=2)

    assert connection.send("a", {})
    assert connection.send("b", {})
    assert connection.send("c", {}) is False


@pytest.mark.asyncio
async def test_send_after_close_is_dropped():
    connection = WebSocketConnection(FakeWebSocket())
    connection.start()
    await connection.close()

    assert connection.send("presence:update", {}) is False


@pytest.mark.asyncio
async def test_writer_stops_when_peer_goes_away():
    websocket = FakeWebSocket(fail_after=1)
    connection = WebSocketConnection(websocket)
    connection.start()

    connection.send("first", {})
    connection.send("second", {})
    connection.send("third", {})
    await asyncio.sleep(0.01)

    assert [frame["event"] for frame in websocket.frames] == ["first"]
    await asyncio.wait_for(connection.close(), timeout=1.0)


@pytest.mark.asyncio
async def test_writer_stops_when_socket_not_connected():
    websocket = FakeWebSocket()
    websocket.application_state = WebSocketState.DISCONNECTED
    connection = WebSocketConnection(websocket)
    connection.start()

    connection.send("presence:update", {})
    await connection.close()

    assert websocket.frames == []


@pytest.mark.asyncio
async def test_close_without_start():
    connection = WebSocketConnection(FakeWebSocket())

    await connection.close()
    await connection.close()

    assert connection.send("x", {}) is False


@pytest.mark.asyncio
async def test_transport_reset_does_not_escape_close():
    websocket = FakeWebSocket(fail_after=0, error=ConnectionResetError("peer reset"))
    connection = WebSocketConnection(websocket)
    connection.start()

    connection.send("presence:update", {"userId": "bob", "status": "offline"})
    await asyncio.sleep(0.01)

    await connection.close()

    assert websocket.frames == []
    assert connection._writer.done()


@pytest.mark.asyncio
async def test_unexpected_writer_error_does_not_escape_close():
    websocket = FakeWebSocket(fail_after=0, error=ValueError("not serializable"))
    connection = WebSocketConnection(websocket)
    connection.start()

    connection.send("call:ended", {"callId": "c1"})
    await connection.close()

    assert connection._writer.done()


@pytest.mark.asyncio
async def test_cancelled_close_cancels_writer_and_propagates():
    websocket = FakeWebSocket()
    websocket.stalled = asyncio.Event()
    connection = WebSocketConnection(websocket)
    connection.start()
    connection.send("presence:update", {})
    await asyncio.sleep(0)

    closer = asyncio.create_task(connection.close())
    await asyncio.sleep(0)
    closer.cancel()

    with pytest.raises(asyncio.CancelledError):
        await closer
    await asyncio.wait({connection._writer}, timeout=1.0)
    assert connection._writer.cancelled()


def test_connection_requires_send():
    with pytest.raises(TypeError):
        Connection()
