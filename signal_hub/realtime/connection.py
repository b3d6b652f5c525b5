"""
Connection handles.

A Connection is what the registry maps an identity to. Emitting to a
connection only enqueues the frame; a per-socket writer task owns the actual
socket writes, so components can notify peers while holding a call lock
without ever suspending.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from typing import Any

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from signal_hub.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class Connection(ABC):
    """Transport-agnostic connection handle bound to at most one identity."""

    def __init__(self, connection_id: str | None = None):
        self.connection_id = connection_id or uuid.uuid4().hex
        self.user_id: str | None = None

    @abstractmethod
    def send(self, event: str, payload: dict[str, Any]) -> bool:
        """Queue an outbound event. Returns False when it was dropped."""

    async def close(self) -> None:
        """Flush what is queued and stop delivering."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.connection_id} user={self.user_id}>"


class WebSocketConnection(Connection):
    """Connection backed by a FastAPI WebSocket with a bounded outbound queue."""

    def __init__(self, websocket: WebSocket, max_queue: int = 256, connection_id: str | None = None):
        super().__init__(connection_id)
        self.websocket = websocket
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue(maxsize=max_queue)
        self._writer: asyncio.Task | None = None
        self._closed = False

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(
                self._drain(), name=f"ws-writer-{self.connection_id}"
            )

    def send(self, event: str, payload: dict[str, Any]) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait({"event": event, "data": payload})
            return True
        except asyncio.QueueFull:
            logger.warning(
                "Outbound queue full, dropping event",
                connection_id=self.connection_id,
                user_id=self.user_id,
                event_name=event,
            )
            return False

    async def _drain(self) -> None:
        while True:
            frame = await self._queue.get()
            if frame is None:
                return
            if self.websocket.application_state != WebSocketState.CONNECTED:
                return
            try:
                await self.websocket.send_json(frame)
            except (WebSocketDisconnect, RuntimeError, OSError) as e:
                logger.debug(
                    "Peer gone, stopping writer",
                    connection_id=self.connection_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                return
            except Exception:
                logger.exception("Writer failed, stopping", connection_id=self.connection_id)
                return

    async def close(self) -> None:
        """
        Let the writer flush what is queued, for at most 5 seconds.

        If the task calling close() is itself cancelled, the writer is
        cancelled too and the cancellation propagates.
        """
        if self._closed:
            return
        self._closed = True
        writer = self._writer
        if writer is None:
            return
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            writer.cancel()

        try:
            done, _ = await asyncio.wait({writer}, timeout=5.0)
        except asyncio.CancelledError:
            writer.cancel()
            raise

        if not done:
            logger.debug("Writer did not flush in time, cancelling", connection_id=self.connection_id)
            writer.cancel()
