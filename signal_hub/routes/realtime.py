"""
realtime.py
-----------
Purpose:
    WebSocket endpoint carrying presence, chat, typing and call signaling.

    - One receive loop per socket: events from one client are handled in
      arrival order.
    - Outbound frames go through the connection's queue and writer task.
    - On disconnect the hub unbinds the socket and ends its calls.

Protocol:
    Client and server exchange JSON envelopes {"event": ..., "data": {...}}.
    The first event must be `join` with the user's id.
"""

import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from signal_hub.config import settings
from signal_hub.infrastructure.observability.logging import get_logger
from signal_hub.realtime.connection import WebSocketConnection
from signal_hub.realtime.hub import ERROR_EVENT, Hub

router = APIRouter(tags=["realtime"])
logger = get_logger(__name__)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    hub: Hub = websocket.app.state.hub

    await websocket.accept()
    connection = WebSocketConnection(websocket, max_queue=settings.WS_SEND_QUEUE_SIZE)
    connection.start()
    logger.info("Client connected", connection_id=connection.connection_id)

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except (json.JSONDecodeError, KeyError):
                connection.send(ERROR_EVENT, {"event": None, "error": "Malformed frame"})
                continue
            await hub.dispatch(connection, frame)

    except WebSocketDisconnect as e:
        logger.info(
            "Client disconnected",
            connection_id=connection.connection_id,
            user_id=connection.user_id,
            code=e.code,
        )
    finally:
        await hub.leave(connection)
        await connection.close()
