from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from chat_realtime.realtime.connection import Connection
from chat_realtime.realtime.hub import RealtimeHub
from chat_realtime.realtime.lifecycle import CLOSE_SERVICE_RESTART

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str | None = Query(None),
) -> None:
    hub: RealtimeHub = websocket.app.state.hub
    await websocket.accept()
    if hub.draining:
        await websocket.close(code=CLOSE_SERVICE_RESTART, reason="Server is shutting down")
        return

    lifecycle = await hub.open_connection(websocket, token)
    connection = lifecycle.connection
    heartbeat_task = asyncio.create_task(
        _heartbeat(connection, hub.heartbeat_seconds), name=f"ws-heartbeat-{connection.id}",
    )
    try:
        while not connection.is_terminal:
            raw = await websocket.receive_text()
            await lifecycle.handle_text(raw)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error on connection %s", connection.id)
    finally:
        heartbeat_task.cancel()
        await lifecycle.close()


async def _heartbeat(connection: Connection, interval: float) -> None:
    while not connection.is_terminal:
        await asyncio.sleep(interval)
        connection.send("pong")
