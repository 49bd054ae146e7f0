"""Fan-out of board events to connected WebSocket clients."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from dodone.common.logging import get_logger

logger = get_logger("ws.broadcaster")


def _frame(event: str, data: dict) -> str:
    return json.dumps({"event": event, "data": data, "timestamp": datetime.now(timezone.utc).isoformat()})


class BoardBroadcaster:
    """Every client watches the same board, so connections live in one flat map."""

    def __init__(self):
        self._sockets: dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket) -> str:
        await websocket.accept()
        conn_id = uuid.uuid4().hex[:12]
        self._sockets[conn_id] = websocket
        logger.info("WS connected: conn=%s (%d watching)", conn_id, len(self._sockets))
        return conn_id

    def disconnect(self, conn_id: str) -> None:
        if self._sockets.pop(conn_id, None) is not None:
            logger.info("WS disconnected: conn=%s (%d watching)", conn_id, len(self._sockets))

    async def _deliver(self, conn_id: str, websocket: WebSocket, frame: str) -> bool:
        if websocket.client_state != WebSocketState.CONNECTED:
            return True
        try:
            await websocket.send_text(frame)
        except Exception as e:
            logger.debug("Dropping conn=%s after failed send: %s", conn_id, e)
            self.disconnect(conn_id)
            return False
        return True

    async def broadcast(self, event: str, data: dict) -> int:
        """Send to every client; returns how many received it."""
        frame = _frame(event, data)
        delivered = 0
        for conn_id, websocket in list(self._sockets.items()):
            if await self._deliver(conn_id, websocket, frame):
                delivered += 1
        return delivered

    async def send(self, conn_id: str, event: str, data: dict) -> None:
        websocket = self._sockets.get(conn_id)
        if websocket is not None:
            await self._deliver(conn_id, websocket, _frame(event, data))

    @property
    def active_connections(self) -> int:
        return len(self._sockets)


broadcaster = BoardBroadcaster()
