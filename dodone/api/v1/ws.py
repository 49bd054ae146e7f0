"""WebSocket endpoint streaming board updates."""

from __future__ import annotations

import json

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from dodone.api.deps import get_session
from dodone.api.v1.board import BoardResponse
from dodone.api.ws import broadcaster
from dodone.common.events import BOARD_UPDATED
from dodone.common.logging import get_logger
from dodone.core.session import BoardSession

router = APIRouter(tags=["WebSocket"])

logger = get_logger("ws")


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket, session: BoardSession = Depends(get_session)):
    """Send the current board on connect, then every ``board.updated`` event."""
    conn_id = await broadcaster.connect(ws)
    await broadcaster.send(
        conn_id,
        BOARD_UPDATED,
        {
            "origin": "snapshot",
            "board": BoardResponse.from_snapshot(session.snapshot).model_dump(mode="json"),
        },
    )
    try:
        while True:
            data = await ws.receive_text()
            # Handle ping/pong
            try:
                msg = json.loads(data)
                if isinstance(msg, dict) and msg.get("type") == "ping":
                    await ws.send_json({"type": "pong"})
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON frame from %s", conn_id)
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(conn_id)
