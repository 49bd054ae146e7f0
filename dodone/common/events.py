"""Event bus for broadcasting board updates to WebSocket clients."""

from __future__ import annotations

import asyncio

from dodone.common.logging import get_logger

logger = get_logger("events")

BOARD_UPDATED = "board.updated"

_background: set[asyncio.Task] = set()


async def emit(event: str, data: dict) -> None:
    """Broadcast an event to every connected WebSocket client.

    Safe to call from anywhere; no-ops if no clients are connected.
    """
    try:
        from dodone.api.ws import broadcaster
        await broadcaster.broadcast(event, data)
    except Exception as e:
        logger.debug("Event emit failed (non-critical): %s", e)


def emit_nowait(event: str, data: dict) -> None:
    """Fire-and-forget emit for synchronous callers such as board observers."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        logger.debug("No running loop, dropping %s event", event)
        return
    task = loop.create_task(emit(event, data))
    _background.add(task)
    task.add_done_callback(_background.discard)
