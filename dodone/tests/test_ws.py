import asyncio
import json

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from dodone.api.deps import get_session
from dodone.api.ws import BoardBroadcaster, broadcaster
from dodone.core.session import BoardSession
from dodone.main import app, broadcast_board


class FakeSocket:
    def __init__(self, broken: bool = False):
        self.sent = []
        self.broken = broken
        self.client_state = WebSocketState.CONNECTED

    async def accept(self):
        pass

    async def send_text(self, text):
        if self.broken:
            raise RuntimeError("connection reset")
        self.sent.append(json.loads(text))


@pytest.mark.asyncio
async def test_broadcast_drops_dead_connections():
    connections = BoardBroadcaster()
    alive, dead = FakeSocket(), FakeSocket(broken=True)
    await connections.connect(alive)
    await connections.connect(dead)

    assert await connections.broadcast("board.updated", {"n": 1}) == 1

    assert alive.sent[0]["event"] == "board.updated"
    assert alive.sent[0]["data"] == {"n": 1}
    assert connections.active_connections == 1


@pytest.mark.asyncio
async def test_local_edits_are_broadcast(started_session):
    socket = FakeSocket()
    conn_id = await broadcaster.connect(socket)
    unsubscribe = started_session.subscribe(broadcast_board)
    try:
        started_session.insert_item("do", "shared")
        for _ in range(5):
            await asyncio.sleep(0)
    finally:
        unsubscribe()
        broadcaster.disconnect(conn_id)

    assert socket.sent[0]["event"] == "board.updated"
    assert socket.sent[0]["data"]["origin"] == "local"
    do = socket.sent[0]["data"]["board"]["columns"][0]
    assert do["items"][0]["text"] == "shared"


def test_websocket_sends_board_and_answers_ping(codec, remote):
    board_session = BoardSession(codec, remote)
    board_session.insert_item("do", "hello")
    app.dependency_overrides[get_session] = lambda: board_session
    try:
        client = TestClient(app)
        with client.websocket_connect("/api/v1/ws") as ws:
            first = ws.receive_json()
            assert first["event"] == "board.updated"
            assert first["data"]["board"]["columns"][0]["items"][0]["text"] == "hello"

            ws.send_text(json.dumps({"type": "ping"}))
            assert ws.receive_json() == {"type": "pong"}
    finally:
        app.dependency_overrides.clear()
