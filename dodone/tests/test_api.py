import pytest


async def _insert(client, text, slug="do", **extra):
    response = await client.post(f"/api/v1/board/columns/{slug}/items", json={"text": text, **extra})
    assert response.status_code == 201
    return response.json()


def _column(board, slug):
    return next(c for c in board["columns"] if c["slug"] == slug)


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["service"] == "dodone"


@pytest.mark.asyncio
async def test_get_board(client):
    response = await client.get("/api/v1/board")
    assert response.status_code == 200
    data = response.json()
    assert [c["slug"] for c in data["columns"]] == ["do", "done", "ignore", "others"]
    assert data["board_id"] is not None


@pytest.mark.asyncio
async def test_insert_item(client):
    board = await _insert(client, "  Buy milk ")
    item = _column(board, "do")["items"][0]
    assert item["text"] == "Buy milk"
    assert item["completed_at"] is None
    assert board["last_updated"] is not None


@pytest.mark.asyncio
async def test_bulk_insert(client):
    response = await client.post(
        "/api/v1/board/columns/others/items", json={"texts": ["one", "", "two"]}
    )
    assert response.status_code == 201
    assert [i["text"] for i in _column(response.json(), "others")["items"]] == ["one", "two"]


@pytest.mark.asyncio
async def test_insert_validation_errors(client):
    response = await client.post("/api/v1/board/columns/do/items", json={"text": "   "})
    assert response.status_code == 400
    assert "empty" in response.json()["detail"]

    response = await client.post("/api/v1/board/columns/later/items", json={"text": "x"})
    assert response.status_code == 400

    response = await client.post("/api/v1/board/columns/do/items", json={"text": "x", "at_index": -1})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_move_item_to_done(client):
    board = await _insert(client, "Ship it")
    item_id = _column(board, "do")["items"][0]["id"]

    response = await client.post(
        f"/api/v1/board/items/{item_id}/move", json={"from_slug": "do", "to_slug": "done"}
    )
    assert response.status_code == 200
    done = _column(response.json(), "done")["items"]
    assert done[0]["id"] == item_id
    assert done[0]["completed_at"] is not None


@pytest.mark.asyncio
async def test_move_unknown_item(client):
    response = await client.post(
        "/api/v1/board/items/missing/move", json={"from_slug": "do", "to_slug": "done"}
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Item 'missing' not found"


@pytest.mark.asyncio
async def test_reorder_item(client):
    await _insert(client, "second")
    board = await _insert(client, "first")
    item_id = _column(board, "do")["items"][0]["id"]

    response = await client.post(
        f"/api/v1/board/columns/do/items/{item_id}/reorder", json={"to_index": 1}
    )
    assert response.status_code == 200
    assert [i["text"] for i in _column(response.json(), "do")["items"]] == ["second", "first"]


@pytest.mark.asyncio
async def test_update_and_delete(client):
    board = await _insert(client, "draft")
    item_id = _column(board, "do")["items"][0]["id"]

    response = await client.patch(f"/api/v1/board/items/{item_id}", json={"text": "final"})
    assert response.status_code == 200
    assert _column(response.json(), "do")["items"][0]["text"] == "final"

    response = await client.post("/api/v1/board/items/delete", json={"item_ids": [item_id, "nope"]})
    assert response.status_code == 200
    assert _column(response.json(), "do")["items"] == []


@pytest.mark.asyncio
async def test_undo(client):
    response = await client.post("/api/v1/board/undo")
    assert response.status_code == 409

    await _insert(client, "mistake")
    response = await client.post("/api/v1/board/undo")
    assert response.status_code == 200
    assert _column(response.json(), "do")["items"] == []


@pytest.mark.asyncio
async def test_status_and_sync(client):
    response = await client.get("/api/v1/board/status")
    assert response.status_code == 200
    assert response.json()["ready"] is True

    response = await client.post("/api/v1/board/sync")
    assert response.status_code == 200
    assert response.json()["outcome"] == "unchanged"


@pytest.mark.asyncio
async def test_mutation_is_pushed(client, started_session, remote):
    await _insert(client, "sync me")
    await started_session.scheduler.wait_idle()

    rows = await remote.list_rows(started_session.context.board_id, started_session.context.owner_id)
    assert [r.text for r in rows] == ["sync me"]
