from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from dodone.api.deps import get_session
from dodone.common.exceptions import DoDoneError
from dodone.core.board.schemas import Snapshot
from dodone.core.session import BoardSession

router = APIRouter(tags=["Board"])


# ---------- Schemas ----------


class ItemResponse(BaseModel):
    id: str
    text: str
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None


class ColumnResponse(BaseModel):
    slug: str
    name: str
    items: list[ItemResponse]


class BoardResponse(BaseModel):
    board_id: str | None
    last_updated: datetime | None
    columns: list[ColumnResponse]

    @classmethod
    def from_snapshot(cls, snapshot: Snapshot) -> "BoardResponse":
        return cls(
            board_id=snapshot.board_id,
            last_updated=snapshot.last_updated,
            columns=[
                ColumnResponse(
                    slug=column.slug,
                    name=column.name,
                    items=[ItemResponse(**item.model_dump()) for item in column.items],
                )
                for column in snapshot.ordered_columns()
            ],
        )


class SyncStatusResponse(BaseModel):
    ready: bool
    owner_id: str | None
    board_id: str | None
    listening: bool
    phase: str
    has_pending: bool
    is_sync_in_flight: bool
    consecutive_failures: int
    last_error: str | None
    remote_last_seen: datetime | None
    last_push_at: datetime | None
    last_updated: datetime | None
    can_undo: bool


class InsertRequest(BaseModel):
    text: str | None = None
    texts: list[str] | None = None
    at_index: int = Field(default=0, ge=0)


class MoveRequest(BaseModel):
    from_slug: str
    to_slug: str
    at_index: int = Field(default=0, ge=0)


class ReorderRequest(BaseModel):
    to_index: int = Field(ge=0)


class UpdateTextRequest(BaseModel):
    text: str


class DeleteRequest(BaseModel):
    item_ids: list[str]


class SyncResponse(BaseModel):
    outcome: str
    status: SyncStatusResponse


# ---------- Endpoints ----------


@router.get("/board", response_model=BoardResponse)
async def get_board(session: BoardSession = Depends(get_session)):
    return BoardResponse.from_snapshot(session.snapshot)


@router.get("/board/status", response_model=SyncStatusResponse)
async def get_sync_status(session: BoardSession = Depends(get_session)):
    return SyncStatusResponse(**session.status())


@router.post("/board/columns/{slug}/items", response_model=BoardResponse, status_code=201)
async def insert_items(
    slug: str,
    body: InsertRequest,
    session: BoardSession = Depends(get_session),
):
    if body.texts is not None:
        snapshot = session.insert_items(slug, body.texts, body.at_index)
    else:
        snapshot = session.insert_item(slug, body.text or "", body.at_index)
    return BoardResponse.from_snapshot(snapshot)


@router.post("/board/items/{item_id}/move", response_model=BoardResponse)
async def move_item(
    item_id: str,
    body: MoveRequest,
    session: BoardSession = Depends(get_session),
):
    snapshot = session.move_item(item_id, body.from_slug, body.to_slug, body.at_index)
    return BoardResponse.from_snapshot(snapshot)


@router.post("/board/columns/{slug}/items/{item_id}/reorder", response_model=BoardResponse)
async def reorder_item(
    slug: str,
    item_id: str,
    body: ReorderRequest,
    session: BoardSession = Depends(get_session),
):
    snapshot = session.reorder_item(slug, item_id, body.to_index)
    return BoardResponse.from_snapshot(snapshot)


@router.patch("/board/items/{item_id}", response_model=BoardResponse)
async def update_item_text(
    item_id: str,
    body: UpdateTextRequest,
    session: BoardSession = Depends(get_session),
):
    snapshot = session.update_item_text(item_id, body.text)
    return BoardResponse.from_snapshot(snapshot)


@router.post("/board/items/delete", response_model=BoardResponse)
async def delete_items(body: DeleteRequest, session: BoardSession = Depends(get_session)):
    return BoardResponse.from_snapshot(session.delete_items(body.item_ids))


@router.post("/board/undo", response_model=BoardResponse)
async def undo(session: BoardSession = Depends(get_session)):
    snapshot = session.undo()
    if snapshot is None:
        raise DoDoneError("Nothing to undo", status_code=409)
    return BoardResponse.from_snapshot(snapshot)


@router.post("/board/sync", response_model=SyncResponse)
async def sync_now(session: BoardSession = Depends(get_session)):
    outcome = await session.sync_now()
    return SyncResponse(outcome=outcome.value, status=SyncStatusResponse(**session.status()))
