"""Remote board store.

Uses a PostgREST-style HTTP API when a real key is configured, otherwise
falls back to a process-local store for development and tests.
"""

from __future__ import annotations

import asyncio
import uuid
from abc import abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict

from dodone.common.enums import ChangeKind
from dodone.common.exceptions import SyncError
from dodone.config import settings
from dodone.core.board.schemas import UtcDatetime
from dodone.integrations.base import BaseIntegration

TODOS_TABLE = "todos"
BOARDS_TABLE = "boards"
COLUMNS_TABLE = "board_columns"


def _is_mock() -> bool:
    return settings.REMOTE_API_KEY.startswith("mock_")


def _id() -> str:
    return str(uuid.uuid4())


class RemoteRow(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    board_id: str
    column_id: str
    text: str
    position: int
    created_at: UtcDatetime
    updated_at: UtcDatetime
    completed_at: UtcDatetime | None = None
    owner_id: str


class BoardRecord(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    owner_id: str
    name: str
    updated_at: UtcDatetime | None = None


class ColumnRecord(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    board_id: str
    owner_id: str
    slug: str
    name: str
    sort_order: int


class ChangeEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    board_id: str
    table: str
    kind: ChangeKind
    timestamp: UtcDatetime | None = None


ChangeCallback = Callable[[ChangeEvent], Awaitable[None]]


class Subscription:
    """Handle returned by ``subscribe``; ``close`` stops delivery."""

    def __init__(self, board_id: str, cancel: Callable[[], None]):
        self.board_id = board_id
        self._cancel = cancel
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._cancel()


class RemoteDataService(BaseIntegration):
    """Operations the sync engine needs from the remote store."""

    @abstractmethod
    async def list_rows(self, board_id: str, owner_id: str) -> list[RemoteRow]:
        """All rows of the board, ordered by position ascending."""

    @abstractmethod
    async def delete_where(self, board_id: str, owner_id: str) -> None: ...

    @abstractmethod
    async def insert_many(self, rows: list[RemoteRow]) -> None: ...

    @abstractmethod
    async def update_board_timestamp(self, board_id: str, timestamp: datetime) -> None: ...

    @abstractmethod
    def subscribe(self, board_id: str, on_change: ChangeCallback) -> Subscription: ...

    @abstractmethod
    async def find_board(self, owner_id: str) -> BoardRecord | None: ...

    @abstractmethod
    async def create_board(self, owner_id: str, name: str) -> BoardRecord: ...

    @abstractmethod
    async def get_board(self, board_id: str) -> BoardRecord | None: ...

    @abstractmethod
    async def list_columns(self, board_id: str, owner_id: str) -> list[ColumnRecord]: ...

    @abstractmethod
    async def create_columns(
        self, board_id: str, owner_id: str, columns: list[dict[str, Any]]
    ) -> list[ColumnRecord]:
        """Create columns from ``{"slug", "name", "sort_order"}`` dicts."""


class InMemoryRemoteStore(RemoteDataService):
    """Process-local remote store.

    Change notifications are delivered on separate tasks, like a real
    realtime channel. ``flush_notifications`` waits for them.
    """

    def __init__(self) -> None:
        super().__init__("remote_memory")
        self.boards: dict[str, BoardRecord] = {}
        self.columns: dict[str, ColumnRecord] = {}
        self.rows: dict[str, RemoteRow] = {}
        self._subscribers: dict[int, tuple[str, ChangeCallback]] = {}
        self._next_token = 0
        self._pending: set[asyncio.Task] = set()

    async def health_check(self) -> bool:
        self.logger.info("Remote store health check: OK (mock)")
        return True

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, board_id: str, on_change: ChangeCallback) -> Subscription:
        token = self._next_token
        self._next_token += 1
        self._subscribers[token] = (board_id, on_change)
        self.logger.debug("Subscribed to board %s (token=%d)", board_id, token)
        return Subscription(board_id, lambda: self._subscribers.pop(token, None))

    def subscriber_count(self, board_id: str | None = None) -> int:
        return sum(1 for bid, _ in self._subscribers.values() if board_id in (None, bid))

    def _notify(self, event: ChangeEvent) -> None:
        loop = asyncio.get_running_loop()
        for board_id, callback in list(self._subscribers.values()):
            if board_id != event.board_id:
                continue
            task = loop.create_task(callback(event))
            self._pending.add(task)
            task.add_done_callback(self._delivered)

    def _delivered(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            self.logger.error("Change callback failed: %s", task.exception())

    async def flush_notifications(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    async def list_rows(self, board_id: str, owner_id: str) -> list[RemoteRow]:
        rows = [
            row
            for row in self.rows.values()
            if row.board_id == board_id and row.owner_id == owner_id
        ]
        return sorted(rows, key=lambda r: r.position)

    async def delete_where(self, board_id: str, owner_id: str) -> None:
        doomed = [
            row_id
            for row_id, row in self.rows.items()
            if row.board_id == board_id and row.owner_id == owner_id
        ]
        for row_id in doomed:
            del self.rows[row_id]
        self.logger.debug("Deleted %d rows from board %s", len(doomed), board_id)
        if doomed:
            self._notify(ChangeEvent(board_id=board_id, table=TODOS_TABLE, kind=ChangeKind.DELETE))

    async def insert_many(self, rows: list[RemoteRow]) -> None:
        for row in rows:
            if row.id in self.rows:
                raise SyncError("insert", f"duplicate row id {row.id}")
        for row in rows:
            self.rows[row.id] = row
        for row in rows:
            self._notify(
                ChangeEvent(
                    board_id=row.board_id,
                    table=TODOS_TABLE,
                    kind=ChangeKind.INSERT,
                    timestamp=row.updated_at,
                )
            )

    # ------------------------------------------------------------------
    # Boards and columns
    # ------------------------------------------------------------------

    async def update_board_timestamp(self, board_id: str, timestamp: datetime) -> None:
        board = self.boards.get(board_id)
        if board is None:
            raise SyncError("update board", f"board {board_id} not found")
        self.boards[board_id] = board.model_copy(update={"updated_at": timestamp})
        self._notify(
            ChangeEvent(
                board_id=board_id,
                table=BOARDS_TABLE,
                kind=ChangeKind.UPDATE,
                timestamp=self.boards[board_id].updated_at,
            )
        )

    async def find_board(self, owner_id: str) -> BoardRecord | None:
        for board in self.boards.values():
            if board.owner_id == owner_id:
                return board
        return None

    async def create_board(self, owner_id: str, name: str) -> BoardRecord:
        board = BoardRecord(id=_id(), owner_id=owner_id, name=name)
        self.boards[board.id] = board
        self.logger.info("Created mock board '%s' (id=%s)", name, board.id)
        return board

    async def get_board(self, board_id: str) -> BoardRecord | None:
        return self.boards.get(board_id)

    async def list_columns(self, board_id: str, owner_id: str) -> list[ColumnRecord]:
        columns = [
            c for c in self.columns.values() if c.board_id == board_id and c.owner_id == owner_id
        ]
        return sorted(columns, key=lambda c: c.sort_order)

    async def create_columns(
        self, board_id: str, owner_id: str, columns: list[dict[str, Any]]
    ) -> list[ColumnRecord]:
        created = []
        for column in columns:
            record = ColumnRecord(id=_id(), board_id=board_id, owner_id=owner_id, **column)
            self.columns[record.id] = record
            created.append(record)
        return created


class RestRemoteStore(RemoteDataService):
    """PostgREST-style remote store over httpx.

    Realtime delivery is approximated by polling the board's ``updated_at``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        poll_interval: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__("remote_rest")
        self.base_url = (base_url or settings.REMOTE_URL).rstrip("/")
        self.api_key = api_key or settings.REMOTE_API_KEY
        self.poll_interval = poll_interval or settings.REMOTE_POLL_INTERVAL
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Prefer": "return=representation",
        }

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            async with httpx.AsyncClient(
                base_url=f"{self.base_url}/rest/v1",
                headers=self._headers(),
                timeout=settings.REMOTE_TIMEOUT,
                transport=self._transport,
            ) as client:
                resp = await client.request(method, path, **kwargs)
                resp.raise_for_status()
                if not resp.content:
                    return None
                return resp.json()
        except httpx.HTTPError as e:
            self.logger.error("%s %s failed: %s", method, path, e)
            raise SyncError(f"{method} {path}", str(e)) from e

    async def health_check(self) -> bool:
        try:
            await self._request("GET", f"/{BOARDS_TABLE}", params={"select": "id", "limit": "1"})
            return True
        except SyncError as e:
            self.logger.error("Remote store health check failed: %s", e.detail)
            return False

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    async def list_rows(self, board_id: str, owner_id: str) -> list[RemoteRow]:
        data = await self._request(
            "GET",
            f"/{TODOS_TABLE}",
            params={
                "select": "*",
                "board_id": f"eq.{board_id}",
                "owner_id": f"eq.{owner_id}",
                "order": "position.asc",
            },
        )
        return [RemoteRow.model_validate(row) for row in data or []]

    async def delete_where(self, board_id: str, owner_id: str) -> None:
        await self._request(
            "DELETE",
            f"/{TODOS_TABLE}",
            params={"board_id": f"eq.{board_id}", "owner_id": f"eq.{owner_id}"},
        )

    async def insert_many(self, rows: list[RemoteRow]) -> None:
        await self._request(
            "POST", f"/{TODOS_TABLE}", json=[row.model_dump(mode="json") for row in rows]
        )
        self.logger.info("Inserted %d rows", len(rows))

    # ------------------------------------------------------------------
    # Boards and columns
    # ------------------------------------------------------------------

    async def update_board_timestamp(self, board_id: str, timestamp: datetime) -> None:
        await self._request(
            "PATCH",
            f"/{BOARDS_TABLE}",
            params={"id": f"eq.{board_id}"},
            json={"updated_at": timestamp.isoformat()},
        )

    async def find_board(self, owner_id: str) -> BoardRecord | None:
        data = await self._request(
            "GET",
            f"/{BOARDS_TABLE}",
            params={
                "select": "id,owner_id,name,updated_at",
                "owner_id": f"eq.{owner_id}",
                "order": "created_at.asc",
                "limit": "1",
            },
        )
        return BoardRecord.model_validate(data[0]) if data else None

    async def create_board(self, owner_id: str, name: str) -> BoardRecord:
        data = await self._request(
            "POST", f"/{BOARDS_TABLE}", json={"owner_id": owner_id, "name": name}
        )
        if not data:
            raise SyncError("create board", "empty response")
        board = BoardRecord.model_validate(data[0])
        self.logger.info("Created board '%s' (id=%s)", name, board.id)
        return board

    async def get_board(self, board_id: str) -> BoardRecord | None:
        data = await self._request(
            "GET",
            f"/{BOARDS_TABLE}",
            params={"select": "id,owner_id,name,updated_at", "id": f"eq.{board_id}"},
        )
        return BoardRecord.model_validate(data[0]) if data else None

    async def list_columns(self, board_id: str, owner_id: str) -> list[ColumnRecord]:
        data = await self._request(
            "GET",
            f"/{COLUMNS_TABLE}",
            params={
                "select": "*",
                "board_id": f"eq.{board_id}",
                "owner_id": f"eq.{owner_id}",
                "order": "sort_order.asc",
            },
        )
        return [ColumnRecord.model_validate(c) for c in data or []]

    async def create_columns(
        self, board_id: str, owner_id: str, columns: list[dict[str, Any]]
    ) -> list[ColumnRecord]:
        payload = [{**column, "board_id": board_id, "owner_id": owner_id} for column in columns]
        data = await self._request("POST", f"/{COLUMNS_TABLE}", json=payload)
        return [ColumnRecord.model_validate(c) for c in data or []]

    # ------------------------------------------------------------------
    # Change polling
    # ------------------------------------------------------------------

    def subscribe(self, board_id: str, on_change: ChangeCallback) -> Subscription:
        task = asyncio.get_running_loop().create_task(self._poll(board_id, on_change))
        return Subscription(board_id, task.cancel)

    async def _poll(self, board_id: str, on_change: ChangeCallback) -> None:
        last_seen: datetime | None = None
        baseline = True
        while True:
            try:
                board = await self.get_board(board_id)
            except SyncError:
                board = None
            if board is not None:
                if not baseline and board.updated_at != last_seen:
                    await on_change(
                        ChangeEvent(
                            board_id=board_id,
                            table=BOARDS_TABLE,
                            kind=ChangeKind.UPDATE,
                            timestamp=board.updated_at,
                        )
                    )
                last_seen = board.updated_at
                baseline = False
            await asyncio.sleep(self.poll_interval)


def create_remote_store() -> RemoteDataService:
    if _is_mock():
        return InMemoryRemoteStore()
    return RestRemoteStore()


