"""Resolved identity and remote ids shared by the sync components."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from pydantic import BaseModel

from dodone.common.enums import COLUMN_ORDER, SyncPhase
from dodone.common.logging import get_logger
from dodone.core.board.schemas import Snapshot

logger = get_logger("sync.context")


class SyncState(BaseModel):
    """Process-local sync bookkeeping. Never persisted."""

    pending_snapshot: Snapshot | None = None
    remote_last_seen: datetime | None = None
    is_sync_in_flight: bool = False
    phase: SyncPhase = SyncPhase.IDLE
    consecutive_failures: int = 0
    last_error: str | None = None
    last_push_at: datetime | None = None

    def status(self) -> dict:
        return self.model_dump(mode="json", exclude={"pending_snapshot"}) | {
            "has_pending": self.pending_snapshot is not None
        }


class SyncContext:
    """Owner identity, board id and column ids once resolved.

    A push needs all three. Listeners registered with ``on_ready`` are called
    each time the context transitions to ready.
    """

    def __init__(self) -> None:
        self.owner_id: str | None = None
        self.board_id: str | None = None
        self.column_ids: dict[str, str] = {}
        self.column_names: dict[str, str] = {}
        self._ready_listeners: list[Callable[[], None]] = []

    @property
    def ready(self) -> bool:
        return bool(
            self.owner_id
            and self.board_id
            and all(slug in self.column_ids for slug in COLUMN_ORDER)
        )

    def on_ready(self, callback: Callable[[], None]) -> None:
        self._ready_listeners.append(callback)

    def set_identity(self, owner_id: str | None) -> None:
        owner_id = owner_id or None
        if owner_id != self.owner_id:
            self.board_id = None
            self.column_ids = {}
            self.column_names = {}
        self.owner_id = owner_id

    def resolve(
        self,
        board_id: str,
        column_ids: dict[str, str],
        column_names: dict[str, str] | None = None,
    ) -> None:
        was_ready = self.ready
        self.board_id = board_id
        self.column_ids = dict(column_ids)
        self.column_names = dict(column_names or {})
        logger.info("Resolved board %s for owner %s", board_id, self.owner_id)
        if self.ready and not was_ready:
            for callback in list(self._ready_listeners):
                callback()

    def clear(self) -> None:
        self.owner_id = None
        self.board_id = None
        self.column_ids = {}
        self.column_names = {}

    def slug_for_column(self, column_id: str) -> str | None:
        for slug, cid in self.column_ids.items():
            if cid == column_id:
                return slug
        return None
