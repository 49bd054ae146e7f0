"""Whole-board last-write-wins reconciliation against the remote store."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime

from dodone.common.enums import COLUMN_ORDER, ReconcileOutcome
from dodone.common.exceptions import SyncError
from dodone.common.logging import get_logger
from dodone.core.board.schemas import (
    Column,
    Item,
    Snapshot,
    default_column,
    settle_completion,
    utcnow,
)
from dodone.core.sync.context import SyncContext, SyncState
from dodone.integrations.remote_store import RemoteDataService, RemoteRow

logger = get_logger("sync.reconciler")


def _latest(current: datetime | None, candidate: datetime | None) -> datetime | None:
    if candidate is None:
        return current
    if current is None or candidate > current:
        return candidate
    return current


class RemoteReconciler:
    """Pushes snapshots as a full replace and decides pull vs push.

    ``on_pull`` receives a remote snapshot that must replace local state.
    ``on_push_needed`` receives the local snapshot when it is the newer side.
    """

    def __init__(
        self,
        remote: RemoteDataService,
        context: SyncContext,
        state: SyncState,
        get_local: Callable[[], Snapshot],
        on_pull: Callable[[Snapshot], None],
        on_push_needed: Callable[[Snapshot], None],
    ):
        self.remote = remote
        self.context = context
        self.state = state
        self.get_local = get_local
        self.on_pull = on_pull
        self.on_push_needed = on_push_needed
        self._lock = asyncio.Lock()

    def build_rows(self, snapshot: Snapshot, sync_timestamp: datetime) -> list[RemoteRow]:
        rows = []
        for column in snapshot.ordered_columns():
            column_id = self.context.column_ids.get(column.slug)
            if column_id is None:
                continue
            for idx, item in enumerate(column.items):
                rows.append(
                    RemoteRow(
                        id=item.id,
                        board_id=self.context.board_id,
                        column_id=column_id,
                        text=item.text,
                        position=idx + 1,
                        created_at=item.created_at,
                        updated_at=sync_timestamp,
                        completed_at=item.completed_at,
                        owner_id=self.context.owner_id,
                    )
                )
        return rows

    async def push(self, snapshot: Snapshot) -> None:
        """Replace every remote row of the board with ``snapshot``'s items.

        A snapshot older than the last remote state seen is not sent: the
        remote side already won.
        """
        if not self.context.ready:
            raise SyncError("push", "board not resolved")
        async with self._lock:
            seen = self.state.remote_last_seen
            if snapshot.last_updated is not None and seen is not None and snapshot.last_updated < seen:
                logger.info("Skipping push of %s, remote is at %s", snapshot.last_updated, seen)
                return

            board_id, owner_id = self.context.board_id, self.context.owner_id
            sync_timestamp = snapshot.last_updated or utcnow()
            rows = self.build_rows(snapshot, sync_timestamp)

            await self.remote.delete_where(board_id, owner_id)
            if rows:
                await self.remote.insert_many(rows)
            await self.remote.update_board_timestamp(board_id, sync_timestamp)

            self.state.remote_last_seen = sync_timestamp
            logger.info(
                "Pushed %d rows to board %s at %s", len(rows), board_id, sync_timestamp.isoformat()
            )

    async def pull(self) -> tuple[Snapshot, datetime | None]:
        """Rebuild a snapshot from the remote board and its effective timestamp."""
        if not self.context.ready:
            raise SyncError("pull", "board not resolved")
        board_id, owner_id = self.context.board_id, self.context.owner_id

        board = await self.remote.get_board(board_id)
        if board is None:
            raise SyncError("pull", f"board {board_id} not found")
        rows = await self.remote.list_rows(board_id, owner_id)

        latest = board.updated_at
        items: dict[str, list[Item]] = {slug: [] for slug in COLUMN_ORDER}
        for row in sorted(rows, key=lambda r: r.position):
            slug = self.context.slug_for_column(row.column_id)
            if slug is None:
                logger.debug("Skipping row %s in unknown column %s", row.id, row.column_id)
                continue
            item = Item(
                id=row.id,
                text=row.text,
                created_at=row.created_at,
                updated_at=row.updated_at,
                completed_at=row.completed_at,
            )
            items[slug].append(settle_completion(item, slug, row.updated_at))
            for candidate in (row.completed_at, row.updated_at, row.created_at):
                latest = _latest(latest, candidate)

        columns = {
            slug: Column(
                slug=slug,
                name=self.context.column_names.get(slug) or default_column(slug).name,
                items=tuple(items[slug]),
            )
            for slug in COLUMN_ORDER
        }
        self.state.remote_last_seen = latest
        return Snapshot(board_id=board_id, last_updated=latest, columns=columns), latest

    async def reconcile(self) -> ReconcileOutcome:
        """Pull, compare timestamps, and let the newer side win entirely."""
        if not self.context.ready:
            return ReconcileOutcome.SKIPPED

        async with self._lock:
            try:
                remote_snapshot, remote_time = await self.pull()
            except Exception as e:
                logger.error("Reconcile pull failed: %s", e)
                self.state.last_error = str(e)
                return ReconcileOutcome.FAILED

            local = self.get_local()
            local_time = local.last_updated

            if remote_time is not None and (local_time is None or remote_time > local_time):
                logger.info("Remote board is newer (%s > %s), pulling", remote_time, local_time)
                self.on_pull(remote_snapshot)
                return ReconcileOutcome.PULLED

            if local_time is not None and (remote_time is None or local_time > remote_time):
                logger.info("Local board is newer (%s > %s), pushing", local_time, remote_time)
                self.on_push_needed(local)
                return ReconcileOutcome.PUSHED

            return ReconcileOutcome.UNCHANGED
