"""Board session: owns the current snapshot and wires the sync engine around it.

Every local edit is applied synchronously, written to the local cache and
only then handed to the scheduler, so the board never waits on the network.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from typing import Any

from dodone.common.enums import COLUMN_NAMES, COLUMN_ORDER, ChangeOrigin, ReconcileOutcome
from dodone.common.logging import get_logger
from dodone.config import settings
from dodone.core.board import operations
from dodone.core.board.history import UndoHistory
from dodone.core.board.schemas import Snapshot
from dodone.core.cache.codec import LocalCacheCodec
from dodone.core.sync.context import SyncContext, SyncState
from dodone.core.sync.listener import RealtimeListener
from dodone.core.sync.reconciler import RemoteReconciler
from dodone.core.sync.scheduler import SyncScheduler
from dodone.integrations.remote_store import RemoteDataService

logger = get_logger("session")

Observer = Callable[[Snapshot, ChangeOrigin], None]


class BoardSession:
    def __init__(
        self,
        codec: LocalCacheCodec,
        remote: RemoteDataService,
        *,
        debounce_seconds: float | None = None,
        retry_seconds: float | None = None,
        history_limit: int | None = None,
        board_name: str | None = None,
    ):
        self.codec = codec
        self.remote = remote
        self.board_name = board_name or settings.BOARD_NAME
        self.context = SyncContext()
        self.state = SyncState()

        self._snapshot = codec.load()
        self.history = UndoHistory(self._snapshot, history_limit)
        self._observers: list[Observer] = []
        self._applying_remote = False
        self._retry_task: asyncio.Task | None = None

        self.reconciler = RemoteReconciler(
            remote,
            self.context,
            self.state,
            get_local=lambda: self._snapshot,
            on_pull=self.apply_remote_snapshot,
            on_push_needed=lambda snapshot: self.scheduler.schedule(snapshot, delay=0),
        )
        self.scheduler = SyncScheduler(
            self.context,
            self.state,
            self.reconciler.push,
            debounce_seconds=debounce_seconds,
            retry_seconds=retry_seconds,
        )
        self.listener = RealtimeListener(remote, self.reconciler.reconcile, lambda: self._snapshot)
        self.subscribe(self._schedule_push)

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """Register ``callback(snapshot, origin)``; returns an unsubscribe function."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self, origin: ChangeOrigin) -> None:
        for callback in list(self._observers):
            try:
                callback(self._snapshot, origin)
            except Exception as e:
                logger.error("Board observer %r failed: %s", callback, e)

    def _schedule_push(self, snapshot: Snapshot, origin: ChangeOrigin) -> None:
        if self._applying_remote or origin is not ChangeOrigin.LOCAL:
            return
        self.scheduler.schedule(snapshot)

    # ------------------------------------------------------------------
    # Identity and board resolution
    # ------------------------------------------------------------------

    async def start(self, owner_id: str | None = None) -> ReconcileOutcome:
        """Attach to the owner's remote board and reconcile with it."""
        owner_id = owner_id or settings.OWNER_ID
        if not owner_id:
            logger.info("No owner configured, board stays local-only")
            return ReconcileOutcome.SKIPPED

        self.context.set_identity(owner_id)
        try:
            await self._resolve_board()
        except Exception as e:
            self.state.last_error = str(e)
            logger.error(
                "Board resolution failed, retrying in %.1fs: %s", self.scheduler.retry_seconds, e
            )
            self._start_retry()
            return ReconcileOutcome.SKIPPED

        outcome = await self.reconciler.reconcile()
        if outcome is ReconcileOutcome.FAILED:
            logger.warning("Initial reconcile failed, retrying in %.1fs", self.scheduler.retry_seconds)
            self._start_retry()
        return outcome

    async def _resolve_board(self) -> None:
        owner_id = self.context.owner_id
        board = await self.remote.find_board(owner_id)
        if board is None:
            board = await self.remote.create_board(owner_id, self.board_name)
            logger.info("Created board %s for owner %s", board.id, owner_id)

        records = {c.slug: c for c in await self.remote.list_columns(board.id, owner_id)}
        missing = [slug for slug in COLUMN_ORDER if slug not in records]
        if missing:
            created = await self.remote.create_columns(
                board.id,
                owner_id,
                [
                    {"slug": slug, "name": COLUMN_NAMES[slug], "sort_order": COLUMN_ORDER.index(slug) + 1}
                    for slug in missing
                ],
            )
            records.update({c.slug: c for c in created})

        if self.context.owner_id != owner_id:
            logger.info("Identity changed during board resolution, discarding result")
            return

        self._snapshot = self._snapshot.model_copy(update={"board_id": board.id})
        self.listener.attach(board.id)
        self.context.resolve(
            board.id,
            {slug: c.id for slug, c in records.items()},
            {slug: c.name for slug, c in records.items()},
        )

    def _start_retry(self) -> None:
        if self._retry_task is not None and not self._retry_task.done():
            return
        self._retry_task = asyncio.get_running_loop().create_task(self._retry_until_synced())

    async def _retry_until_synced(self) -> None:
        """Resolve the board if needed, then reconcile, until a reconcile succeeds."""
        while self.context.owner_id:
            await asyncio.sleep(self.scheduler.retry_seconds)
            if not self.context.ready:
                try:
                    await self._resolve_board()
                except Exception as e:
                    self.state.last_error = str(e)
                    logger.warning("Board resolution retry failed: %s", e)
                    continue
            outcome = await self.reconciler.reconcile()
            if outcome is not ReconcileOutcome.FAILED:
                return
            logger.warning("Reconcile retry failed, trying again in %.1fs", self.scheduler.retry_seconds)

    async def sync_now(self) -> ReconcileOutcome:
        return await self.reconciler.reconcile()

    def sign_out(self) -> None:
        """Drop identity and stop listening. The local board is kept."""
        if self._retry_task is not None:
            self._retry_task.cancel()
            self._retry_task = None
        self.listener.detach()
        self.context.clear()
        logger.info("Signed out, board is local-only")

    async def close(self) -> None:
        if self._retry_task is not None:
            self._retry_task.cancel()
            await asyncio.gather(self._retry_task, return_exceptions=True)
            self._retry_task = None
        self.listener.detach()
        await self.scheduler.aclose()

    # ------------------------------------------------------------------
    # Local edits
    # ------------------------------------------------------------------

    def _commit(self, snapshot: Snapshot) -> Snapshot:
        self._snapshot = snapshot
        self.codec.save(snapshot)
        self.history.record(snapshot)
        self._notify(ChangeOrigin.LOCAL)
        return snapshot

    def insert_item(self, slug: str, text: str, at_index: int = 0) -> Snapshot:
        return self._commit(operations.insert_item(self._snapshot, slug, text, at_index))

    def insert_items(self, slug: str, texts: Iterable[str], at_index: int = 0) -> Snapshot:
        return self._commit(operations.insert_items(self._snapshot, slug, texts, at_index))

    def move_item(self, item_id: str, from_slug: str, to_slug: str, at_index: int = 0) -> Snapshot:
        return self._commit(
            operations.move_item(self._snapshot, item_id, from_slug, to_slug, at_index)
        )

    def reorder_item(self, slug: str, item_id: str, to_index: int) -> Snapshot:
        return self._commit(operations.reorder_item(self._snapshot, slug, item_id, to_index))

    def update_item_text(self, item_id: str, new_text: str) -> Snapshot:
        return self._commit(operations.update_item_text(self._snapshot, item_id, new_text))

    def delete_items(self, item_ids: Iterable[str]) -> Snapshot:
        return self._commit(operations.delete_items(self._snapshot, item_ids))

    def undo(self) -> Snapshot | None:
        restored = self.history.undo(self._snapshot)
        if restored is None:
            return None
        self._snapshot = restored
        self.codec.save(restored)
        self._notify(ChangeOrigin.LOCAL)
        return restored

    # ------------------------------------------------------------------
    # Remote application
    # ------------------------------------------------------------------

    def apply_remote_snapshot(self, snapshot: Snapshot) -> None:
        """Replace local state with a pulled snapshot without scheduling a push."""
        self._applying_remote = True
        try:
            self._snapshot = snapshot
            self.codec.save(snapshot)
            self.history.reset(snapshot)
            self.scheduler.discard_pending(snapshot.last_updated)
            self._notify(ChangeOrigin.REMOTE)
        finally:
            self._applying_remote = False

    def status(self) -> dict[str, Any]:
        return {
            **self.state.status(),
            "ready": self.context.ready,
            "owner_id": self.context.owner_id,
            "board_id": self.context.board_id,
            "listening": self.listener.board_id is not None,
            "can_undo": self.history.can_undo,
            "last_updated": (
                self._snapshot.last_updated.isoformat() if self._snapshot.last_updated else None
            ),
        }
