"""Debounced, coalescing push scheduler.

``idle -> pending_debounce -> in_flight -> idle`` on success, or back to
``pending_debounce`` with the retry delay on failure. Only one timer is ever
live and only one push is ever in flight; mutations arriving meanwhile just
replace the pending snapshot.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime

from dodone.common.enums import SyncPhase
from dodone.common.logging import get_logger
from dodone.config import settings
from dodone.core.board.schemas import Snapshot, utcnow
from dodone.core.sync.context import SyncContext, SyncState

logger = get_logger("sync.scheduler")

PushFn = Callable[[Snapshot], Awaitable[None]]


class SyncScheduler:
    def __init__(
        self,
        context: SyncContext,
        state: SyncState,
        push: PushFn,
        debounce_seconds: float | None = None,
        retry_seconds: float | None = None,
    ):
        self.context = context
        self.state = state
        self.push = push
        self.debounce_seconds = (
            settings.SYNC_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds
        )
        self.retry_seconds = settings.SYNC_RETRY_SECONDS if retry_seconds is None else retry_seconds
        self._timer: asyncio.Task | None = None
        self._flight: asyncio.Task | None = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False
        context.on_ready(self._context_ready)

    @property
    def timer_live(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def schedule(self, snapshot: Snapshot, delay: float | None = None) -> None:
        """Make ``snapshot`` the next push and arm the timer if none is live."""
        self.state.pending_snapshot = snapshot
        if not self.context.ready:
            logger.debug("Push deferred until the board is resolved")
            return
        self._arm(self.debounce_seconds if delay is None else delay)

    def _context_ready(self) -> None:
        if self.state.pending_snapshot is not None:
            logger.info("Board resolved, flushing deferred push")
            self._arm(0)

    def _arm(self, delay: float) -> None:
        if self._closed or self.timer_live or self.state.is_sync_in_flight:
            return
        self.state.phase = SyncPhase.PENDING_DEBOUNCE
        self._idle.clear()
        self._timer = asyncio.get_running_loop().create_task(self._fire(delay))

    async def _fire(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._timer = None
        snapshot = self.state.pending_snapshot
        if snapshot is None or not self.context.ready:
            self._settle()
            return
        self.state.pending_snapshot = None
        self.state.is_sync_in_flight = True
        self.state.phase = SyncPhase.IN_FLIGHT
        self._flight = asyncio.get_running_loop().create_task(self._push(snapshot))

    async def _push(self, snapshot: Snapshot) -> None:
        try:
            await self.push(snapshot)
        except Exception as e:
            self.state.is_sync_in_flight = False
            self.state.consecutive_failures += 1
            self.state.last_error = str(e)
            if self.state.pending_snapshot is None:
                self.state.pending_snapshot = snapshot
            logger.warning(
                "Push failed (attempt %d), retrying in %.1fs: %s",
                self.state.consecutive_failures,
                self.retry_seconds,
                e,
            )
            self._arm(self.retry_seconds)
            self._settle()
            return

        self.state.is_sync_in_flight = False
        self.state.consecutive_failures = 0
        self.state.last_error = None
        self.state.last_push_at = utcnow()
        if self.state.pending_snapshot is not None:
            self._arm(self.debounce_seconds)
        self._settle()

    def _settle(self) -> None:
        if self.timer_live or self.state.is_sync_in_flight:
            return
        self.state.phase = SyncPhase.IDLE
        self._idle.set()

    async def wait_idle(self) -> None:
        await self._idle.wait()

    async def aclose(self) -> None:
        """Cancel the live timer. A push already in flight runs to completion."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            await asyncio.gather(self._timer, return_exceptions=True)
            self._timer = None
        if self._flight is not None:
            await asyncio.gather(self._flight, return_exceptions=True)
        self._settle()

    def discard_pending(self, not_newer_than: datetime | None) -> None:
        """Drop a pending snapshot that a pulled remote state supersedes."""
        pending = self.state.pending_snapshot
        if pending is None or not_newer_than is None:
            return
        if pending.last_updated is None or pending.last_updated <= not_newer_than:
            logger.info("Dropping pending push superseded by remote state")
            self.state.pending_snapshot = None
