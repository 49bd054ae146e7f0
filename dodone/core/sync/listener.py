from __future__ import annotations

from collections.abc import Awaitable, Callable

from dodone.common.enums import ReconcileOutcome
from dodone.common.logging import get_logger
from dodone.core.board.schemas import Snapshot
from dodone.integrations.remote_store import ChangeEvent, RemoteDataService, Subscription

logger = get_logger("sync.listener")


class RealtimeListener:
    """Turns remote change notifications into reconcile calls.

    Events not newer than the local ``last_updated`` are this process's own
    writes coming back and are dropped.
    """

    def __init__(
        self,
        remote: RemoteDataService,
        reconcile: Callable[[], Awaitable[ReconcileOutcome]],
        get_local: Callable[[], Snapshot],
    ):
        self.remote = remote
        self.reconcile = reconcile
        self.get_local = get_local
        self._subscription: Subscription | None = None

    @property
    def board_id(self) -> str | None:
        if self._subscription is None:
            return None
        return self._subscription.board_id

    def attach(self, board_id: str) -> None:
        if self._subscription is not None and self._subscription.board_id == board_id:
            return
        self.detach()
        self._subscription = self.remote.subscribe(board_id, self._on_change)
        logger.info("Listening for changes on board %s", board_id)

    def detach(self) -> None:
        if self._subscription is None:
            return
        self._subscription.close()
        logger.info("Stopped listening on board %s", self._subscription.board_id)
        self._subscription = None

    async def _on_change(self, event: ChangeEvent) -> None:
        if self._subscription is None or event.board_id != self._subscription.board_id:
            return
        if event.timestamp is None:
            logger.debug("Ignoring %s event on %s without timestamp", event.kind.value, event.table)
            return
        local_time = self.get_local().last_updated
        if local_time is not None and event.timestamp <= local_time:
            logger.debug("Ignoring self-echo at %s", event.timestamp.isoformat())
            return
        try:
            outcome = await self.reconcile()
        except Exception as e:
            logger.error("Reconcile after remote change failed: %s", e)
            return
        logger.debug("Remote change on %s reconciled: %s", event.table, outcome.value)
