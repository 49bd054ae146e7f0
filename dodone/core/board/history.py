from __future__ import annotations

from collections import deque
from datetime import datetime

from dodone.config import settings
from dodone.core.board.schemas import Snapshot, next_stamp


class UndoHistory:
    """Bounded stack of board states produced by local edits."""

    def __init__(self, initial: Snapshot, limit: int | None = None):
        self.limit = limit or settings.HISTORY_LIMIT
        self._states: deque[Snapshot] = deque([initial], maxlen=self.limit)

    def __len__(self) -> int:
        return len(self._states)

    @property
    def can_undo(self) -> bool:
        return len(self._states) >= 2

    def record(self, snapshot: Snapshot) -> None:
        if self._states and self._states[-1].same_content(snapshot):
            self._states[-1] = snapshot
            return
        self._states.append(snapshot)

    def reset(self, snapshot: Snapshot) -> None:
        self._states.clear()
        self._states.append(snapshot)

    def undo(self, current: Snapshot, *, now: datetime | None = None) -> Snapshot | None:
        """Return the previous board state as a new local edit, or None.

        The restored snapshot carries a fresh ``last_updated`` so it wins over
        the state it replaces on every other device.
        """
        if not self.can_undo:
            return None
        self._states.pop()
        previous = self._states[-1]
        restored = current.model_copy(
            update={"columns": previous.columns, "last_updated": next_stamp(current.last_updated, now)}
        )
        self._states[-1] = restored
        return restored
