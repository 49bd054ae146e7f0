import asyncio

import pytest

from conftest import eventually, stamped
from dodone.common.enums import COLUMN_ORDER, SyncPhase
from dodone.common.exceptions import SyncError
from dodone.core.sync.context import SyncContext, SyncState
from dodone.core.sync.scheduler import SyncScheduler


class RecordingPush:
    def __init__(self, failures: int = 0):
        self.calls = []
        self.failures = failures
        self.gate: asyncio.Event | None = None

    async def __call__(self, snapshot):
        self.calls.append(snapshot)
        if self.gate is not None:
            await self.gate.wait()
        if self.failures:
            self.failures -= 1
            raise SyncError("push", "boom")


def _ready_context():
    context = SyncContext()
    context.set_identity("owner-1")
    context.resolve("board-1", {slug: f"col-{slug}" for slug in COLUMN_ORDER})
    return context


def _scheduler(push, context=None, debounce=0.01, retry=0.02):
    return SyncScheduler(
        context or _ready_context(),
        SyncState(),
        push,
        debounce_seconds=debounce,
        retry_seconds=retry,
    )


@pytest.mark.asyncio
async def test_rapid_schedules_coalesce_into_one_push():
    push = RecordingPush()
    scheduler = _scheduler(push)
    snapshots = [stamped(i) for i in range(5)]
    for snapshot in snapshots:
        scheduler.schedule(snapshot)

    assert scheduler.state.phase == SyncPhase.PENDING_DEBOUNCE
    await scheduler.wait_idle()

    assert push.calls == [snapshots[-1]]
    assert scheduler.state.pending_snapshot is None
    assert scheduler.state.phase == SyncPhase.IDLE


@pytest.mark.asyncio
async def test_only_one_timer_is_live():
    push = RecordingPush()
    scheduler = _scheduler(push, debounce=0.05)
    scheduler.schedule(stamped(1))
    first_timer = scheduler._timer
    scheduler.schedule(stamped(2))
    assert scheduler._timer is first_timer
    await scheduler.wait_idle()
    assert len(push.calls) == 1


@pytest.mark.asyncio
async def test_failure_retries_until_success():
    push = RecordingPush(failures=2)
    scheduler = _scheduler(push)
    snapshot = stamped(1)
    scheduler.schedule(snapshot)

    await scheduler.wait_idle()

    assert push.calls == [snapshot, snapshot, snapshot]
    assert scheduler.state.consecutive_failures == 0
    assert scheduler.state.last_error is None


@pytest.mark.asyncio
async def test_failed_push_yields_to_newer_pending():
    push = RecordingPush(failures=1)
    push.gate = asyncio.Event()
    scheduler = _scheduler(push)
    scheduler.schedule(stamped(1))
    await eventually(lambda: len(push.calls) == 1)

    scheduler.schedule(stamped(2))
    push.gate.set()
    await scheduler.wait_idle()

    assert [s.last_updated for s in push.calls] == [stamped(1).last_updated, stamped(2).last_updated]


@pytest.mark.asyncio
async def test_newer_snapshot_during_flight_starts_new_cycle():
    push = RecordingPush()
    push.gate = asyncio.Event()
    scheduler = _scheduler(push)
    scheduler.schedule(stamped(1))
    await eventually(lambda: scheduler.state.is_sync_in_flight)

    scheduler.schedule(stamped(2))
    scheduler.schedule(stamped(3))
    assert not scheduler.timer_live
    assert scheduler.state.phase == SyncPhase.IN_FLIGHT

    push.gate.set()
    await scheduler.wait_idle()
    assert [s.last_updated for s in push.calls] == [stamped(1).last_updated, stamped(3).last_updated]


@pytest.mark.asyncio
async def test_push_deferred_until_context_ready():
    push = RecordingPush()
    context = SyncContext()
    context.set_identity("owner-1")
    scheduler = _scheduler(push, context=context)

    scheduler.schedule(stamped(1))
    await asyncio.sleep(0.03)
    assert push.calls == []
    assert scheduler.state.pending_snapshot == stamped(1)

    context.resolve("board-1", {slug: f"col-{slug}" for slug in COLUMN_ORDER})
    await scheduler.wait_idle()
    assert push.calls == [stamped(1)]


@pytest.mark.asyncio
async def test_discard_pending_drops_superseded_snapshot():
    scheduler = _scheduler(RecordingPush(), context=SyncContext())
    scheduler.schedule(stamped(5))
    scheduler.discard_pending(stamped(4).last_updated)
    assert scheduler.state.pending_snapshot is not None
    scheduler.discard_pending(stamped(5).last_updated)
    assert scheduler.state.pending_snapshot is None


@pytest.mark.asyncio
async def test_aclose_cancels_timer():
    push = RecordingPush()
    scheduler = _scheduler(push, debounce=10)
    scheduler.schedule(stamped(1))
    await scheduler.aclose()

    assert push.calls == []
    assert not scheduler.timer_live
    scheduler.schedule(stamped(2))
    assert not scheduler.timer_live
