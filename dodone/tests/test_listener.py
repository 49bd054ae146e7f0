import pytest

from conftest import OWNER, at, stamped
from dodone.common.enums import ChangeKind, ReconcileOutcome
from dodone.core.sync.listener import RealtimeListener
from dodone.integrations.remote_store import ChangeEvent


class CountingReconcile:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        return ReconcileOutcome.UNCHANGED


@pytest.fixture
async def listener_env(remote):
    board = await remote.create_board(OWNER, "Personal Board")
    reconcile = CountingReconcile()
    local = {"snapshot": stamped(100)}
    listener = RealtimeListener(remote, reconcile, lambda: local["snapshot"])
    listener.attach(board.id)
    yield listener, reconcile, board
    listener.detach()


@pytest.mark.asyncio
async def test_self_echo_is_ignored(remote, listener_env):
    _, reconcile, board = listener_env
    await remote.update_board_timestamp(board.id, at(50))
    await remote.update_board_timestamp(board.id, at(100))
    await remote.flush_notifications()
    assert reconcile.calls == 0


@pytest.mark.asyncio
async def test_newer_event_triggers_reconcile(remote, listener_env):
    _, reconcile, board = listener_env
    await remote.update_board_timestamp(board.id, at(150))
    await remote.flush_notifications()
    assert reconcile.calls == 1


@pytest.mark.asyncio
async def test_events_for_other_boards_are_ignored(remote, listener_env):
    _, reconcile, _ = listener_env
    other = await remote.create_board("someone-else", "Theirs")
    await remote.update_board_timestamp(other.id, at(500))
    await remote.flush_notifications()
    assert reconcile.calls == 0


@pytest.mark.asyncio
async def test_events_without_timestamp_are_ignored(listener_env):
    listener, reconcile, board = listener_env
    await listener._on_change(ChangeEvent(board_id=board.id, table="todos", kind=ChangeKind.DELETE))
    assert reconcile.calls == 0


@pytest.mark.asyncio
async def test_attach_resubscribes_on_board_change(remote, listener_env):
    listener, _, board = listener_env
    listener.attach(board.id)
    assert remote.subscriber_count(board.id) == 1

    listener.attach("board-2")
    assert remote.subscriber_count(board.id) == 0
    assert remote.subscriber_count("board-2") == 1
    assert listener.board_id == "board-2"


@pytest.mark.asyncio
async def test_detach_stops_delivery(remote, listener_env):
    listener, reconcile, board = listener_env
    listener.detach()
    assert listener.board_id is None
    await remote.update_board_timestamp(board.id, at(999))
    await remote.flush_notifications()
    assert reconcile.calls == 0
