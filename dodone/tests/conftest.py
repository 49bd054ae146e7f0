import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from dodone.common.enums import COLUMN_NAMES, COLUMN_ORDER
from dodone.common.exceptions import SyncError
from dodone.core.board.schemas import Snapshot, empty_snapshot
from dodone.core.cache.codec import LocalCacheCodec
from dodone.core.session import BoardSession
from dodone.core.sync.context import SyncContext, SyncState
from dodone.integrations.kv_store import MemoryKeyValueStore
from dodone.integrations.remote_store import InMemoryRemoteStore

OWNER = "owner-1"
T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def stamped(seconds: float, snapshot: Snapshot | None = None) -> Snapshot:
    return (snapshot or empty_snapshot()).model_copy(update={"last_updated": at(seconds)})


def texts(snapshot: Snapshot, slug: str) -> list[str]:
    return [item.text for item in snapshot.columns[slug].items]


async def eventually(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


class FlakyRemoteStore(InMemoryRemoteStore):
    """In-memory store that counts pushes and can fail on demand."""

    def __init__(self):
        super().__init__()
        self.fail_inserts = 0
        self.fail_finds = 0
        self.fail_board_reads = 0
        self.pushes = 0
        self.insert_batches: list[list] = []

    async def insert_many(self, rows):
        if self.fail_inserts:
            self.fail_inserts -= 1
            raise SyncError("insert", "simulated outage")
        await super().insert_many(rows)
        self.insert_batches.append(list(rows))

    async def update_board_timestamp(self, board_id, timestamp):
        await super().update_board_timestamp(board_id, timestamp)
        self.pushes += 1

    async def find_board(self, owner_id):
        if self.fail_finds:
            self.fail_finds -= 1
            raise SyncError("find board", "simulated outage")
        return await super().find_board(owner_id)

    async def get_board(self, board_id):
        if self.fail_board_reads:
            self.fail_board_reads -= 1
            raise SyncError("get board", "simulated outage")
        return await super().get_board(board_id)


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def codec(kv):
    return LocalCacheCodec(kv)


@pytest.fixture
def remote():
    return FlakyRemoteStore()


@pytest.fixture
async def board_env(remote):
    """A remote board with all four columns and a context resolved to it."""
    board = await remote.create_board(OWNER, "Personal Board")
    columns = await remote.create_columns(
        board.id,
        OWNER,
        [
            {"slug": slug, "name": COLUMN_NAMES[slug], "sort_order": idx + 1}
            for idx, slug in enumerate(COLUMN_ORDER)
        ],
    )
    context = SyncContext()
    context.set_identity(OWNER)
    context.resolve(board.id, {c.slug: c.id for c in columns}, {c.slug: c.name for c in columns})
    return context, SyncState(), board


@pytest.fixture
async def session(codec, remote):
    board_session = BoardSession(codec, remote, debounce_seconds=0.01, retry_seconds=0.02)
    yield board_session
    await board_session.close()


@pytest.fixture
async def started_session(session):
    await session.start(OWNER)
    return session


@pytest.fixture
async def client(started_session):
    from dodone.api.deps import get_session
    from dodone.main import app

    app.dependency_overrides[get_session] = lambda: started_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
