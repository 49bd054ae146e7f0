import pytest
from sqlalchemy import create_engine

from dodone.common.exceptions import PersistenceError
from dodone.integrations.kv_store import MemoryKeyValueStore, SqlKeyValueStore


def test_memory_store():
    store = MemoryKeyValueStore({"a": "1"})
    assert store.get_string("a") == "1"
    assert store.get_string("b") is None
    store.set_string("b", "2")
    assert sorted(store.keys()) == ["a", "b"]


def test_sql_store_overwrites(tmp_path):
    store = SqlKeyValueStore(url=f"sqlite:///{tmp_path / 'kv.db'}")
    assert store.get_string("my-todos") is None
    store.set_string("my-todos", "v1")
    store.set_string("my-todos", "v2")
    assert store.get_string("my-todos") == "v2"


def test_sql_store_wraps_database_errors(tmp_path):
    store = SqlKeyValueStore(url=f"sqlite:///{tmp_path / 'kv.db'}")
    with store.engine.begin() as conn:
        conn.exec_driver_sql("DROP TABLE kv_entries")

    with pytest.raises(PersistenceError):
        store.get_string("my-todos")
    with pytest.raises(PersistenceError):
        store.set_string("my-todos", "value")


def test_sql_store_accepts_engine():
    engine = create_engine("sqlite://")
    store = SqlKeyValueStore(engine=engine)
    store.set_string("k", "v")
    assert store.get_string("k") == "v"
