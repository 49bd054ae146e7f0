"""Local key-value persistence primitives consumed by the cache codec.

``MemoryKeyValueStore`` keeps strings in a dict (tests, ephemeral shells).
``SqlKeyValueStore`` persists them in the ``kv_entries`` table.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError

from dodone.common.exceptions import PersistenceError
from dodone.common.logging import get_logger
from dodone.db.models.kv_entry import KeyValueEntry
from dodone.db.session import create_cache_engine, create_session_factory, init_schema

logger = get_logger("integrations.kv_store")


class KeyValueStore(Protocol):
    def get_string(self, key: str) -> str | None: ...

    def set_string(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get_string(self, key: str) -> str | None:
        return self._data.get(key)

    def set_string(self, key: str, value: str) -> None:
        self._data[key] = value

    def keys(self) -> list[str]:
        return list(self._data)


class SqlKeyValueStore:
    """Key-value store over a single SQL table. Writes commit immediately."""

    def __init__(self, engine: Engine | None = None, url: str | None = None) -> None:
        if engine is None:
            engine = create_cache_engine(url)
        else:
            init_schema(engine)
        self.engine = engine
        self._session_factory = create_session_factory(self.engine)

    def get_string(self, key: str) -> str | None:
        try:
            with self._session_factory() as session:
                return session.execute(
                    select(KeyValueEntry.value).where(KeyValueEntry.key == key)
                ).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Read of key %s failed: %s", key, e)
            raise PersistenceError(f"Could not read '{key}'") from e

    def set_string(self, key: str, value: str) -> None:
        try:
            with self._session_factory() as session:
                entry = session.get(KeyValueEntry, key)
                if entry is None:
                    session.add(KeyValueEntry(key=key, value=value))
                else:
                    entry.value = value
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Write of key %s failed: %s", key, e)
            raise PersistenceError(f"Could not write '{key}'") from e
