"""DoDone integration clients.

Remote board stores implement ``RemoteDataService``; ``create_remote_store``
returns the in-memory store while the API key is a ``mock_`` key. Local
persistence goes through a ``KeyValueStore``.
"""

from dodone.integrations.base import BaseIntegration
from dodone.integrations.kv_store import KeyValueStore, MemoryKeyValueStore, SqlKeyValueStore
from dodone.integrations.remote_store import (
    InMemoryRemoteStore,
    RemoteDataService,
    RestRemoteStore,
    create_remote_store,
)

__all__ = [
    "BaseIntegration",
    "InMemoryRemoteStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "RemoteDataService",
    "RestRemoteStore",
    "SqlKeyValueStore",
    "create_remote_store",
]
