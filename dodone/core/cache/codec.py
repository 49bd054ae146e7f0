from __future__ import annotations

from dodone.common.exceptions import PersistenceError
from dodone.common.logging import get_logger
from dodone.config import settings
from dodone.core.board.schemas import Snapshot, empty_snapshot
from dodone.core.cache import wire
from dodone.core.cache.wire import PayloadError
from dodone.integrations.kv_store import KeyValueStore

logger = get_logger("cache.codec")


class LocalCacheCodec:
    """Persists snapshots to a key-value store with a backup slot.

    ``load`` never raises: it falls back from the primary slot to the backup
    (repairing the primary) and finally to an empty board. ``save`` never
    raises either; it reports success as a bool.
    """

    def __init__(
        self,
        store: KeyValueStore,
        primary_key: str | None = None,
        backup_key: str | None = None,
        legacy_key: str | None = None,
        version: str | None = None,
    ):
        self.store = store
        self.primary_key = primary_key or settings.CACHE_PRIMARY_KEY
        self.backup_key = backup_key or settings.CACHE_BACKUP_KEY
        self.legacy_key = legacy_key or settings.CACHE_LEGACY_KEY
        self.version = version or settings.CACHE_VERSION

    def encode(self, snapshot: Snapshot) -> str:
        return wire.encode(snapshot, self.version)

    def decode(self, raw: str) -> Snapshot:
        return wire.decode(raw, self.version).snapshot

    def _read(self, key: str) -> str | None:
        try:
            return self.store.get_string(key)
        except PersistenceError as e:
            logger.error("Cache slot %s unreadable: %s", key, e.detail)
            return None

    def _try_decode(self, key: str, raw: str | None) -> Snapshot | None:
        if raw is None:
            return None
        try:
            decoded = wire.decode(raw, self.version)
        except PayloadError as e:
            logger.warning("Cache slot %s rejected: %s", key, e.detail)
            if e.version_mismatch:
                self._preserve_legacy(raw)
            return None
        if decoded.column_errors:
            logger.warning(
                "Cache slot %s recovered with %d defaulted column(s)",
                key,
                len(decoded.column_errors),
            )
        return decoded.snapshot

    def _preserve_legacy(self, raw: str) -> None:
        if self._read(self.legacy_key) is not None:
            return
        try:
            self.store.set_string(self.legacy_key, raw)
            logger.info("Preserved out-of-version payload under %s", self.legacy_key)
        except PersistenceError as e:
            logger.error("Could not preserve legacy payload: %s", e.detail)

    def load(self) -> Snapshot:
        snapshot = self._try_decode(self.primary_key, self._read(self.primary_key))
        if snapshot is not None:
            return snapshot

        backup_raw = self._read(self.backup_key)
        snapshot = self._try_decode(self.backup_key, backup_raw)
        if snapshot is not None:
            logger.info("Restored board from backup slot, repairing primary")
            try:
                self.store.set_string(self.primary_key, backup_raw)
            except PersistenceError as e:
                logger.error("Primary slot repair failed: %s", e.detail)
            return snapshot

        logger.info("No usable cached board, starting empty")
        return empty_snapshot()

    def save(self, snapshot: Snapshot) -> bool:
        payload = self.encode(snapshot)
        previous = self._read(self.backup_key)
        try:
            self.store.set_string(self.primary_key, payload)
            self.store.set_string(self.backup_key, payload)
            return True
        except PersistenceError as e:
            logger.error("Saving board to cache failed: %s", e.detail)
            if previous is not None:
                try:
                    self.store.set_string(self.primary_key, previous)
                except PersistenceError as restore_error:
                    logger.error("Primary slot restore failed: %s", restore_error.detail)
            return False
