import enum


class ColumnSlug(str, enum.Enum):
    DO = "do"
    DONE = "done"
    IGNORE = "ignore"
    OTHERS = "others"


# Canonical column order: serialization order and remote row order
COLUMN_ORDER: tuple[str, ...] = tuple(slug.value for slug in ColumnSlug)

COLUMN_NAMES: dict[str, str] = {slug.value: slug.value.upper() for slug in ColumnSlug}


class SyncPhase(str, enum.Enum):
    IDLE = "idle"
    PENDING_DEBOUNCE = "pending_debounce"
    IN_FLIGHT = "in_flight"


class ReconcileOutcome(str, enum.Enum):
    PULLED = "pulled"
    PUSHED = "pushed"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


class ChangeOrigin(str, enum.Enum):
    LOCAL = "local"
    REMOTE = "remote"


class ChangeKind(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
