"""Persisted snapshot wire format.

``{"version", "lastUpdated", "columns": {slug: {"name", "items": [...]}}}``

Decoding works column by column: a column that fails schema validation is
reported and replaced by its default, so one corrupted column never costs
the rest of the board.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError

from dodone.common.enums import COLUMN_ORDER
from dodone.common.exceptions import PersistenceError
from dodone.common.logging import get_logger
from dodone.core.board.operations import new_item_id
from dodone.core.board.schemas import (
    Column,
    Item,
    Snapshot,
    UtcDatetime,
    default_column,
    settle_completion,
    utcnow,
)

logger = get_logger("cache.wire")


class PayloadError(PersistenceError):
    def __init__(self, detail: str, version_mismatch: bool = False):
        super().__init__(detail)
        self.version_mismatch = version_mismatch


class WireItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None
    text: str = ""
    created_at: UtcDatetime | None = Field(default=None, alias="createdAt")
    updated_at: UtcDatetime | None = Field(default=None, alias="updatedAt")
    completed_at: UtcDatetime | None = Field(default=None, alias="completedAt")


class WireColumn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    items: list[WireItem]


class WireHeader(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: str
    last_updated: UtcDatetime | None = Field(default=None, alias="lastUpdated")
    columns: dict[str, Any]


class DecodedSnapshot(BaseModel):
    snapshot: Snapshot
    column_errors: dict[str, str] = {}


def encode(snapshot: Snapshot, version: str) -> str:
    columns: dict[str, Any] = {}
    for column in snapshot.ordered_columns():
        columns[column.slug] = {
            "name": column.name,
            "items": [
                {
                    "id": item.id,
                    "text": item.text,
                    "createdAt": item.created_at.isoformat(),
                    "updatedAt": item.updated_at.isoformat(),
                    "completedAt": item.completed_at.isoformat() if item.completed_at else None,
                }
                for item in column.items
            ],
        }
    return json.dumps(
        {
            "version": version,
            "lastUpdated": snapshot.last_updated.isoformat() if snapshot.last_updated else None,
            "columns": columns,
        }
    )


def _to_item(raw: WireItem, slug: str) -> Item:
    created_at = raw.created_at or utcnow()
    updated_at = raw.updated_at or raw.completed_at or created_at
    item = Item(
        id=raw.id or new_item_id(),
        text=raw.text,
        created_at=created_at,
        updated_at=updated_at,
        completed_at=raw.completed_at,
    )
    return settle_completion(item, slug, updated_at)


def decode(raw: str, version: str) -> DecodedSnapshot:
    """Parse a stored payload.

    Raises ``PayloadError`` when the payload as a whole is unusable (bad JSON,
    wrong top-level shape, or a different version). Column-level problems are
    returned in ``column_errors`` instead.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise PayloadError(f"Cached payload is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise PayloadError("Cached payload is not an object")

    try:
        header = WireHeader.model_validate(data)
    except SchemaError as e:
        raise PayloadError(f"Cached payload header is invalid: {e.error_count()} error(s)") from e
    if header.version != version:
        raise PayloadError(
            f"Cached payload version {header.version!r} != {version!r}", version_mismatch=True
        )

    columns: dict[str, Column] = {}
    errors: dict[str, str] = {}
    seen: set[str] = set()
    for slug in COLUMN_ORDER:
        fallback = default_column(slug)
        if slug not in header.columns:
            columns[slug] = fallback
            continue
        try:
            wire = WireColumn.model_validate(header.columns[slug])
        except SchemaError as e:
            errors[slug] = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            logger.warning("Cached column '%s' is invalid, using default: %s", slug, errors[slug])
            columns[slug] = fallback
            continue

        items = []
        for raw_item in wire.items:
            item = _to_item(raw_item, slug)
            if item.id in seen:
                logger.warning("Dropping duplicate cached item %s in column '%s'", item.id, slug)
                continue
            seen.add(item.id)
            items.append(item)
        columns[slug] = Column(slug=slug, name=wire.name or fallback.name, items=tuple(items))

    snapshot = Snapshot(last_updated=header.last_updated, columns=columns)
    return DecodedSnapshot(snapshot=snapshot, column_errors=errors)
