"""Pure snapshot transformations.

Every function takes a ``Snapshot`` and returns a new one stamped with a fresh
``last_updated``. Invalid input raises before anything is built, so callers
never observe a partially applied change.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime

from dodone.common.enums import ColumnSlug
from dodone.common.exceptions import NotFoundError, ValidationError
from dodone.config import settings
from dodone.core.board.schemas import Column, Item, Snapshot, next_stamp, settle_completion


def sanitize_text(text: object) -> str:
    if not isinstance(text, str):
        return ""
    return text.strip()[: settings.MAX_ITEM_LENGTH]


def new_item_id() -> str:
    return str(uuid.uuid4())


def find_item(snapshot: Snapshot, item_id: str) -> tuple[str, int, Item] | None:
    """Locate an item anywhere on the board as ``(slug, index, item)``."""
    for column in snapshot.ordered_columns():
        idx = column.index_of(item_id)
        if idx >= 0:
            return column.slug, idx, column.items[idx]
    return None


def _stamp(snapshot: Snapshot, now: datetime | None) -> datetime:
    return next_stamp(snapshot.last_updated, now)


def _clamp(index: int, length: int) -> int:
    return max(0, min(index, length))


def _require_column(snapshot: Snapshot, slug: str) -> Column:
    column = snapshot.column(slug)
    if column is None:
        raise NotFoundError("Column", slug)
    return column


def _replace(snapshot: Snapshot, stamp: datetime, *columns: Column) -> Snapshot:
    updated = dict(snapshot.columns)
    for column in columns:
        updated[column.slug] = column
    return snapshot.model_copy(update={"columns": updated, "last_updated": stamp})


def insert_item(
    snapshot: Snapshot, slug: str, text: str, at_index: int = 0, *, now: datetime | None = None
) -> Snapshot:
    return insert_items(snapshot, slug, [text], at_index, now=now)


def insert_items(
    snapshot: Snapshot,
    slug: str,
    texts: Iterable[str],
    at_index: int = 0,
    *,
    now: datetime | None = None,
) -> Snapshot:
    """Insert one item per non-empty text, keeping their order, starting at ``at_index``."""
    column = snapshot.column(slug)
    if column is None:
        raise ValidationError(f"Unknown column '{slug}'")

    cleaned = [t for t in (sanitize_text(t) for t in texts) if t]
    if not cleaned:
        raise ValidationError("Item text is empty")

    stamp = _stamp(snapshot, now)
    completed_at = stamp if slug == ColumnSlug.DONE.value else None
    new_items = [
        Item(
            id=new_item_id(),
            text=text,
            created_at=stamp,
            updated_at=stamp,
            completed_at=completed_at,
        )
        for text in cleaned
    ]

    items = list(column.items)
    pos = _clamp(at_index, len(items))
    items[pos:pos] = new_items
    return _replace(snapshot, stamp, column.model_copy(update={"items": tuple(items)}))


def move_item(
    snapshot: Snapshot,
    item_id: str,
    from_slug: str,
    to_slug: str,
    at_index: int = 0,
    *,
    now: datetime | None = None,
) -> Snapshot:
    source = _require_column(snapshot, from_slug)
    target = _require_column(snapshot, to_slug)
    idx = source.index_of(item_id)
    if idx < 0:
        raise NotFoundError("Item", item_id)

    stamp = _stamp(snapshot, now)
    item = source.items[idx]
    moved = settle_completion(item.model_copy(update={"updated_at": stamp}), to_slug, stamp)

    remaining = list(source.items[:idx] + source.items[idx + 1 :])
    if from_slug == to_slug:
        pos = _clamp(at_index, len(remaining))
        remaining.insert(pos, moved)
        return _replace(snapshot, stamp, source.model_copy(update={"items": tuple(remaining)}))

    target_items = list(target.items)
    pos = _clamp(at_index, len(target_items))
    target_items.insert(pos, moved)
    return _replace(
        snapshot,
        stamp,
        source.model_copy(update={"items": tuple(remaining)}),
        target.model_copy(update={"items": tuple(target_items)}),
    )


def reorder_item(
    snapshot: Snapshot, slug: str, item_id: str, to_index: int, *, now: datetime | None = None
) -> Snapshot:
    column = _require_column(snapshot, slug)
    idx = column.index_of(item_id)
    if idx < 0:
        raise NotFoundError("Item", item_id)

    items = list(column.items)
    item = items.pop(idx)
    items.insert(_clamp(to_index, len(items)), item)
    return _replace(snapshot, _stamp(snapshot, now), column.model_copy(update={"items": tuple(items)}))


def update_item_text(
    snapshot: Snapshot, item_id: str, new_text: str, *, now: datetime | None = None
) -> Snapshot:
    """Replace an item's text. An edit that sanitizes to empty deletes the item."""
    found = find_item(snapshot, item_id)
    if found is None:
        raise NotFoundError("Item", item_id)

    text = sanitize_text(new_text)
    if not text:
        return delete_items(snapshot, {item_id}, now=now)

    slug, idx, item = found
    stamp = _stamp(snapshot, now)
    column = snapshot.columns[slug]
    items = list(column.items)
    items[idx] = item.model_copy(update={"text": text, "updated_at": stamp})
    return _replace(snapshot, stamp, column.model_copy(update={"items": tuple(items)}))


def delete_items(
    snapshot: Snapshot, item_ids: Iterable[str], *, now: datetime | None = None
) -> Snapshot:
    doomed = set(item_ids)
    columns = [
        column.model_copy(update={"items": tuple(i for i in column.items if i.id not in doomed)})
        for column in snapshot.columns.values()
    ]
    return _replace(snapshot, _stamp(snapshot, now), *columns)
