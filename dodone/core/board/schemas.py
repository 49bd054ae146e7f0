"""Immutable board values: items, columns and the snapshot that holds them."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from dodone.common.enums import COLUMN_NAMES, COLUMN_ORDER, ColumnSlug


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # Naive timestamps from older payloads are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def next_stamp(previous: datetime | None, now: datetime | None = None) -> datetime:
    """Timestamp for an edit on top of ``previous``; always strictly later."""
    now = as_utc(now) if now is not None else utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class Item(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    created_at: UtcDatetime
    updated_at: UtcDatetime
    completed_at: UtcDatetime | None = None


class Column(BaseModel):
    model_config = ConfigDict(frozen=True)

    slug: str
    name: str
    items: tuple[Item, ...] = ()

    def index_of(self, item_id: str) -> int:
        for idx, item in enumerate(self.items):
            if item.id == item_id:
                return idx
        return -1


class Snapshot(BaseModel):
    """The whole board at one instant.

    The unit of persistence and of conflict resolution. Never mutated after
    construction; operations return a new value via ``model_copy``.
    """

    model_config = ConfigDict(frozen=True)

    board_id: str | None = None
    last_updated: UtcDatetime | None = None
    columns: dict[str, Column] = Field(default_factory=dict)

    def column(self, slug: str) -> Column | None:
        return self.columns.get(slug)

    def ordered_columns(self) -> list[Column]:
        return [self.columns[slug] for slug in COLUMN_ORDER if slug in self.columns]

    def item_ids(self) -> list[str]:
        return [item.id for column in self.ordered_columns() for item in column.items]

    def same_content(self, other: Snapshot) -> bool:
        return self.columns == other.columns


def default_column(slug: str) -> Column:
    return Column(slug=slug, name=COLUMN_NAMES.get(slug, slug.upper()))


def empty_columns() -> dict[str, Column]:
    return {slug: default_column(slug) for slug in COLUMN_ORDER}


def empty_snapshot(board_id: str | None = None) -> Snapshot:
    return Snapshot(board_id=board_id, last_updated=None, columns=empty_columns())


def settle_completion(item: Item, slug: str, now: datetime) -> Item:
    """Apply the done-column rule: completed_at is set iff the item sits in done."""
    if slug == ColumnSlug.DONE.value:
        if item.completed_at is None:
            return item.model_copy(update={"completed_at": now})
        return item
    if item.completed_at is not None:
        return item.model_copy(update={"completed_at": None})
    return item
