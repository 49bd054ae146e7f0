"""Board snapshot model: immutable values plus pure transformations."""

from dodone.core.board.history import UndoHistory
from dodone.core.board.operations import (
    delete_items,
    find_item,
    insert_item,
    insert_items,
    move_item,
    reorder_item,
    sanitize_text,
    update_item_text,
)
from dodone.core.board.schemas import (
    Column,
    Item,
    Snapshot,
    default_column,
    empty_columns,
    empty_snapshot,
    utcnow,
)

__all__ = [
    "Column",
    "Item",
    "Snapshot",
    "UndoHistory",
    "default_column",
    "delete_items",
    "empty_columns",
    "empty_snapshot",
    "find_item",
    "insert_item",
    "insert_items",
    "move_item",
    "reorder_item",
    "sanitize_text",
    "update_item_text",
    "utcnow",
]
