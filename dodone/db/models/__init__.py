from dodone.db.models.kv_entry import KeyValueEntry

__all__ = [
    "KeyValueEntry",
]
