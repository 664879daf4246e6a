"""Record store implementations and the alias registry used to select them."""

from .base import RecordStore, store_aliases
from .memory import InMemoryRecordStore
from .registry import get_record_store_class, load_record_store
from .sqlite_store import SQLiteRecordStore

__all__ = [
    "RecordStore",
    "store_aliases",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "get_record_store_class",
    "load_record_store",
]
