"""Storage abstractions for tasktree."""

from .models import DocumentRecord, StorageKey, record_key_for
from .repository import OutlineRepository, update_records
from .store import JsonFileStore, KeyValueStore, StoreUnavailableError

__all__ = [
    "DocumentRecord",
    "JsonFileStore",
    "KeyValueStore",
    "OutlineRepository",
    "StorageKey",
    "StoreUnavailableError",
    "record_key_for",
    "update_records",
]
