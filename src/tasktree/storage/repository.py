"""Read/write outline text and tracking records through a key-value store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable

from ..outline.flatten import node_to_string
from .models import DocumentRecord, StorageKey
from .store import KeyValueStore

if TYPE_CHECKING:
    from ..outline.node import Node

logger = logging.getLogger(__name__)


def update_records(records: Iterable[DocumentRecord], key: str, root: Node) -> list[DocumentRecord]:
    """Return ``records`` with the entry for ``key`` holding ``root``'s text.

    A new record is appended when ``key`` is not present yet.
    """

    data = node_to_string(root)
    updated: list[DocumentRecord] = []
    found = False
    for record in records:
        if record.key == key:
            found = True
            updated.append(DocumentRecord(key=record.key, data=data, type=record.type))
        else:
            updated.append(record)
    if not found:
        updated.append(DocumentRecord(key=key, data=data))
    return updated


class OutlineRepository:
    """Persistence boundary: store failures are logged and reported, never raised."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    @property
    def store(self) -> KeyValueStore:
        return self._store

    async def _get(self, key: str) -> Any | None:
        try:
            return await self._store.get(key)
        except Exception as exc:
            logger.warning("Store read failed", extra={"key": key, "error": str(exc)})
            return None

    async def _set(self, key: str, value: Any) -> bool:
        try:
            result = await self._store.set(key, value)
        except Exception as exc:
            logger.warning("Store write failed", extra={"key": key, "error": str(exc)})
            return False
        return result is True

    async def ping(self) -> bool:
        """Return True when the store answers a read."""

        try:
            await self._store.get(StorageKey.TASK_LIST_TEXT)
        except Exception as exc:
            logger.warning("Store ping failed", extra={"error": str(exc)})
            return False
        return True

    async def load_records(self) -> list[DocumentRecord]:
        raw = await self._get(StorageKey.TASK_LIST_TEXT)
        if not isinstance(raw, list):
            return []
        records: list[DocumentRecord] = []
        for item in raw:
            try:
                records.append(DocumentRecord.from_dict(item))
            except (KeyError, TypeError) as exc:
                logger.warning("Skipping malformed document record", extra={"error": str(exc)})
        logger.debug("Loaded document records", extra={"count": len(records)})
        return records

    async def save_records(self, records: Iterable[DocumentRecord]) -> bool:
        payload = [record.to_dict() for record in records]
        logger.debug("Saving document records", extra={"count": len(payload)})
        return await self._set(StorageKey.TASK_LIST_TEXT, payload)

    async def load_text(self, key: str) -> str:
        for record in await self.load_records():
            if record.key == key:
                return record.data
        return ""

    async def save_text(self, key: str, root: Node) -> bool:
        records = update_records(await self.load_records(), key, root)
        return await self.save_records(records)

    async def load_tracking(self) -> list[dict[str, Any]]:
        raw = await self._get(StorageKey.TRACKING_STATE)
        if not isinstance(raw, list):
            return []
        return [item for item in raw if isinstance(item, dict)]

    async def save_tracking(self, payload: list[dict[str, Any]]) -> bool:
        return await self._set(StorageKey.TRACKING_STATE, payload)


__all__ = ["OutlineRepository", "update_records"]
