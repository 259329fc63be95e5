"""Key-value persistence backends."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class StoreUnavailableError(RuntimeError):
    """Raised when the backing file cannot be read or written."""


class KeyValueStore(Protocol):
    """Protocol for the minimal async get/set API the outline needs."""

    async def get(self, key: str) -> Any | None:
        ...

    async def set(self, key: str, value: Any) -> bool:
        ...


class JsonFileStore:
    """Store every key in a single JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            document = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreUnavailableError(f"Cannot read store at {self._path}: {exc}") from exc
        if not isinstance(document, dict):
            raise StoreUnavailableError(f"Store at {self._path} does not hold a JSON object")
        return document

    def _write_all(self, document: dict[str, Any]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2)
            os.replace(tmp_name, self._path)
        except OSError as exc:
            raise StoreUnavailableError(f"Cannot write store at {self._path}: {exc}") from exc

    async def get(self, key: str) -> Any | None:
        document = await asyncio.to_thread(self._read_all)
        return document.get(key)

    async def set(self, key: str, value: Any) -> bool:
        async with self._lock:
            document = await asyncio.to_thread(self._read_all)
            document[key] = value
            await asyncio.to_thread(self._write_all, document)
        logger.debug("Stored key", extra={"key": key, "path": str(self._path)})
        return True


__all__ = ["JsonFileStore", "KeyValueStore", "StoreUnavailableError"]
