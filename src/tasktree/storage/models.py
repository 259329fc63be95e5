"""Shapes persisted in the key-value store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any


class StorageKey:
    """Keys used in the key-value store."""

    TASK_LIST_TEXT = "task_list_text"
    TRACKING_STATE = "tracking_state"


DATE_RECORD = "date"


@dataclass(slots=True)
class DocumentRecord:
    """Outline text saved under one record key (one per day by default)."""

    key: str
    data: str
    type: str = DATE_RECORD

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "type": self.type, "data": self.data}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentRecord:
        return cls(
            key=str(data["key"]),
            data=str(data.get("data", "")),
            type=str(data.get("type", DATE_RECORD)),
        )


def record_key_for(day: date | None = None) -> str:
    """Record key for ``day`` (today when omitted)."""

    return (day or date.today()).isoformat()


__all__ = ["DATE_RECORD", "DocumentRecord", "StorageKey", "record_key_for"]
