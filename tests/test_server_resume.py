from __future__ import annotations

import asyncio
import json
from typing import Any

from tasktree.config import TaskTreeSettings
from tasktree.server import create_server
from tasktree.storage import OutlineRepository, StorageKey
from tasktree.tracking import now_ms

KEY = "2025-01-31"


class MemoryStore:
    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self.data = dict(data or {})

    async def get(self, key: str) -> Any | None:
        return self.data.get(key)

    async def set(self, key: str, value: Any) -> bool:
        self.data[key] = json.loads(json.dumps(value))
        return True


class BrokenStore:
    async def get(self, key: str) -> Any | None:
        raise OSError("unreadable")

    async def set(self, key: str, value: Any) -> bool:
        raise OSError("unwritable")


def _settings(tmp_path) -> TaskTreeSettings:
    return TaskTreeSettings(
        TASKTREE_RECORD_KEY=KEY,
        TASKTREE_STORE_PATH=str(tmp_path / "store.json"),
    )


def test_create_server_resumes_tracking(tmp_path):
    start = now_ms() - 120_000
    store = MemoryStore(
        {
            StorageKey.TASK_LIST_TEXT: [
                {"key": KEY, "type": "date", "data": "# Day\n  - [ ] Focus ~1h\n  - [ ] Email"}
            ],
            StorageKey.TRACKING_STATE: [
                {
                    "line": 2,
                    "isTracking": True,
                    "trackingStartTime": start,
                    "elapsedTime": {"seconds": 0, "minutes": 10, "hours": 0, "days": 0},
                }
            ],
        }
    )

    server = create_server(_settings(tmp_path), repository=OutlineRepository(store))

    action = getattr(server, "resume_actions")[-1]
    assert action["status"] == "resumed"
    assert action["line"] == 2
    assert action["title"] == "Focus"
    assert action["elapsed_minutes"] == 12
    assert "attempted_at" in action

    document = getattr(server, "tool_handles").documents[KEY]
    assert document.get_node_by_line(2).data.is_running()
    assert document.registry.find(2).elapsed_time.to_minutes() == 10

    status = json.loads(server.status_snapshot())
    assert status["storage"]["available"] is True
    assert status["outline"] == {"key": KEY, "lines": 3, "tasks": 2, "completed": 0}
    assert status["tracking"]["active_lines"] == [2]
    assert status["resume_actions"][0]["line"] == 2


def test_tracking_stopped_after_resume_counts_the_gap(tmp_path):
    store = MemoryStore(
        {
            StorageKey.TASK_LIST_TEXT: [{"key": KEY, "type": "date", "data": "- [ ] Focus"}],
            StorageKey.TRACKING_STATE: [
                {"line": 1, "isTracking": True, "trackingStartTime": now_ms() - 180_000, "elapsedTime": {}}
            ],
        }
    )
    server = create_server(_settings(tmp_path), repository=OutlineRepository(store))

    result = asyncio.run(server.tool_handles.stop_tracking(1))

    assert result["elapsed"] == "3m"
    assert result["task"]["actual"] == "3m"
    assert store.data[StorageKey.TRACKING_STATE] == []
    assert store.data[StorageKey.TASK_LIST_TEXT][0]["data"] == "- [ ] Focus +3m"


def test_create_server_without_running_sessions(tmp_path):
    server = create_server(_settings(tmp_path), repository=OutlineRepository(MemoryStore()))

    assert getattr(server, "resume_actions") == []
    status = json.loads(server.status_snapshot())
    assert status["outline"]["lines"] == 0
    assert status["tracking"]["records"] == []


def test_create_server_reports_unavailable_store(tmp_path, caplog):
    caplog.set_level("WARNING", logger="tasktree.storage.repository")

    server = create_server(_settings(tmp_path), repository=OutlineRepository(BrokenStore()))

    metadata = getattr(server, "store_metadata")
    assert metadata["available"] is False
    assert metadata["error"]
    assert "Store ping failed" in caplog.text


def test_create_server_defaults_to_json_file_store(tmp_path):
    server = create_server(_settings(tmp_path))

    asyncio.run(server.tool_handles.add_task("First"))

    payload = json.loads((tmp_path / "store.json").read_text(encoding="utf-8"))
    assert payload[StorageKey.TASK_LIST_TEXT] == [{"key": KEY, "type": "date", "data": "- [ ] First"}]
