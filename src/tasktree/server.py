"""FastMCP server bootstrap for tasktree."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastmcp import FastMCP

from . import __version__
from .config import TaskTreeSettings, get_settings
from .document import load_document
from .outline.flatten import flatten
from .storage import JsonFileStore, OutlineRepository
from .tools import register_tools

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for the tasktree server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def create_server(
    settings: Optional[TaskTreeSettings] = None,
    repository: OutlineRepository | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server, resuming any tracking left running."""

    settings = settings or get_settings()

    store_metadata: dict[str, Any] = {
        "available": False,
        "path": str(settings.store_path),
        "error": None,
    }
    if repository is None:
        repository = OutlineRepository(JsonFileStore(settings.store_path))
    store_metadata["available"] = _run_sync(repository.ping())
    if not store_metadata["available"]:
        store_metadata["error"] = "Store did not answer a read; changes may not persist"

    record_key = settings.current_record_key()
    document, resumed = _run_sync(load_document(repository, record_key))
    documents = {record_key: document}

    resume_actions: list[dict[str, Any]] = []
    for record in resumed:
        if not record.is_tracking:
            continue
        node = document.get_node_by_line(record.line)
        action: dict[str, Any] = {
            "line": record.line,
            "title": node.data.title if node is not None else None,
            "tracking_start_time": record.tracking_start_time,
            "elapsed": record.elapsed_time.to_clock_string(),
            "elapsed_minutes": record.elapsed_time.to_minutes(),
            "attempted_at": datetime.now(timezone.utc).isoformat(),
            "status": "resumed",
        }
        logger.info("Resumed tracking session", extra=action)
        resume_actions.append(action)

    server = FastMCP(
        name="tasktree",
        version=__version__,
        instructions=(
            "tasktree keeps a daily markdown outline of headings and checkbox tasks "
            "with estimates and tracked time. Use the tools to read the outline, add "
            "and complete tasks, and start or stop the timer on a task line."
        ),
    )

    handles = register_tools(
        server,
        settings=settings,
        repository=repository,
        documents=documents,
    )

    def status_resource() -> str:
        """Return a JSON string summarizing the current outline and tracking."""

        current = handles.documents.get(record_key)
        outline: dict[str, Any] = {"key": record_key, "lines": 0, "tasks": 0, "completed": 0}
        tracking: list[dict[str, Any]] = []
        if current is not None:
            tasks = current.tasks()
            outline.update(
                {
                    "lines": len(flatten(current.root)),
                    "tasks": len(tasks),
                    "completed": sum(1 for entry in tasks if entry.node.is_complete()),
                }
            )
            for record in current.registry.records:
                payload = record.to_payload()
                payload["elapsed"] = current.registry.elapsed(record.line).to_clock_string()
                tracking.append(payload)

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "storage": store_metadata,
            "outline": outline,
            "tracking": {
                "records": tracking,
                "active_lines": [item["line"] for item in tracking if item["isTracking"]],
            },
            "resume_actions": resume_actions[-5:],
        }
        return json.dumps(payload)

    server.resource(
        "resource://tasktree/status",
        name="tasktree_status",
        title="tasktree Status",
        description="Current outline counts, tracked lines and startup resume actions.",
        mime_type="application/json",
        tags={"status", "health"},
    )(status_resource)

    setattr(server, "repository", repository)
    setattr(server, "store_metadata", store_metadata)
    setattr(server, "record_key", record_key)
    setattr(server, "resume_actions", resume_actions)
    setattr(server, "tool_handles", handles)
    setattr(server, "status_snapshot", status_resource)
    return server


def main() -> None:
    """Entry point for running the tasktree MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logger.info(
        "Launching tasktree MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "store_available": getattr(server, "store_metadata", {}).get("available"),
            "record_key": getattr(server, "record_key", None),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
