"""Tool registration for the tasktree MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from ..config import TaskTreeSettings
from ..document import OutlineDocument, load_document, save_document
from ..outline.flatten import flatten, node_to_string
from ..outline.node import Node
from ..storage import OutlineRepository

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    show_outline: Any
    list_tasks: Any
    add_task: Any
    set_complete: Any
    start_tracking: Any
    stop_tracking: Any
    tracking_status: Any
    filter_outline: Any
    documents: dict[str, OutlineDocument]


def _task_summary(node: Node, document: OutlineDocument) -> dict[str, Any]:
    task = node.data
    live = document.registry.elapsed(node.line) if task.is_running() else None
    return {
        "line": node.line,
        "title": task.title,
        "complete": task.completion,
        "state": task.state.value,
        "estimated": task.estimated_time.to_clock_string(),
        "estimated_minutes": task.estimated_time.to_minutes(),
        "actual": task.actual_time.to_clock_string(),
        "actual_minutes": task.actual_time.to_minutes(),
        "tracking_elapsed": live.to_clock_string() if live is not None else None,
        "tags": list(task.tags),
    }


def register_tools(
    server: FastMCP,
    *,
    settings: TaskTreeSettings,
    repository: OutlineRepository,
    documents: dict[str, OutlineDocument] | None = None,
) -> ToolHandles:
    """Register tasktree's MCP tools on the server."""

    document_cache: dict[str, OutlineDocument] = documents if documents is not None else {}

    async def _document(key: str | None) -> tuple[str, OutlineDocument]:
        resolved = key or settings.current_record_key()
        if resolved not in document_cache:
            document, _ = await load_document(repository, resolved)
            document_cache[resolved] = document
        return resolved, document_cache[resolved]

    async def _show_outline(key: str | None = None, context: Context | None = None) -> dict[str, Any]:
        """Return the outline text for a record key (today by default)."""

        resolved, document = await _document(key)
        await _emit_log(context, "debug", "Show outline", extra={"key": resolved})
        return {"key": resolved, "text": document.text, "lines": len(flatten(document.root))}

    async def _list_tasks(
        key: str | None = None,
        include_completed: bool = True,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """List the tasks of an outline with their time tracking state."""

        resolved, document = await _document(key)
        tasks = [
            _task_summary(entry.node, document)
            for entry in document.tasks()
            if include_completed or not entry.node.is_complete()
        ]
        await _emit_log(context, "debug", "Listing tasks", extra={"key": resolved, "count": len(tasks)})
        return {"key": resolved, "tasks": tasks}

    async def _add_task(
        title: str,
        *,
        estimate: str | None = None,
        parent_line: int | None = None,
        key: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Append a task, optionally under the node at ``parent_line``."""

        if not title.strip():
            raise ValueError("Task title must not be empty")
        resolved, document = await _document(key)
        node = document.add_task(title.strip(), estimate=estimate, parent_line=parent_line)
        saved = await save_document(repository, resolved, document)
        await _emit_log(context, "info", "Added task", extra={"key": resolved, "line": node.line})
        return {"task": _task_summary(node, document), "saved": saved}

    async def _set_complete(
        line: int,
        complete: bool = True,
        *,
        key: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Mark the task at ``line`` complete or incomplete (stops its tracking)."""

        resolved, document = await _document(key)
        document.set_complete(line, complete)
        saved = await save_document(repository, resolved, document)
        await _emit_log(
            context,
            "info",
            "Task completion set",
            extra={"key": resolved, "line": line, "complete": complete},
        )
        return {"task": _task_summary(document.get_node_by_line(line), document), "saved": saved}

    async def _start_tracking(
        line: int,
        *,
        key: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Start tracking time on ``line``; any other running task is stopped first."""

        resolved, document = await _document(key)
        record, stopped = document.switch_tracking(line)
        saved = await save_document(repository, resolved, document)
        await _emit_log(
            context,
            "info",
            "Tracking started",
            extra={"key": resolved, "line": line, "stopped_lines": stopped},
        )
        return {"record": record.to_payload(), "stopped_lines": stopped, "saved": saved}

    async def _stop_tracking(
        line: int,
        *,
        key: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Stop tracking ``line`` and add the elapsed time to the task."""

        resolved, document = await _document(key)
        elapsed = document.stop_tracking(line)
        saved = await save_document(repository, resolved, document)
        node = document.get_node_by_line(line)
        await _emit_log(
            context,
            "info" if elapsed is not None else "warning",
            "Tracking stopped" if elapsed is not None else "Line was not tracking",
            extra={"key": resolved, "line": line},
        )
        return {
            "line": line,
            "elapsed": elapsed.to_clock_string() if elapsed is not None else None,
            "task": _task_summary(node, document),
            "saved": saved,
        }

    async def _tracking_status(key: str | None = None, context: Context | None = None) -> dict[str, Any]:
        """Report tracked lines with their live elapsed time."""

        resolved, document = await _document(key)
        records = []
        for record in document.registry.records:
            payload = record.to_payload()
            payload["elapsed"] = document.registry.elapsed(record.line).to_clock_string()
            records.append(payload)
        await _emit_log(context, "debug", "Tracking status", extra={"key": resolved, "count": len(records)})
        return {"key": resolved, "records": records}

    async def _filter_outline(
        key: str | None = None,
        show_completed: bool = False,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Render the outline without completed leaf tasks (unless show_completed)."""

        resolved, document = await _document(key)
        view = document.filtered(show_completed)
        await _emit_log(context, "debug", "Filtered outline", extra={"key": resolved})
        return {"key": resolved, "text": node_to_string(view), "lines": len(flatten(view))}

    tool_show = server.tool(
        name="show_outline",
        description="Return the outline text stored under a record key (defaults to today's date).",
    )(_show_outline)

    tool_list = server.tool(
        name="list_tasks",
        description="List tasks with line numbers, completion, estimates and tracked time.",
    )(_list_tasks)

    tool_add = server.tool(
        name="add_task",
        description="Append a task (optional estimate like '1h30m') at the top level or under a line.",
    )(_add_task)

    tool_complete = server.tool(
        name="set_complete",
        description="Mark a task complete or incomplete; a running timer on it is stopped first.",
    )(_set_complete)

    tool_start = server.tool(
        name="start_tracking",
        description="Start the timer on a task line. Only one task tracks at a time.",
    )(_start_tracking)

    tool_stop = server.tool(
        name="stop_tracking",
        description="Stop the timer on a task line and add the elapsed time to it.",
    )(_stop_tracking)

    tool_status = server.tool(
        name="tracking_status",
        description="Show tracked lines and their live elapsed time.",
    )(_tracking_status)

    tool_filter = server.tool(
        name="filter_outline",
        description="Render the outline without completed tasks (set show_completed=true for everything).",
    )(_filter_outline)

    logger.debug(
        "Registered tools",
        extra={
            "tools": [
                tool_show,
                tool_list,
                tool_add,
                tool_complete,
                tool_start,
                tool_stop,
                tool_status,
                tool_filter,
            ]
        },
    )

    return ToolHandles(
        show_outline=_show_outline,
        list_tasks=_list_tasks,
        add_task=_add_task,
        set_complete=_set_complete,
        start_tracking=_start_tracking,
        stop_tracking=_stop_tracking,
        tracking_status=_tracking_status,
        filter_outline=_filter_outline,
        documents=document_cache,
    )


async def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Log locally and, when a request context is present, to the MCP client."""

    payload = extra or {}
    log_method = getattr(logger, level, logger.info)
    log_method(message, extra=payload)
    if context is not None:
        await context.log(message, level=level)


__all__ = ["ToolHandles", "register_tools"]
