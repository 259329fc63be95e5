"""tasktree diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json

from tasktree.config import TaskTreeSettings
from tasktree.outline import node_to_string, parse_outline
from tasktree.storage import JsonFileStore, OutlineRepository
from tasktree.tracking import TrackingRegistry


def load_repository(settings: TaskTreeSettings) -> OutlineRepository:
    return OutlineRepository(JsonFileStore(settings.store_path))


def _progress(text: str) -> dict[str, int]:
    tasks = [node for node in parse_outline(text).walk_breadth_first() if node.task is not None]
    completed = sum(1 for node in tasks if node.is_complete())
    return {"tasks": len(tasks), "completed": completed}


def cmd_documents(args: argparse.Namespace) -> None:
    settings = TaskTreeSettings()
    repository = load_repository(settings)
    records = asyncio.run(repository.load_records())
    rows = [{"key": record.key, "type": record.type, **_progress(record.data)} for record in records]
    if args.json:
        print(json.dumps(rows, indent=2))
    else:
        for row in rows:
            print(f"{row['key']} [{row['type']}] {row['completed']}/{row['tasks']} tasks done")


def cmd_show(args: argparse.Namespace) -> None:
    settings = TaskTreeSettings()
    repository = load_repository(settings)
    key = args.key or settings.current_record_key()
    text = asyncio.run(repository.load_text(key))
    if not args.all:
        root = parse_outline(text).filter(lambda node: not node.is_complete())
        text = node_to_string(root)
    print(text)


def cmd_tracking(args: argparse.Namespace) -> None:
    settings = TaskTreeSettings()
    repository = load_repository(settings)
    raw = asyncio.run(repository.load_tracking())
    registry = TrackingRegistry()
    resumed = registry.load(raw)
    payload = []
    for record in resumed:
        item = record.to_payload()
        item["elapsed"] = record.elapsed_time.to_clock_string()
        payload.append(item)
    print(json.dumps(payload, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="tasktree diagnostics")
    sub = parser.add_subparsers(dest="command")

    p_documents = sub.add_parser("documents", help="List stored outlines with task progress")
    p_documents.add_argument("--json", action="store_true", help="Output JSON")
    p_documents.set_defaults(func=cmd_documents)

    p_show = sub.add_parser("show", help="Print an outline (today's by default)")
    p_show.add_argument("--key", help="Record key, e.g. 2025-01-31")
    p_show.add_argument("--all", action="store_true", help="Include completed tasks")
    p_show.set_defaults(func=cmd_show)

    p_tracking = sub.add_parser("tracking", help="Show tracking records with live elapsed time")
    p_tracking.set_defaults(func=cmd_tracking)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
