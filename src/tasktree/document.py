"""The editable outline document: current tree, tracked tasks and persistence."""

from __future__ import annotations

import contextlib
import logging
from functools import partial
from typing import Any, Callable, Iterable

from .outline.flatten import FlatEntry, flatten, node_to_string, renumber
from .outline.node import Node, NodeType
from .outline.parser import parse_outline
from .storage.repository import OutlineRepository
from .tracking.duration import Duration, now_ms
from .tracking.registry import TrackingRecord, TrackingRegistry
from .tracking.task import Task, TaskEvent

logger = logging.getLogger(__name__)

TextListener = Callable[[str], None]


class OutlineDocument:
    """Holds the latest outline root and keeps tracking records in step with it.

    Every edit builds a new root through the tree's copy-on-write operations
    and then swaps it in, so roots handed out earlier never change.
    """

    def __init__(
        self,
        root: Node | None = None,
        *,
        registry: TrackingRegistry | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._root = root or Node.new_root()
        self._clock = clock or now_ms
        self.registry = registry or TrackingRegistry(clock=self._clock)
        self._listeners: list[TextListener] = []

    @classmethod
    def from_text(cls, text: str, **kwargs: Any) -> OutlineDocument:
        return cls(parse_outline(text), **kwargs)

    @property
    def root(self) -> Node:
        return self._root

    @property
    def text(self) -> str:
        return node_to_string(self._root)

    def subscribe(self, listener: TextListener) -> Callable[[], None]:
        """Call ``listener`` with the serialized text after every change."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _line_mapping(self, new_root: Node) -> dict[int, int | None]:
        mapping: dict[int, int | None] = {}
        for record in self.registry.records:
            old = self.get_node_by_line(record.line)
            if old is None:
                continue
            moved = new_root.find(lambda node, node_id=old.id: node.id == node_id)
            mapping[record.line] = moved.line if moved is not None else None
        return mapping

    def _commit(self, new_root: Node) -> Node:
        mapping = self._line_mapping(new_root)
        self._root = new_root
        self.registry.relocate(mapping)
        text = self.text
        for listener in list(self._listeners):
            listener(text)
        return new_root

    def get_node_by_line(self, line: int) -> Node | None:
        if line < 1:
            return None
        return self._root.find(lambda node: node.line == line and node.type is not NodeType.ROOT)

    def set_node_by_line(self, node: Node, line: int) -> Node:
        """Swap ``node`` in at ``line``; returns the new root."""

        if self.get_node_by_line(line) is None:
            logger.warning("No node at line; nothing replaced", extra={"line": line})
            return self._root
        return self._commit(self._root.replace(node, lambda candidate: candidate.line == line))

    def _task_node(self, line: int) -> Node:
        node = self.get_node_by_line(line)
        if node is None or node.type is not NodeType.TASK:
            raise ValueError(f"Line {line} is not a task")
        return node

    def _editable_task(self, line: int) -> tuple[Node, Task]:
        copy = self._task_node(line).clone()
        task = copy.data
        task.subscribe(partial(self.registry.handle_task_event, line))
        return copy, task

    def tasks(self) -> list[FlatEntry]:
        return [entry for entry in flatten(self._root) if entry.node.type is NodeType.TASK]

    def add_task(
        self,
        title: str,
        *,
        estimate: str | Duration | None = None,
        parent_line: int | None = None,
    ) -> Node:
        """Append a new task under ``parent_line`` (or at the top level)."""

        if isinstance(estimate, str):
            estimate = Duration.parse(estimate)

        if parent_line is None:
            task = Task(title, estimate)
            new_root = self._root.append(Node.for_task(task))
        else:
            parent = self.get_node_by_line(parent_line)
            if parent is None:
                raise ValueError(f"Line {parent_line} does not exist")
            depth = next(entry.depth for entry in flatten(self._root) if entry.node is parent)
            task = Task(title, estimate, indent=depth + 1)
            new_root = self._root.clone()
            target = new_root.find(lambda node: node.id == parent.id)
            child = Node.for_task(task)
            child.parent = target
            target.children.append(child)
        renumber(new_root)
        self._commit(new_root)
        added = new_root.find(lambda node: node.task is not None and node.task.id == task.id)
        logger.info("Task added", extra={"line": added.line, "title": title})
        return added

    def set_complete(self, line: int, flag: bool) -> Node:
        """Set completion at ``line``, stopping its tracking first when running."""

        if self._task_node(line).data.is_running():
            self.stop_tracking(line)
        copy, task = self._editable_task(line)
        task.set_complete(flag)
        return self.set_node_by_line(copy, line)

    def start_tracking(self, line: int) -> TrackingRecord:
        """Start tracking ``line`` after stopping every other running task."""

        return self.switch_tracking(line)[0]

    def switch_tracking(self, line: int) -> tuple[TrackingRecord, list[int]]:
        """Like :meth:`start_tracking`, also returning the lines that were stopped."""

        node = self._task_node(line)
        if node.data.is_running():
            logger.warning("Line is already tracking", extra={"line": line})
            existing = self.registry.find(line)
            if existing is None:
                self.registry.handle_task_event(line, node.data, TaskEvent.TRACKING_STARTED)
                existing = self.registry.find(line)
            return existing, []

        stopped = self.stop_other_tracking(line)
        copy, task = self._editable_task(line)
        task.tracking_start(self._clock())
        self.set_node_by_line(copy, line)
        return self.registry.find(line), stopped

    def stop_tracking(self, line: int) -> Duration | None:
        """Stop tracking ``line``; returns the elapsed time added, if any."""

        node = self._task_node(line)
        record = self.registry.find(line)
        if not node.data.is_running():
            logger.warning("Line is not tracking", extra={"line": line})
            if record is not None:
                self.registry.remove(line)
            return None

        copy, task = self._editable_task(line)
        start = record.tracking_start_time if record is not None else None
        elapsed = task.tracking_stop(start, self._clock())
        self.set_node_by_line(copy, line)
        return elapsed

    def stop_other_tracking(self, line: int) -> list[int]:
        stopped: list[int] = []
        for record in self.registry.others(line):
            node = self.get_node_by_line(record.line)
            if node is None or node.type is not NodeType.TASK or not node.data.is_running():
                self.registry.remove(record.line)
                continue
            self.stop_tracking(record.line)
            stopped.append(record.line)
        return stopped

    def filtered(self, show_completed: bool = False) -> Node:
        """A view of the outline, without completed leaf tasks unless asked."""

        if show_completed:
            return self._root.clone()
        return self._root.filter(lambda node: not node.is_complete())

    def restore_tracking(self, raw_records: Iterable[Any] | None) -> list[TrackingRecord]:
        """Load persisted tracking records and put their tasks back into RUNNING.

        Returns the records with resumed elapsed time. Records that no longer
        point at a task are dropped.
        """

        restored: list[TrackingRecord] = []
        for record in self.registry.load(raw_records):
            if not record.is_tracking:
                restored.append(record)
                continue
            node = self.get_node_by_line(record.line)
            if node is None or node.type is not NodeType.TASK:
                logger.warning("Tracked line is not a task; dropping record", extra={"line": record.line})
                self.registry.remove(record.line)
                continue
            if not node.data.is_running():
                copy = node.clone()
                copy.data.restore_tracking(record.tracking_start_time)
                self._root = self._root.replace(copy, lambda candidate, line=record.line: candidate.line == line)
            restored.append(record)
        return restored


async def load_document(
    repository: OutlineRepository,
    key: str,
    *,
    clock: Callable[[], int] | None = None,
) -> tuple[OutlineDocument, list[TrackingRecord]]:
    """Load the outline stored under ``key`` and resume its tracking state."""

    text = await repository.load_text(key)
    document = OutlineDocument.from_text(text, clock=clock)
    resumed = document.restore_tracking(await repository.load_tracking())
    logger.info(
        "Loaded document",
        extra={"key": key, "lines": len(flatten(document.root)), "tracking": len(resumed)},
    )
    return document, resumed


async def save_document(repository: OutlineRepository, key: str, document: OutlineDocument) -> bool:
    """Persist the outline text and tracking records; True only if both saved."""

    saved_text = await repository.save_text(key, document.root)
    saved_tracking = await repository.save_tracking(document.registry.to_payload())
    if not (saved_text and saved_tracking):
        logger.warning(
            "Document not fully saved",
            extra={"key": key, "text": saved_text, "tracking": saved_tracking},
        )
    return saved_text and saved_tracking


__all__ = ["OutlineDocument", "load_document", "save_document"]
