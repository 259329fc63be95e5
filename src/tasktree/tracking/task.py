"""Task payloads: completion flag and the start/stop tracking state machine."""

from __future__ import annotations

import contextlib
import itertools
import logging
import re
from enum import Enum
from typing import Callable, Iterable

from .duration import Duration, now_ms

logger = logging.getLogger(__name__)

_COMPACT_DURATION = r"(?=\d)(?:\d+d)?(?:\d+h)?(?:\d+m)?"

TASK_LINE_PATTERN = re.compile(
    r"^(?P<bullet>[-*+])\s+\[(?P<mark>[ xX])\](?P<title>(?:\s+.*?)??)"
    rf"(?:\s+~(?P<estimate>{_COMPACT_DURATION}))?"
    rf"(?:\s+\+(?P<actual>{_COMPACT_DURATION}))?"
    r"(?P<tags>(?:\s+#\S+)*)\s*$"
)

_task_ids = itertools.count(1)


class InvalidTransitionError(RuntimeError):
    """Raised when a tracking transition is requested from the wrong state."""


class TrackingState(str, Enum):
    """Whether time is currently being tracked for a task."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


class TaskEvent(str, Enum):
    """Notifications emitted by a task to its subscribers."""

    CHANGED = "changed"
    TRACKING_STARTED = "tracking_started"
    TRACKING_STOPPED = "tracking_stopped"


TaskListener = Callable[["Task", TaskEvent], None]


class Task:
    """A trackable to-do item parsed from one line of outline text."""

    def __init__(
        self,
        title: str = "",
        estimated_time: Duration | None = None,
        *,
        completion: bool = False,
        actual_time: Duration | None = None,
        tags: Iterable[str] = (),
        indent: int = 0,
        task_id: int | None = None,
    ) -> None:
        self.id = task_id if task_id is not None else next(_task_ids)
        self._title = title
        self._completion = completion
        self._estimated_time = estimated_time or Duration()
        self.actual_time = actual_time or Duration()
        self.tags = list(tags)
        self.indent = indent
        self.state = TrackingState.STOPPED
        self.tracking_start_time = 0
        self._listeners: list[TaskListener] = []

    @staticmethod
    def is_task_line(line: str) -> bool:
        return TASK_LINE_PATTERN.match(line.strip()) is not None

    @classmethod
    def parse(cls, line: str, *, indent: int = 0) -> Task:
        """Build a task from its serialized line, e.g. ``- [x] Write ~1h +20m #docs``."""

        match = TASK_LINE_PATTERN.match(line.strip())
        if match is None:
            logger.warning("Can't find task item", extra={"line": line})
            return cls("", Duration(), indent=indent)

        estimate = match.group("estimate")
        actual = match.group("actual")
        return cls(
            match.group("title").strip(),
            Duration.parse(estimate) if estimate else Duration(),
            completion=match.group("mark") in {"x", "X"},
            actual_time=Duration.parse(actual) if actual else Duration(),
            tags=match.group("tags").split(),
            indent=indent,
        )

    @property
    def title(self) -> str:
        return self._title

    @property
    def completion(self) -> bool:
        return self._completion

    @property
    def estimated_time(self) -> Duration:
        return self._estimated_time

    def is_complete(self) -> bool:
        return self._completion

    def is_running(self) -> bool:
        return self.state is TrackingState.RUNNING

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        """Register ``listener`` for this task's notifications.

        Returns a callable that removes the listener again.
        """

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event: TaskEvent) -> None:
        for listener in list(self._listeners):
            listener(self, event)

    def set_title(self, title: str) -> None:
        if title == self._title:
            return
        self._title = title
        self._emit(TaskEvent.CHANGED)

    def set_complete(self, flag: bool) -> None:
        """Set the completion flag; does not touch tracking state."""

        if flag == self._completion:
            return
        self._completion = flag
        self._emit(TaskEvent.CHANGED)

    def tracking_start(self, now: int | None = None) -> int:
        """Move to RUNNING and return the start timestamp (ms) for persistence."""

        if self.is_running():
            raise InvalidTransitionError(f"Task {self.id} is already tracking")
        self.tracking_start_time = now if now is not None else now_ms()
        self.state = TrackingState.RUNNING
        logger.debug("Tracking started", extra={"task_id": self.id, "start": self.tracking_start_time})
        self._emit(TaskEvent.TRACKING_STARTED)
        return self.tracking_start_time

    def tracking_stop(self, start_timestamp: int | None = None, now: int | None = None) -> Duration:
        """Add the time since ``start_timestamp`` to ``actual_time`` and stop.

        The start defaults to the timestamp recorded by :meth:`tracking_start`.
        Returns the elapsed span that was added.
        """

        if not self.is_running():
            raise InvalidTransitionError(f"Task {self.id} is not tracking")
        start = start_timestamp if start_timestamp is not None else self.tracking_start_time
        current = now if now is not None else now_ms()
        elapsed = Duration.parse_ms(current - start)
        self.actual_time = self.actual_time.add(elapsed)
        self.state = TrackingState.STOPPED
        self.tracking_start_time = 0
        logger.debug(
            "Tracking stopped",
            extra={"task_id": self.id, "elapsed_minutes": elapsed.to_minutes()},
        )
        self._emit(TaskEvent.TRACKING_STOPPED)
        self._emit(TaskEvent.CHANGED)
        return elapsed

    def restore_tracking(self, start_timestamp: int) -> None:
        """Put a freshly parsed task back into RUNNING after a reload.

        No notification is sent; the registry already holds the record.
        """

        if self.is_running():
            raise InvalidTransitionError(f"Task {self.id} is already tracking")
        self.tracking_start_time = start_timestamp
        self.state = TrackingState.RUNNING

    def clone(self) -> Task:
        copy = Task(
            self._title,
            self._estimated_time,
            completion=self._completion,
            actual_time=self.actual_time,
            tags=self.tags,
            indent=self.indent,
            task_id=self.id,
        )
        copy.state = self.state
        copy.tracking_start_time = self.tracking_start_time
        return copy

    def to_line(self) -> str:
        parts = [f"- [{'x' if self._completion else ' '}] {self._title}".rstrip()]
        if not self._estimated_time.is_empty():
            parts.append(f"~{self._estimated_time.to_compact_string()}")
        if not self.actual_time.is_empty():
            parts.append(f"+{self.actual_time.to_compact_string()}")
        parts.extend(self.tags)
        return " ".join(parts)

    def __str__(self) -> str:
        return self.to_line()

    def __repr__(self) -> str:
        return f"Task(id={self.id!r}, title={self._title!r}, state={self.state.value})"


__all__ = [
    "InvalidTransitionError",
    "TASK_LINE_PATTERN",
    "Task",
    "TaskEvent",
    "TaskListener",
    "TrackingState",
]
