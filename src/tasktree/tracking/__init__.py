"""Durations, task state and the cross-task tracking registry."""

from .duration import Duration, now_ms
from .registry import TrackingConflictError, TrackingRecord, TrackingRegistry
from .task import InvalidTransitionError, Task, TaskEvent, TrackingState

__all__ = [
    "Duration",
    "InvalidTransitionError",
    "Task",
    "TaskEvent",
    "TrackingConflictError",
    "TrackingRecord",
    "TrackingRegistry",
    "TrackingState",
    "now_ms",
]
