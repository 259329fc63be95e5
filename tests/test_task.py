from __future__ import annotations

import pytest

from tasktree.tracking.duration import Duration
from tasktree.tracking.task import InvalidTransitionError, Task, TaskEvent, TrackingState


def test_parse_full_task_line() -> None:
    task = Task.parse("- [x] Write docs ~1h30m +45m #docs #writing", indent=2)

    assert task.title == "Write docs"
    assert task.completion is True
    assert task.estimated_time == Duration(minutes=30, hours=1)
    assert task.actual_time.to_minutes() == 45
    assert task.tags == ["#docs", "#writing"]
    assert task.indent == 2
    assert task.to_line() == "- [x] Write docs ~1h30m +45m #docs #writing"


def test_parse_accepts_other_bullets_and_writes_dash() -> None:
    task = Task.parse("* [X] Review")

    assert task.is_complete()
    assert str(task) == "- [x] Review"


def test_parse_keeps_inline_hash_in_title() -> None:
    assert Task.parse("- [ ] Fix #12 regression").title == "Fix #12 regression"


def test_empty_title_round_trips() -> None:
    assert Task.parse("- [ ]").to_line() == "- [ ]"


def test_parse_non_task_line_yields_empty_task(caplog) -> None:
    caplog.set_level("WARNING", logger="tasktree.tracking.task")

    task = Task.parse("just some prose")

    assert task.title == ""
    assert task.estimated_time.is_empty()
    assert "Can't find task item" in caplog.text


def test_ids_are_monotonic() -> None:
    first = Task("a")
    second = Task("b")

    assert second.id > first.id


def test_tracking_start_then_stop_adds_elapsed() -> None:
    task = Task("Focus", actual_time=Duration(minutes=5))
    events: list[TaskEvent] = []
    task.subscribe(lambda _task, event: events.append(event))

    start = task.tracking_start(now=1_000)
    assert start == 1_000
    assert task.state is TrackingState.RUNNING

    elapsed = task.tracking_stop(now=1_000 + 3 * 60_000 + 59_000)

    assert elapsed.to_minutes() == 3
    assert task.actual_time.to_minutes() == 8
    assert task.state is TrackingState.STOPPED
    assert task.tracking_start_time == 0
    assert events == [TaskEvent.TRACKING_STARTED, TaskEvent.TRACKING_STOPPED, TaskEvent.CHANGED]


def test_tracking_stop_uses_explicit_start() -> None:
    task = Task("Focus")
    task.tracking_start(now=500_000)

    elapsed = task.tracking_stop(start_timestamp=380_000, now=500_000)

    assert elapsed.to_minutes() == 2


def test_invalid_transitions_raise() -> None:
    task = Task("Idle")
    with pytest.raises(InvalidTransitionError):
        task.tracking_stop()

    task.tracking_start(now=0)
    with pytest.raises(InvalidTransitionError):
        task.tracking_start(now=1)
    with pytest.raises(InvalidTransitionError):
        task.restore_tracking(1)


def test_set_complete_does_not_stop_tracking() -> None:
    task = Task("Running")
    task.tracking_start(now=0)

    task.set_complete(True)

    assert task.is_complete()
    assert task.is_running()


def test_change_notifications_only_on_real_change() -> None:
    task = Task("Same")
    events: list[TaskEvent] = []
    unsubscribe = task.subscribe(lambda _task, event: events.append(event))

    task.set_title("Same")
    task.set_complete(False)
    task.set_title("Renamed")
    unsubscribe()
    task.set_complete(True)

    assert events == [TaskEvent.CHANGED]


def test_restore_tracking_is_silent() -> None:
    task = Task("Reloaded")
    events: list[TaskEvent] = []
    task.subscribe(lambda _task, event: events.append(event))

    task.restore_tracking(42)

    assert task.is_running()
    assert task.tracking_start_time == 42
    assert events == []


def test_clone_is_independent_and_keeps_id() -> None:
    task = Task("Original", Duration(hours=1), tags=["#a"])
    task.tracking_start(now=10)
    calls: list[TaskEvent] = []
    task.subscribe(lambda _task, event: calls.append(event))

    copy = task.clone()
    copy.set_title("Copy")
    copy.tags.append("#b")
    copy.tracking_stop(now=60_010)

    assert copy.id == task.id
    assert task.title == "Original"
    assert task.tags == ["#a"]
    assert task.is_running()
    assert task.actual_time.is_empty()
    assert calls == []


def test_parse_estimate_without_title() -> None:
    task = Task.parse("- [ ] ~1h30m +5m")

    assert task.title == ""
    assert task.estimated_time == Duration(minutes=30, hours=1)
    assert task.actual_time.to_minutes() == 5
    assert task.to_line() == "- [ ] ~1h30m +5m"


def test_letter_only_duration_token_is_kept_as_text() -> None:
    task = Task.parse("- [ ] pack bags ~hm")

    assert task.title == "pack bags ~hm"
    assert task.estimated_time.is_empty()
    assert task.to_line() == "- [ ] pack bags ~hm"
