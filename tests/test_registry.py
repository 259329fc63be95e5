from __future__ import annotations

import pytest

from tasktree.tracking import (
    Duration,
    Task,
    TaskEvent,
    TrackingConflictError,
    TrackingRecord,
    TrackingRegistry,
)

NOW = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


def test_record_uses_camel_case_payload() -> None:
    record = TrackingRecord(line=3, is_tracking=True, tracking_start_time=5, elapsed_time=Duration(minutes=2))

    payload = record.to_payload()

    assert payload == {
        "line": 3,
        "isTracking": True,
        "trackingStartTime": 5,
        "elapsedTime": {"seconds": 0, "minutes": 2, "hours": 0, "days": 0},
    }
    assert TrackingRecord.model_validate(payload) == record


def test_load_resumes_elapsed_time_once() -> None:
    clock = FakeClock(NOW)
    registry = TrackingRegistry(clock=clock)
    raw = [
        {
            "line": 2,
            "isTracking": True,
            "trackingStartTime": NOW - 120_000,
            "elapsedTime": {"seconds": 0, "minutes": 0, "hours": 0, "days": 0},
        }
    ]

    resumed = registry.load(raw)

    assert resumed[0].elapsed_time == Duration(minutes=2)
    assert registry.find(2).elapsed_time.is_empty()
    assert registry.to_payload() == raw

    clock.now += 60_000
    assert registry.elapsed(2).to_minutes() == 3
    assert registry.load(registry.to_payload())[0].elapsed_time.to_minutes() == 3


def test_load_adds_gap_to_existing_baseline() -> None:
    registry = TrackingRegistry(clock=FakeClock(NOW))

    resumed = registry.load(
        [{"line": 1, "isTracking": True, "trackingStartTime": NOW - 600_000, "elapsedTime": {"hours": 1}}]
    )

    assert resumed[0].elapsed_time.to_clock_string() == "1h 10m"


def test_load_drops_invalid_records(caplog) -> None:
    caplog.set_level("WARNING", logger="tasktree.tracking.registry")
    registry = TrackingRegistry(clock=FakeClock(NOW))

    resumed = registry.load(
        [
            {"line": 0, "isTracking": True},
            {"isTracking": False},
            {"line": 4, "isTracking": False, "elapsedTime": "10 minutes"},
            {"line": 6, "isTracking": False, "elapsedTime": {"minutes": [1]}},
            {"line": 7, "isTracking": True, "elapsedTime": {"hours": "soon"}},
            {"line": 5, "isTracking": False},
        ]
    )

    assert [record.line for record in resumed] == [5]
    assert "Dropping invalid tracking record" in caplog.text


def test_load_keeps_latest_of_several_active(caplog) -> None:
    caplog.set_level("WARNING", logger="tasktree.tracking.registry")
    registry = TrackingRegistry(clock=FakeClock(NOW))

    registry.load(
        [
            {"line": 1, "isTracking": True, "trackingStartTime": NOW - 5_000},
            {"line": 2, "isTracking": True, "trackingStartTime": NOW - 1_000},
        ]
    )

    assert [record.line for record in registry.active()] == [2]
    assert "keeping the most recent" in caplog.text


def test_add_rejects_second_active_line() -> None:
    registry = TrackingRegistry(clock=FakeClock(NOW))
    registry.add(TrackingRecord(line=1, is_tracking=True, tracking_start_time=NOW))

    with pytest.raises(TrackingConflictError):
        registry.add(TrackingRecord(line=2, is_tracking=True, tracking_start_time=NOW))

    registry.add(TrackingRecord(line=1, is_tracking=True, tracking_start_time=NOW + 1))
    assert len(registry.records) == 1
    assert registry.find(1).tracking_start_time == NOW + 1


def test_task_events_drive_records() -> None:
    registry = TrackingRegistry(clock=FakeClock(NOW))
    snapshots: list[list[int]] = []
    registry.subscribe(lambda records: snapshots.append([record.line for record in records]))
    task = Task("Focus", actual_time=Duration(minutes=5))
    task.subscribe(lambda source, event: registry.handle_task_event(7, source, event))

    task.tracking_start(now=NOW)
    record = registry.find(7)
    assert record.is_tracking
    assert record.tracking_start_time == NOW
    assert record.elapsed_time == Duration(minutes=5)

    task.tracking_stop(now=NOW + 60_000)
    assert registry.find(7) is None
    assert snapshots == [[7], []]


def test_relocate_follows_moved_lines(caplog) -> None:
    caplog.set_level("WARNING", logger="tasktree.tracking.registry")
    registry = TrackingRegistry(
        [
            TrackingRecord(line=2, is_tracking=True, tracking_start_time=NOW),
            TrackingRecord(line=5),
        ],
        clock=FakeClock(NOW),
    )

    registry.relocate({2: 3, 5: None})

    assert [record.line for record in registry.records] == [3]
    assert "disappeared" in caplog.text


def test_others_excludes_requested_line() -> None:
    registry = TrackingRegistry(
        [TrackingRecord(line=1, is_tracking=True), TrackingRecord(line=2)],
        clock=FakeClock(NOW),
    )

    assert [record.line for record in registry.others(2)] == [1]
    assert registry.others(1) == []
