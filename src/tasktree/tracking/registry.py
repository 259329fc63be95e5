"""Registry of tracked task lines and its persisted record shape."""

from __future__ import annotations

import contextlib
import logging
from typing import Annotated, Any, Callable, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, PlainValidator, ValidationError

from .duration import Duration, now_ms
from .task import Task, TaskEvent

logger = logging.getLogger(__name__)


def _to_duration(value: Any) -> Duration:
    if value is None:
        return Duration()
    if isinstance(value, Duration):
        return value
    if isinstance(value, Mapping):
        try:
            return Duration.from_dict(dict(value))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"elapsedTime has a non-integer component: {exc}") from exc
    raise ValueError("elapsedTime must be a mapping of duration components")


DurationField = Annotated[
    Duration,
    PlainValidator(_to_duration),
    PlainSerializer(lambda value: value.to_dict(), return_type=dict),
]


class TrackingConflictError(RuntimeError):
    """Raised when a second line would start tracking while another is running."""


class TrackingRecord(BaseModel):
    """Persisted snapshot of one task's tracking session, keyed by line."""

    model_config = ConfigDict(populate_by_name=True)

    line: int = Field(..., ge=1, description="Line of the tracked task when persisted.")
    is_tracking: bool = Field(default=False, alias="isTracking")
    tracking_start_time: int = Field(
        default=0,
        ge=0,
        alias="trackingStartTime",
        description="Wall-clock start in milliseconds.",
    )
    elapsed_time: DurationField = Field(
        default_factory=Duration,
        alias="elapsedTime",
        description="Time already accumulated when tracking started.",
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


RegistryListener = Callable[[list[TrackingRecord]], None]


class TrackingRegistry:
    """Keeps the tracked-line records consistent with live task state.

    At most one record may be actively tracking; :meth:`add` refuses a
    second one. Persistence is left to the caller (see ``to_payload``).
    """

    def __init__(
        self,
        records: Iterable[TrackingRecord] | None = None,
        *,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._records: list[TrackingRecord] = list(records or [])
        self._clock = clock or now_ms
        self._listeners: list[RegistryListener] = []

    @property
    def records(self) -> list[TrackingRecord]:
        return list(self._records)

    def find(self, line: int) -> TrackingRecord | None:
        return next((record for record in self._records if record.line == line), None)

    def active(self) -> list[TrackingRecord]:
        return [record for record in self._records if record.is_tracking]

    def others(self, line: int) -> list[TrackingRecord]:
        """Active records for lines other than ``line``."""

        return [record for record in self.active() if record.line != line]

    def subscribe(self, listener: RegistryListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.records
        for listener in list(self._listeners):
            listener(snapshot)

    def add(self, record: TrackingRecord) -> None:
        if record.is_tracking:
            running = self.others(record.line)
            if running:
                raise TrackingConflictError(
                    f"Line {running[0].line} is still tracking; stop it before tracking line {record.line}"
                )
        self._records = [existing for existing in self._records if existing.line != record.line]
        self._records.append(record)
        logger.info(
            "Tracking record stored",
            extra={"line": record.line, "is_tracking": record.is_tracking},
        )
        self._notify()

    def remove(self, line: int) -> TrackingRecord | None:
        record = self.find(line)
        if record is None:
            return None
        self._records = [existing for existing in self._records if existing.line != line]
        logger.info("Tracking record removed", extra={"line": line})
        self._notify()
        return record

    def relocate(self, mapping: Mapping[int, int | None]) -> None:
        """Move records to new line numbers after the outline changed shape.

        Lines mapped to ``None`` no longer exist and their records are dropped;
        lines absent from ``mapping`` are left alone.
        """

        moved: list[TrackingRecord] = []
        changed = False
        for record in self._records:
            if record.line not in mapping:
                moved.append(record)
                continue
            new_line = mapping[record.line]
            changed = changed or new_line != record.line
            if new_line is None:
                logger.warning("Tracked line disappeared; dropping record", extra={"line": record.line})
                continue
            moved.append(record.model_copy(update={"line": new_line}))
        if changed:
            self._records = moved
            self._notify()

    def handle_task_event(self, line: int, task: Task, event: TaskEvent) -> None:
        """Task listener: mirror the tracking transitions of the task at ``line``."""

        if event is TaskEvent.TRACKING_STARTED:
            self.add(
                TrackingRecord(
                    line=line,
                    is_tracking=True,
                    tracking_start_time=task.tracking_start_time,
                    elapsed_time=task.actual_time,
                )
            )
        elif event is TaskEvent.TRACKING_STOPPED:
            self.remove(line)

    def load(self, raw_records: Iterable[Any] | None) -> list[TrackingRecord]:
        """Replace the registry contents with persisted records.

        Invalid entries are dropped with a warning. The returned copies have
        the time elapsed since each active record's start added to its
        baseline, computed once here; the stored records keep the baseline
        so that saving and reloading never counts the same gap twice.
        """

        records: list[TrackingRecord] = []
        for raw in raw_records or []:
            try:
                records.append(TrackingRecord.model_validate(raw))
            except ValidationError as exc:
                logger.warning("Dropping invalid tracking record", extra={"error": str(exc)})

        active = [record for record in records if record.is_tracking]
        if len(active) > 1:
            keep = max(active, key=lambda record: record.tracking_start_time)
            logger.warning(
                "Several lines were tracking; keeping the most recent",
                extra={"lines": [record.line for record in active], "kept": keep.line},
            )
            records = [record for record in records if not record.is_tracking or record is keep]

        self._records = records
        current = self._clock()
        resumed = [self._resume(record, current) for record in records]
        for record in resumed:
            if record.is_tracking:
                logger.info(
                    "Resumed tracking",
                    extra={"line": record.line, "elapsed_minutes": record.elapsed_time.to_minutes()},
                )
        return resumed

    @staticmethod
    def _resume(record: TrackingRecord, current: int) -> TrackingRecord:
        if not record.is_tracking:
            return record
        elapsed = Duration.resume_elapsed(record.elapsed_time, record.tracking_start_time, current)
        return record.model_copy(update={"elapsed_time": elapsed})

    def elapsed(self, line: int) -> Duration | None:
        """Live elapsed time for ``line``: baseline plus time since start."""

        record = self.find(line)
        if record is None:
            return None
        return self._resume(record, self._clock()).elapsed_time

    def to_payload(self) -> list[dict[str, Any]]:
        return [record.to_payload() for record in self._records]


__all__ = ["RegistryListener", "TrackingConflictError", "TrackingRecord", "TrackingRegistry"]
