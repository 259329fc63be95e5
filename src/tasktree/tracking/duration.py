"""Accumulated time spans used for estimates and tracked time."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

_COMPACT_PATTERN = re.compile(r"^(?:(\d+)d)?(?:(\d+)h)?(?:(\d+)m)?$")

SECONDS_PER_MINUTE = 60
MINUTES_PER_HOUR = 60
HOURS_PER_DAY = 24
MS_PER_MINUTE = 60 * 1000


def now_ms() -> int:
    """Return the current wall-clock time in milliseconds."""

    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class Duration:
    """A normalized span of days, hours, minutes and seconds.

    Components are carried on construction, so ``Duration(seconds=61)`` is
    stored as one minute and one second. Arithmetic returns new instances.
    """

    seconds: int = 0
    minutes: int = 0
    hours: int = 0
    days: int = 0

    def __post_init__(self) -> None:
        raw = (self.seconds, self.minutes, self.hours, self.days)
        if any(value < 0 for value in raw):
            logger.warning("Negative duration component clamped to zero", extra={"components": raw})
        seconds, minutes, hours, days = (max(0, int(value)) for value in raw)

        minutes += seconds // SECONDS_PER_MINUTE
        seconds %= SECONDS_PER_MINUTE
        hours += minutes // MINUTES_PER_HOUR
        minutes %= MINUTES_PER_HOUR
        days += hours // HOURS_PER_DAY
        hours %= HOURS_PER_DAY

        object.__setattr__(self, "seconds", seconds)
        object.__setattr__(self, "minutes", minutes)
        object.__setattr__(self, "hours", hours)
        object.__setattr__(self, "days", days)

    @classmethod
    def parse(cls, text: str | None) -> Duration:
        """Parse the compact ``1d2h3m`` form; every group is optional.

        Text with no recognizable group yields a zero duration.
        """

        match = _COMPACT_PATTERN.match((text or "").strip())
        if match is None or not any(match.groups()):
            logger.warning("Can't parse duration", extra={"text": text})
            return cls()
        days, hours, minutes = (int(group) if group else 0 for group in match.groups())
        return cls(minutes=minutes, hours=hours, days=days)

    @classmethod
    def parse_ms(cls, milliseconds: int | float) -> Duration:
        """Convert a millisecond count to whole minutes, dropping the remainder."""

        if milliseconds < 0:
            logger.warning("Negative elapsed time treated as zero", extra={"milliseconds": milliseconds})
            return cls()
        return cls(minutes=int(milliseconds) // MS_PER_MINUTE)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Duration:
        def component(name: str) -> int:
            value = data.get(name, data.get(f"_{name}", 0))
            return int(value or 0)

        return cls(
            seconds=component("seconds"),
            minutes=component("minutes"),
            hours=component("hours"),
            days=component("days"),
        )

    @classmethod
    def resume_elapsed(cls, baseline: Duration, start_ms: int, current_ms: int) -> Duration:
        """Add the wall-clock gap since ``start_ms`` to a stored baseline."""

        return baseline.add(cls.parse_ms(current_ms - start_ms))

    def to_dict(self) -> dict[str, int]:
        return {
            "seconds": self.seconds,
            "minutes": self.minutes,
            "hours": self.hours,
            "days": self.days,
        }

    def add(self, other: Duration) -> Duration:
        return Duration(
            seconds=self.seconds + other.seconds,
            minutes=self.minutes + other.minutes,
            hours=self.hours + other.hours,
            days=self.days + other.days,
        )

    def __add__(self, other: object) -> Duration:
        if not isinstance(other, Duration):
            return NotImplemented
        return self.add(other)

    def to_minutes(self) -> int:
        return (self.days * HOURS_PER_DAY + self.hours) * MINUTES_PER_HOUR + self.minutes

    def to_ms(self) -> int:
        return (self.to_minutes() * SECONDS_PER_MINUTE + self.seconds) * 1000

    def is_empty(self) -> bool:
        return not (self.seconds or self.minutes or self.hours or self.days)

    def to_clock_string(self) -> str:
        """Render as ``1d 2h 3m``, leaving out zero-valued leading units."""

        parts = [(self.days, "d"), (self.hours, "h"), (self.minutes, "m")]
        while len(parts) > 1 and parts[0][0] == 0:
            parts.pop(0)
        return " ".join(f"{value}{unit}" for value, unit in parts)

    def to_compact_string(self) -> str:
        """Render in the form accepted by :meth:`parse`; empty for zero."""

        parts = [(self.days, "d"), (self.hours, "h"), (self.minutes, "m")]
        return "".join(f"{value}{unit}" for value, unit in parts if value)

    def __str__(self) -> str:
        return self.to_clock_string()


__all__ = ["Duration", "now_ms"]
