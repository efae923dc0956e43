"""Alarm data model.

An alarm is a wall-clock time of day plus an optional set of weekdays.
An empty weekday set means a one-shot alarm. Alarms created by the
calendar sync carry ``is_calendar_derived=True`` and the source event's
title; nothing else may create or delete those.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any


class Weekday(IntEnum):
    """Days of the week, numbered Sunday=1 .. Saturday=7."""

    SUNDAY = 1
    MONDAY = 2
    TUESDAY = 3
    WEDNESDAY = 4
    THURSDAY = 5
    FRIDAY = 6
    SATURDAY = 7

    @property
    def short_name(self) -> str:
        return self.name[:3].title()

    @classmethod
    def from_datetime(cls, moment: datetime) -> "Weekday":
        """Map a datetime to its Weekday (Python counts Monday=0)."""
        return cls((moment.weekday() + 1) % 7 + 1)

    @classmethod
    def parse(cls, text: str) -> "Weekday":
        """Parse "mon", "Monday" or "2" into a Weekday."""
        value = text.strip().lower()
        if value.isdigit():
            return cls(int(value))
        for day in cls:
            if value in (day.name.lower(), day.name.lower()[:3]):
                return day
        raise ValueError(f"Unknown weekday: {text!r}")


WORKDAYS = frozenset({Weekday.MONDAY, Weekday.TUESDAY, Weekday.WEDNESDAY, Weekday.THURSDAY, Weekday.FRIDAY})
WEEKEND = frozenset({Weekday.SATURDAY, Weekday.SUNDAY})


def describe_weekdays(weekdays: frozenset[Weekday] | set[Weekday]) -> str:
    """Human-readable summary of a repeat set."""
    if not weekdays:
        return "One-shot"
    if len(weekdays) == len(Weekday):
        return "Every day"
    if weekdays == WORKDAYS:
        return "Weekdays"
    if weekdays == WEEKEND:
        return "Weekends"
    return ",".join(day.short_name for day in sorted(weekdays))


@dataclass
class Alarm:
    """A single alarm entry."""

    hour: int
    minute: int
    is_enabled: bool = True
    is_calendar_derived: bool = False
    source_event_title: str | None = None
    weekdays: frozenset[Weekday] = field(default_factory=frozenset)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:
            raise ValueError(f"hour out of range: {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValueError(f"minute out of range: {self.minute}")
        self.weekdays = frozenset(Weekday(day) for day in self.weekdays)

    @property
    def is_recurring(self) -> bool:
        return bool(self.weekdays)

    @property
    def time_string(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"

    def is_due(self, now: datetime) -> bool:
        """True when this alarm should ring during the minute of ``now``."""
        if not self.is_enabled:
            return False
        if (now.hour, now.minute) != (self.hour, self.minute):
            return False
        if self.is_recurring and Weekday.from_datetime(now) not in self.weekdays:
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "hour": self.hour,
            "minute": self.minute,
            "is_enabled": self.is_enabled,
            "is_calendar_derived": self.is_calendar_derived,
            "source_event_title": self.source_event_title,
            "weekdays": sorted(int(day) for day in self.weekdays),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Alarm":
        """Rebuild an Alarm from its stored form.

        Raises:
            KeyError, ValueError, TypeError: If the record is malformed.
        """
        return cls(
            id=str(raw["id"]),
            hour=int(raw["hour"]),
            minute=int(raw["minute"]),
            is_enabled=bool(raw.get("is_enabled", True)),
            is_calendar_derived=bool(raw.get("is_calendar_derived", False)),
            source_event_title=raw.get("source_event_title") or None,
            weekdays=frozenset(Weekday(int(day)) for day in raw.get("weekdays", [])),
        )
