"""Local wall-clock helpers.

Everything that asks "what time is it" takes a zero-argument callable
returning an aware datetime, so tests can pin the clock.
"""

from collections.abc import Callable
from datetime import date, datetime, time, timezone, tzinfo
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def resolve_timezone(name: str) -> tzinfo | None:
    """Return the ZoneInfo for ``name``, or None for the system local zone."""
    if not name:
        return None
    return ZoneInfo(name)


def make_clock(timezone_name: str = "") -> Clock:
    """Build a clock returning aware local time.

    Args:
        timezone_name: IANA timezone name. Empty means the system local zone.

    Returns:
        A callable returning the current aware datetime.
    """
    tz = resolve_timezone(timezone_name)

    def now() -> datetime:
        if tz is None:
            return datetime.now().astimezone()
        return datetime.now(tz)

    return now


def wall_time(reference: datetime, day: date, at: time) -> datetime:
    """Build the aware datetime for wall-clock ``at`` on ``day``.

    Uses the reference's zone rules when it carries a ZoneInfo, so the
    UTC offset is recomputed for ``day`` (DST). Fixed-offset references
    fall back to the system local rules.
    """
    if isinstance(reference.tzinfo, ZoneInfo):
        return datetime.combine(day, at, tzinfo=reference.tzinfo)
    return datetime.combine(day, at).astimezone()


def seconds_between(start: datetime, end: datetime) -> float:
    """Elapsed real seconds from ``start`` to ``end``.

    Both are converted to UTC first: subtracting two datetimes that share
    a tzinfo object compares wall-clock fields and ignores DST shifts.
    """
    return (end.astimezone(timezone.utc) - start.astimezone(timezone.utc)).total_seconds()
