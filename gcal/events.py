"""Google Calendar events: day window, HTTP request and decoding.

This module isolates the Calendar API wire format so the OAuth client
and the alarm reconciler only deal with ``CalendarEvent`` objects.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any

import requests

from config.clock import wall_time
from gcal.errors import DecodeError

logger = logging.getLogger(__name__)

EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"


class ResponseStatus(str, Enum):
    """An attendee's reply to the invitation."""

    ACCEPTED = "accepted"
    TENTATIVE = "tentative"
    NEEDS_ACTION = "needsAction"
    DECLINED = "declined"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> "ResponseStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass
class Attendee:
    is_self: bool = False
    response_status: ResponseStatus = ResponseStatus.UNKNOWN


@dataclass
class CalendarEvent:
    """A normalized event. ``start`` is None when it could not be resolved."""

    id: str
    title: str
    start: datetime | None
    end: datetime | None = None
    attendees: list[Attendee] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


def day_window(now: datetime) -> tuple[datetime, datetime]:
    """Return (local midnight of ``now``'s day, the following local midnight)."""
    start = wall_time(now, now.date(), time(0, 0))
    end = wall_time(now, now.date() + timedelta(days=1), time(0, 0))
    return start, end


def format_timestamp(moment: datetime) -> str:
    """Format as UTC ISO-8601 with milliseconds, e.g. 2025-02-17T15:00:00.000Z."""
    utc = moment.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def request_events(
    access_token: str,
    time_min: datetime,
    time_max: datetime,
    url: str = EVENTS_URL,
    timeout: int = 30,
) -> requests.Response:
    """Issue the events list request for a time window.

    Status handling is left to the caller, which needs to tell a 401
    apart from other failures.

    Args:
        access_token: OAuth bearer token.
        time_min: Window start (inclusive).
        time_max: Window end (exclusive).
        url: Events endpoint of the calendar to read.
        timeout: Request timeout in seconds.

    Returns:
        The raw HTTP response.

    Raises:
        requests.RequestException: On transport failure.
    """
    params = {
        "timeMin": format_timestamp(time_min),
        "timeMax": format_timestamp(time_max),
        "singleEvents": "true",
        "orderBy": "startTime",
    }
    logger.info("Fetching events (%s to %s)", params["timeMin"], params["timeMax"])
    return requests.get(
        url,
        params=params,
        headers={"Authorization": f"Bearer {access_token}"},
        timeout=timeout,
    )


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def parse_events(payload: Any, reference: datetime) -> list[CalendarEvent]:
    """Decode an events list response body.

    Args:
        payload: The decoded JSON body.
        reference: Any datetime in the user's zone; all-day dates resolve
            to local midnight in that zone.

    Returns:
        Events in the order the API returned them.

    Raises:
        DecodeError: If the body is not an events list.
    """
    if not isinstance(payload, dict):
        raise DecodeError("events response is not a JSON object")

    items = payload.get("items") or []
    if not isinstance(items, list):
        raise DecodeError("'items' is not a list")

    events = []
    for raw in items:
        if not isinstance(raw, dict):
            raise DecodeError(f"event entry is not an object: {raw!r}")
        events.append(parse_event(raw, reference))

    logger.info("Decoded %d events", len(events))
    return events


def parse_event(raw_event: dict[str, Any], reference: datetime) -> CalendarEvent:
    """Parse one raw Calendar API event into a CalendarEvent.

    Raises:
        DecodeError: If ``attendees`` is present but not a list.
    """
    raw_attendees = raw_event.get("attendees") or []
    if not isinstance(raw_attendees, list):
        raise DecodeError(f"'attendees' is not a list: {raw_attendees!r}")

    attendees = []
    for raw in raw_attendees:
        if not isinstance(raw, dict):
            continue
        attendees.append(
            Attendee(
                is_self=raw.get("self") is True,
                response_status=ResponseStatus.parse(raw.get("responseStatus")),
            )
        )

    return CalendarEvent(
        id=str(raw_event.get("id", "")),
        title=str(raw_event.get("summary") or ""),
        start=_resolve_time(raw_event.get("start"), reference),
        end=_resolve_time(raw_event.get("end"), reference),
        attendees=attendees,
    )


def _resolve_time(value: Any, reference: datetime) -> datetime | None:
    """Resolve an EventDateTime object.

    Timed events use "dateTime"; all-day events use "date", which maps to
    local midnight of that day.
    """
    if not isinstance(value, dict):
        return None

    date_time = value.get("dateTime")
    if date_time:
        try:
            parsed = datetime.fromisoformat(date_time)
        except (TypeError, ValueError):
            logger.warning("Unparseable event dateTime: %r", date_time)
            return None
        if parsed.tzinfo is None:
            return wall_time(reference, parsed.date(), parsed.time())
        return parsed

    day = value.get("date")
    if day:
        try:
            return wall_time(reference, date.fromisoformat(day), time(0, 0))
        except (TypeError, ValueError):
            logger.warning("Unparseable event date: %r", day)
            return None

    return None
