"""Event -> alarm derivation.

Pure functions: given today's events and the current time, decide which
calendar-derived alarms should exist. The scheduler owns writing them.
"""

import logging
from datetime import datetime, timedelta

from alarms.models import Alarm
from gcal.events import CalendarEvent, ResponseStatus

logger = logging.getLogger(__name__)

DEFAULT_LEAD = timedelta(minutes=2)


def guest_count(event: CalendarEvent) -> int:
    """Count attendees other than the user who have not declined."""
    return sum(
        1
        for attendee in event.attendees
        if not attendee.is_self and attendee.response_status != ResponseStatus.DECLINED
    )


def admits_event(event: CalendarEvent, only_events_with_guests: bool) -> bool:
    """Apply the guest filter."""
    if not only_events_with_guests:
        return True
    return guest_count(event) >= 1


def derive_alarm(event: CalendarEvent, now: datetime, lead: timedelta = DEFAULT_LEAD) -> Alarm | None:
    """Build the one-shot alarm for an event, or None if it would not ring in the future.

    Args:
        event: The calendar event.
        now: Current aware local time.
        lead: How long before the start the alarm rings.

    Returns:
        A calendar-derived, enabled, one-shot Alarm, or None.
    """
    if event.start is None:
        return None
    if event.start <= now:
        return None

    ring_at = event.start - lead
    if ring_at <= now:
        return None

    local = ring_at.astimezone(now.tzinfo)
    title = event.title.strip()
    return Alarm(
        hour=local.hour,
        minute=local.minute,
        is_enabled=True,
        is_calendar_derived=True,
        source_event_title=title or None,
    )


def derive_alarms(
    events: list[CalendarEvent],
    now: datetime,
    only_events_with_guests: bool,
    lead: timedelta = DEFAULT_LEAD,
) -> list[Alarm]:
    """Derive the full set of calendar alarms for a sync pass."""
    alarms = []
    for event in events:
        if not admits_event(event, only_events_with_guests):
            logger.debug("Skipping '%s': no guests", event.title)
            continue
        alarm = derive_alarm(event, now, lead)
        if alarm is None:
            logger.debug("Skipping '%s': start unknown or not far enough ahead", event.title)
            continue
        alarms.append(alarm)
    return alarms


def is_stale(alarm: Alarm, now: datetime) -> bool:
    """True for a calendar-derived alarm whose time of day has already passed.

    Compares hour and minute only, so it is only meaningful within a
    single day.
    """
    if not alarm.is_calendar_derived:
        return False
    return (alarm.hour, alarm.minute) < (now.hour, now.minute)
