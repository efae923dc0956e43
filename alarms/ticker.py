"""Alarm Ticker.

Wakes at the top of every minute and rings each enabled alarm whose time
(and weekday, for repeating alarms) matches. One-shot alarms are used up
by ringing: calendar-derived ones are deleted, user ones switched off.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import date

from alarms.models import Alarm
from config.clock import Clock, make_clock
from storage.alarm_store import AlarmStore

logger = logging.getLogger(__name__)

Notify = Callable[[Alarm], None]


def terminal_notify(alarm: Alarm) -> None:
    """Ring the terminal bell and print the alarm."""
    label = alarm.source_event_title or "Alarm"
    logger.info("Alarm ringing: %s %s", alarm.time_string, label)
    print(f"\a[{alarm.time_string}] {label}", flush=True)


class AlarmTicker:
    """Checks the alarm store once a minute and fires due alarms."""

    def __init__(
        self,
        alarm_store: AlarmStore,
        clock: Clock | None = None,
        notify: Notify = terminal_notify,
        sleep: Callable = asyncio.sleep,
        before_tick: Callable[[], None] | None = None,
    ) -> None:
        self.alarm_store = alarm_store
        self.clock = clock or make_clock()
        self.notify = notify
        self._sleep = sleep
        self.before_tick = before_tick
        self._fired: dict[str, tuple[date, int, int]] = {}

    def tick(self) -> list[Alarm]:
        """Fire every alarm due this minute that has not fired yet.

        Returns:
            The alarms that fired.
        """
        now = self.clock()
        minute_key = (now.date(), now.hour, now.minute)
        fired = []

        alarms = self.alarm_store.list()
        live_ids = {alarm.id for alarm in alarms}
        self._fired = {alarm_id: key for alarm_id, key in self._fired.items() if alarm_id in live_ids}

        for alarm in alarms:
            if not alarm.is_due(now) or self._fired.get(alarm.id) == minute_key:
                continue
            self._fired[alarm.id] = minute_key

            try:
                self.notify(alarm)
            except Exception:
                logger.exception("Alarm notification failed for %s", alarm.time_string)
            self._consume(alarm)
            fired.append(alarm)

        return fired

    async def run(self) -> None:
        """Tick forever, aligned to minute boundaries."""
        while True:
            if self.before_tick is not None:
                try:
                    self.before_tick()
                except Exception:
                    logger.exception("Pre-tick hook failed")
            self.tick()
            now = self.clock()
            await self._sleep(60 - now.second - now.microsecond / 1_000_000)

    def _consume(self, alarm: Alarm) -> None:
        if alarm.is_recurring:
            return
        if alarm.is_calendar_derived:
            self.alarm_store.delete(alarm.id)
            self._fired.pop(alarm.id, None)
        else:
            alarm.is_enabled = False
            self.alarm_store.update(alarm)
