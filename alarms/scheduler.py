"""Calendar Alarm Scheduler.

Keeps the calendar-derived alarms in the alarm store in step with
today's Google Calendar events.

State machine:
    Disabled --enable()--> Enabled(Idle) <--sync--> Enabled(Syncing)
    any state --disable()--> Disabled

While enabled, a one-shot timer fires just after every local midnight,
runs a sync and arms its successor. Each sync purges all derived alarms
first and then re-derives them, so a failed fetch leaves zero derived
alarms rather than yesterday's.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from pathlib import Path

from alarms.history import log_sync_result
from alarms.reconciler import DEFAULT_LEAD, derive_alarms, is_stale
from config.clock import Clock, make_clock, seconds_between, wall_time
from gcal.errors import CalendarServiceError
from gcal.oauth_client import OAuthClient
from storage.alarm_store import AlarmStore
from storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

KEY_ENABLED = "calendar_alarm.enabled"
KEY_ONLY_EVENTS_WITH_GUESTS = "calendar_alarm.only_events_with_guests"
KEY_LAST_SYNC = "calendar_alarm.last_sync"

# One second past midnight, so clock drift can't fire the check on the old day.
DAILY_CHECK_TIME = time(0, 0, 1)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class SchedulerState:
    """Persisted scheduler settings plus the armed check time."""

    is_enabled: bool = False
    only_events_with_guests: bool = True
    last_sync: datetime | None = None
    next_check: datetime | None = None


def next_daily_check(now: datetime) -> datetime:
    """Return the next 00:00:01 local time strictly after ``now``.

    Recomputed from wall-clock date components every time, so DST
    transitions shift the offset instead of the wall time.
    """
    candidate = wall_time(now, now.date(), DAILY_CHECK_TIME)
    if candidate <= now:
        candidate = wall_time(now, now.date() + timedelta(days=1), DAILY_CHECK_TIME)
    return candidate


class CalendarAlarmScheduler:
    """Owns every calendar-derived alarm and the daily sync timer."""

    def __init__(
        self,
        client: OAuthClient,
        alarm_store: AlarmStore,
        kv: KeyValueStore,
        clock: Clock | None = None,
        sleep: Sleep = asyncio.sleep,
        lead: timedelta = DEFAULT_LEAD,
        history_dir: str | Path | None = None,
    ) -> None:
        """Initialize the scheduler and drop derived alarms left over from an earlier day.

        Args:
            client: Authenticated calendar client.
            alarm_store: Where alarms live.
            kv: Settings store for the scheduler flags.
            clock: Returns the current aware local time.
            sleep: Awaitable sleep used by the daily timer.
            lead: How long before an event its alarm rings.
            history_dir: Directory for the NDJSON sync history.
        """
        self.client = client
        self.alarm_store = alarm_store
        self.kv = kv
        self.clock = clock or make_clock()
        self._sleep = sleep
        self.lead = lead
        self.history_dir = Path(history_dir) if history_dir is not None else None

        self.state = self._load_state()
        self._timer: asyncio.Task | None = None
        self._syncing = False

        self.cleanup_stale_alarms()

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------

    def start(self) -> None:
        """Arm the daily timer if the feature was left enabled. Needs a running loop."""
        if self.state.is_enabled:
            self._arm_timer()

    def stop(self) -> None:
        """Cancel the timer without changing the persisted state (process shutdown)."""
        self._cancel_timer()

    async def enable(self) -> bool:
        """Turn the calendar sync on and run a first sync right away.

        Returns:
            False (and changes nothing) when not authenticated.
        """
        if not self.client.is_authenticated:
            logger.info("Calendar alarms not enabled: not signed in")
            return False

        self.state.is_enabled = True
        self._save_state()
        self._arm_timer()
        logger.info("Calendar alarms enabled")

        await self.sync_today_alarms()
        return True

    def disable(self) -> int:
        """Turn the calendar sync off and delete every derived alarm.

        Returns:
            Number of derived alarms removed.
        """
        self.state.is_enabled = False
        self._save_state()
        self._cancel_timer()
        removed = self._purge_derived_alarms()
        logger.info("Calendar alarms disabled (%d derived alarms removed)", removed)
        return removed

    def set_only_events_with_guests(self, value: bool) -> None:
        """Persist the guest filter. Takes effect on the next sync."""
        self.state.only_events_with_guests = value
        self._save_state()

    def refresh(self) -> None:
        """Pick up flag changes persisted by another process (the CLI).

        Arms the daily timer when the feature was enabled elsewhere and
        cancels it when it was disabled. Needs a running loop.
        """
        self._reload_flags()
        if self.state.is_enabled and not self.timer_armed:
            self._arm_timer()
        elif not self.state.is_enabled and self.timer_armed:
            logger.info("Calendar alarms were disabled elsewhere; cancelling the daily check")
            self._cancel_timer()

    def cleanup_stale_alarms(self) -> int:
        """Delete derived alarms whose time of day has already passed."""
        now = self.clock()
        removed = self.alarm_store.delete_all_where(lambda alarm: is_stale(alarm, now))
        if removed:
            logger.info("Removed %d stale calendar alarms", removed)
        return removed

    # -----------------------------------------------------------------------
    # Sync
    # -----------------------------------------------------------------------

    async def sync_today_alarms(self) -> bool:
        """Replace the derived alarms with those for today's remaining events.

        A call made while another sync is running returns immediately.
        Fetch failures are logged and absorbed.

        Returns:
            True if the sync completed and alarms were written.
        """
        self._reload_flags()
        if not self.state.is_enabled or not self.client.is_authenticated:
            logger.debug("Sync skipped (enabled=%s, authenticated=%s)", self.state.is_enabled, self.client.is_authenticated)
            return False
        if self._syncing:
            logger.info("Sync already in progress; skipping")
            return False

        self._syncing = True
        try:
            return await self._sync()
        finally:
            self._syncing = False

    async def _sync(self) -> bool:
        removed = self._purge_derived_alarms()

        try:
            events = await self.client.fetch_events_for_today()
        except CalendarServiceError as e:
            logger.error("Calendar sync failed: %s", e)
            log_sync_result("failed", self.history_dir, error=str(e), removed=removed)
            return False

        self._reload_flags()
        if not self.state.is_enabled:
            logger.info("Calendar alarms were disabled during sync; discarding results")
            return False

        now = self.clock()
        alarms = derive_alarms(events, now, self.state.only_events_with_guests, self.lead)
        for alarm in alarms:
            self.alarm_store.add(alarm)

        self.state.last_sync = now
        self._save_state()

        logger.info("Calendar sync complete: %d events, %d alarms set", len(events), len(alarms))
        log_sync_result(
            "completed",
            self.history_dir,
            events_fetched=len(events),
            alarms_created=len(alarms),
            removed=removed,
            alarms=[f"{alarm.time_string} {alarm.source_event_title or ''}".strip() for alarm in alarms],
        )
        return True

    def _purge_derived_alarms(self) -> int:
        return self.alarm_store.delete_all_where(lambda alarm: alarm.is_calendar_derived)

    # -----------------------------------------------------------------------
    # Daily timer
    # -----------------------------------------------------------------------

    def _arm_timer(self) -> None:
        self._cancel_timer()
        target = next_daily_check(self.clock())
        self.state.next_check = target
        self._timer = asyncio.get_running_loop().create_task(self._fire_at(target))
        logger.info("Next calendar check at %s", target.isoformat(timespec="seconds"))

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.state.next_check = None

    async def _fire_at(self, target: datetime) -> None:
        await self._sleep(max(0.0, seconds_between(self.clock(), target)))

        # This task is finished as far as cancellation goes; the successor replaces it.
        self._timer = None
        try:
            await self.sync_today_alarms()
        except Exception:
            logger.exception("Scheduled calendar sync crashed")

        if self.state.is_enabled:
            self._arm_timer()

    # -----------------------------------------------------------------------
    # Persistence
    # -----------------------------------------------------------------------

    def _load_state(self) -> SchedulerState:
        only_with_guests = self.kv.get(KEY_ONLY_EVENTS_WITH_GUESTS)
        last_sync_raw = self.kv.get(KEY_LAST_SYNC)
        last_sync = None
        if last_sync_raw:
            try:
                last_sync = datetime.fromisoformat(last_sync_raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring unreadable last sync timestamp: %r", last_sync_raw)

        return SchedulerState(
            is_enabled=bool(self.kv.get(KEY_ENABLED, False)),
            only_events_with_guests=True if only_with_guests is None else bool(only_with_guests),
            last_sync=last_sync,
        )

    def _reload_flags(self) -> None:
        loaded = self._load_state()
        self.state.is_enabled = loaded.is_enabled
        self.state.only_events_with_guests = loaded.only_events_with_guests
        self.state.last_sync = loaded.last_sync

    def _save_state(self) -> None:
        self.kv.set(KEY_ENABLED, self.state.is_enabled)
        self.kv.set(KEY_ONLY_EVENTS_WITH_GUESTS, self.state.only_events_with_guests)
        if self.state.last_sync is not None:
            self.kv.set(KEY_LAST_SYNC, self.state.last_sync.isoformat())
