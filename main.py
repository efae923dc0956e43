"""Meeting Alarm - Entry Point.

Wires the key-value store, OAuth client, alarm store and calendar
scheduler together, then either runs the alarm daemon or performs a
single management command.

Usage:
    python setup_calendar.py           # Sign in to Google Calendar (once)
    python main.py run                 # Daemon: midnight sync + ring alarms
    python main.py run --sync-now      # ...and sync today's events immediately
    python main.py sync                # Sync today's calendar alarms now
    python main.py enable | disable    # Turn calendar alarms on/off
    python main.py guests on|off       # Only events with other guests
    python main.py status              # Show session and sync status
    python main.py alarms              # List alarms
    python main.py add-alarm 07:30 --days mon,tue,wed,thu,fri
    python main.py remove-alarm <id>
    python main.py logout              # Forget all Google credentials
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import timedelta

from alarms.history import read_recent
from alarms.models import Alarm, Weekday, describe_weekdays
from alarms.scheduler import CalendarAlarmScheduler
from alarms.ticker import AlarmTicker
from config.clock import Clock, make_clock
from config.settings import Settings, load_settings
from gcal.errors import CalendarServiceError
from gcal.oauth_client import OAuthClient
from gcal.redirect_server import RedirectListener
from gcal.token_store import TokenStore
from storage.alarm_store import AlarmStore
from storage.kv_store import JsonFileStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("main")


@dataclass
class Services:
    """Everything a command needs, built from one Settings object."""

    settings: Settings
    clock: Clock
    kv: JsonFileStore
    tokens: TokenStore
    client: OAuthClient
    alarm_store: AlarmStore
    scheduler: CalendarAlarmScheduler


def build_services(settings: Settings) -> Services:
    """Construct and connect all components.

    Client credentials given in the environment overwrite stored ones.
    """
    clock = make_clock(settings.user_timezone)
    kv = JsonFileStore(settings.state_path)
    tokens = TokenStore(kv)

    listener = RedirectListener(port=settings.redirect_port, callback_path=settings.redirect_path)
    client = OAuthClient(
        tokens,
        redirect_uri=settings.redirect_uri,
        clock=clock,
        listener=listener,
        timeout=settings.request_timeout,
    )
    if settings.google_client_id:
        client.configure_client(settings.google_client_id, settings.google_client_secret)

    alarm_store = AlarmStore(kv)
    scheduler = CalendarAlarmScheduler(
        client,
        alarm_store,
        kv,
        clock=clock,
        lead=timedelta(minutes=settings.alarm_lead_minutes),
        history_dir=settings.sync_log_dir,
    )
    return Services(settings, clock, kv, tokens, client, alarm_store, scheduler)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def run_daemon(services: Services, sync_now: bool) -> None:
    """Restore the session, arm the midnight sync and ring alarms until interrupted."""
    client, scheduler = services.client, services.scheduler

    if await client.restore_session():
        print("  Google Calendar session restored")
    else:
        print("  Not signed in to Google Calendar (run: python setup_calendar.py)")

    scheduler.start()
    if scheduler.state.is_enabled and scheduler.state.next_check:
        print(f"  Next calendar check: {scheduler.state.next_check:%Y-%m-%d %H:%M:%S}")

    if sync_now:
        await scheduler.sync_today_alarms()

    # CLI commands run in other processes and only change the state file.
    ticker = AlarmTicker(services.alarm_store, clock=services.clock, before_tick=scheduler.refresh)
    print("  Alarm daemon running (Ctrl+C to stop)")
    try:
        await ticker.run()
    finally:
        scheduler.stop()


async def sync_once(services: Services) -> int:
    scheduler = services.scheduler
    if not scheduler.state.is_enabled:
        print("Calendar alarms are disabled. Run: python main.py enable")
        return 1
    if not await scheduler.sync_today_alarms():
        print("Sync did not complete; see the log output above.")
        return 1
    print_alarms(services.alarm_store.list())
    return 0


async def enable(services: Services) -> int:
    if not await services.scheduler.enable():
        print("Not signed in to Google Calendar. Run: python setup_calendar.py")
        return 1
    # enable() armed a timer on this short-lived loop; the daemon re-arms its own.
    services.scheduler.stop()
    print("Calendar alarms enabled.")
    print_alarms(services.alarm_store.list())
    return 0


def print_alarms(alarms: list[Alarm]) -> None:
    if not alarms:
        print("No alarms.")
        return
    for alarm in sorted(alarms, key=lambda a: (a.hour, a.minute)):
        flags = []
        if not alarm.is_enabled:
            flags.append("off")
        if alarm.is_calendar_derived:
            flags.append("calendar")
        title = f"  {alarm.source_event_title}" if alarm.source_event_title else ""
        suffix = f" ({', '.join(flags)})" if flags else ""
        print(f"  {alarm.time_string}  {describe_weekdays(alarm.weekdays):<10}{title}{suffix}  [{alarm.id}]")


def print_status(services: Services) -> None:
    state = services.scheduler.state
    creds = services.tokens.get_credentials()
    print(f"Client id configured:  {'yes' if creds.client_id else 'no'}")
    print(f"Signed in:             {'yes' if services.client.is_authenticated else 'no'}")
    if creds.expiry:
        print(f"Access token expiry:   {creds.expiry:%Y-%m-%d %H:%M:%S}")
    print(f"Calendar alarms:       {'enabled' if state.is_enabled else 'disabled'}")
    print(f"Only events w/ guests: {'yes' if state.only_events_with_guests else 'no'}")
    last_sync = f"{state.last_sync:%Y-%m-%d %H:%M:%S}" if state.last_sync else "never"
    print(f"Last sync:             {last_sync}")

    recent = read_recent(limit=5, log_dir=services.scheduler.history_dir)
    if recent:
        print("Recent syncs:")
        for entry in recent:
            detail = entry.get("error") or f"{entry.get('alarms_created', 0)} alarms"
            print(f"  {entry.get('logged_at')}  {entry.get('outcome'):<9}  {detail}")


def parse_time(value: str) -> tuple[int, int]:
    """Parse "HH:MM" into (hour, minute)."""
    try:
        hour_text, minute_text = value.split(":")
        hour, minute = int(hour_text), int(minute_text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected HH:MM, got {value!r}")
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise argparse.ArgumentTypeError(f"time out of range: {value!r}")
    return hour, minute


def parse_days(value: str) -> frozenset[Weekday]:
    """Parse "mon,wed,fri" (or "weekdays", "weekends", "daily")."""
    presets = {
        "daily": frozenset(Weekday),
        "weekdays": frozenset(Weekday) - {Weekday.SATURDAY, Weekday.SUNDAY},
        "weekends": frozenset({Weekday.SATURDAY, Weekday.SUNDAY}),
    }
    if value.lower() in presets:
        return presets[value.lower()]
    try:
        return frozenset(Weekday.parse(part) for part in value.split(",") if part.strip())
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Local alarms, optionally generated from Google Calendar.")
    commands = parser.add_subparsers(dest="command", required=True)

    run_parser = commands.add_parser("run", help="Run the alarm daemon.")
    run_parser.add_argument("--sync-now", action="store_true", help="Sync today's events on startup.")

    commands.add_parser("sync", help="Sync today's calendar alarms now.")
    commands.add_parser("enable", help="Enable calendar alarms and sync.")
    commands.add_parser("disable", help="Disable calendar alarms and remove them.")
    commands.add_parser("status", help="Show session and sync status.")
    commands.add_parser("alarms", help="List alarms.")
    commands.add_parser("logout", help="Forget stored Google credentials.")

    guests_parser = commands.add_parser("guests", help="Only create alarms for events with other guests.")
    guests_parser.add_argument("value", choices=["on", "off"])

    add_parser = commands.add_parser("add-alarm", help="Add an alarm.")
    add_parser.add_argument("time", type=parse_time, help="HH:MM")
    add_parser.add_argument("--days", type=parse_days, default=frozenset(), help="e.g. mon,wed or weekdays")

    remove_parser = commands.add_parser("remove-alarm", help="Delete an alarm by id.")
    remove_parser.add_argument("alarm_id")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Parse arguments and dispatch the command."""
    args = build_parser().parse_args(argv)
    services = build_services(load_settings())

    try:
        if args.command == "run":
            print("Starting Meeting Alarm...")
            asyncio.run(run_daemon(services, sync_now=args.sync_now))
        elif args.command == "sync":
            return asyncio.run(sync_once(services))
        elif args.command == "enable":
            return asyncio.run(enable(services))
        elif args.command == "disable":
            removed = services.scheduler.disable()
            print(f"Calendar alarms disabled ({removed} removed).")
        elif args.command == "guests":
            services.scheduler.set_only_events_with_guests(args.value == "on")
            print(f"Only events with guests: {args.value}")
        elif args.command == "status":
            print_status(services)
        elif args.command == "alarms":
            print_alarms(services.alarm_store.list())
        elif args.command == "add-alarm":
            hour, minute = args.time
            alarm = Alarm(hour=hour, minute=minute, weekdays=args.days)
            services.alarm_store.add(alarm)
            print(f"Added alarm {alarm.time_string} ({describe_weekdays(alarm.weekdays)}) [{alarm.id}]")
        elif args.command == "remove-alarm":
            if not services.alarm_store.delete(args.alarm_id):
                print(f"No alarm with id {args.alarm_id}")
                return 1
            print("Alarm removed.")
        elif args.command == "logout":
            services.client.logout()
            services.scheduler.disable()
            print("Signed out of Google Calendar.")
    except CalendarServiceError as e:
        print(f"  ERROR: {e}")
        return 1
    except KeyboardInterrupt:
        print()
        print("Stopped.")

    return 0


if __name__ == "__main__":
    sys.exit(main())
