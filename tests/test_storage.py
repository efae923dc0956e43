"""Tests for the key-value store, alarm store and token store."""

import json
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from alarms.models import Alarm, Weekday
from gcal.token_store import KEY_OAUTH_STATE, TokenStore
from storage.alarm_store import ALARMS_KEY, AlarmStore
from storage.kv_store import JsonFileStore, MemoryStore


# ---------------------------------------------------------------------------
# kv_store.py
# ---------------------------------------------------------------------------


class TestMemoryStore:
    def test_get_default(self) -> None:
        store = MemoryStore()
        assert store.get("missing") is None
        assert store.get("missing", 5) == 5

    def test_values_are_copied(self) -> None:
        store = MemoryStore()
        value = {"a": [1]}
        store.set("k", value)
        value["a"].append(2)
        assert store.get("k") == {"a": [1]}

    def test_remove_falsy_value(self) -> None:
        store = MemoryStore()
        store.set("flag", False)
        store.remove("flag")
        assert "flag" not in store.keys()


class TestJsonFileStore:
    def test_writes_through_on_every_set(self, tmp_path) -> None:
        path = tmp_path / "state" / "state.json"
        store = JsonFileStore(path)
        store.set("calendar_alarm.enabled", True)

        assert json.loads(path.read_text()) == {"calendar_alarm.enabled": True}

    def test_reload_from_disk(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        JsonFileStore(path).set("google.access_token", "abc")

        assert JsonFileStore(path).get("google.access_token") == "abc"

    def test_remove_persists(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        store = JsonFileStore(path)
        store.set("a", 1)
        store.set("b", 2)
        store.remove("a")

        assert json.loads(path.read_text()) == {"b": 2}

    def test_corrupt_file_starts_empty(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        path.write_text("{not json")

        store = JsonFileStore(path)
        assert store.keys() == []

    def test_sees_writes_from_another_store(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        daemon = JsonFileStore(path)
        daemon.set("calendar_alarm.enabled", True)

        cli = JsonFileStore(path)
        cli.set("calendar_alarm.enabled", False)
        cli.set("google.access_token", "from-cli")

        assert daemon.get("calendar_alarm.enabled") is False

        # A write from the first store keeps the second store's keys
        daemon.set("calendar_alarm.last_sync", "2025-10-12T10:00:00+09:00")
        assert json.loads(path.read_text()) == {
            "calendar_alarm.enabled": False,
            "google.access_token": "from-cli",
            "calendar_alarm.last_sync": "2025-10-12T10:00:00+09:00",
        }

    def test_file_deleted_elsewhere(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        store = JsonFileStore(path)
        store.set("a", 1)
        path.unlink()

        assert store.get("a") is None


# ---------------------------------------------------------------------------
# alarm_store.py
# ---------------------------------------------------------------------------


class TestAlarmStore:
    def test_add_and_list(self, kv) -> None:
        store = AlarmStore(kv)
        alarm = Alarm(hour=7, minute=30, weekdays=frozenset({Weekday.MONDAY}))
        store.add(alarm)

        assert [a.id for a in store.list()] == [alarm.id]
        assert kv.get(ALARMS_KEY)[0]["weekdays"] == [2]

    def test_survives_reload(self, kv) -> None:
        AlarmStore(kv).add(Alarm(hour=9, minute=0, is_calendar_derived=True, source_event_title="Standup"))

        reloaded = AlarmStore(kv).list()
        assert len(reloaded) == 1
        assert reloaded[0].is_calendar_derived is True
        assert reloaded[0].source_event_title == "Standup"

    def test_delete(self, kv) -> None:
        store = AlarmStore(kv)
        keep = Alarm(hour=6, minute=0)
        drop = Alarm(hour=7, minute=0)
        store.add(keep)
        store.add(drop)

        assert store.delete(drop.id) is True
        assert store.delete(drop.id) is False
        assert [a.id for a in store.list()] == [keep.id]

    def test_delete_all_where(self, kv) -> None:
        store = AlarmStore(kv)
        store.add(Alarm(hour=6, minute=0))
        store.add(Alarm(hour=9, minute=58, is_calendar_derived=True))
        store.add(Alarm(hour=13, minute=28, is_calendar_derived=True))

        removed = store.delete_all_where(lambda a: a.is_calendar_derived)
        assert removed == 2
        assert len(AlarmStore(kv).list()) == 1

    def test_update(self, kv) -> None:
        store = AlarmStore(kv)
        alarm = Alarm(hour=6, minute=0)
        store.add(alarm)

        alarm.is_enabled = False
        assert store.update(alarm) is True
        assert AlarmStore(kv).list()[0].is_enabled is False

    def test_malformed_records_skipped(self) -> None:
        kv = MemoryStore({ALARMS_KEY: [{"id": "x", "hour": 25, "minute": 0}, {"hour": 1}, {"id": "ok", "hour": 1, "minute": 2}]})
        assert [a.id for a in AlarmStore(kv).list()] == ["ok"]

    def test_two_processes_share_one_file(self, tmp_path) -> None:
        path = tmp_path / "state.json"
        daemon = AlarmStore(JsonFileStore(path))
        cli = AlarmStore(JsonFileStore(path))

        derived = Alarm(hour=10, minute=3, is_calendar_derived=True, source_event_title="Standup")
        daemon.add(derived)
        assert cli.delete_all_where(lambda a: a.is_calendar_derived) == 1
        user = Alarm(hour=7, minute=30)
        cli.add(user)

        assert [a.id for a in daemon.list()] == [user.id]

        # The daemon's next write must not bring back the deleted alarm or drop the new one
        later = Alarm(hour=18, minute=0)
        daemon.add(later)
        assert [a.id for a in AlarmStore(JsonFileStore(path)).list()] == [user.id, later.id]


# ---------------------------------------------------------------------------
# token_store.py
# ---------------------------------------------------------------------------


class TestTokenStore:
    def test_empty_credentials(self, kv) -> None:
        creds = TokenStore(kv).get_credentials()
        assert creds.client_id == ""
        assert creds.access_token is None
        assert creds.expiry is None

    def test_expiry_round_trip_keeps_instant(self, kv) -> None:
        store = TokenStore(kv)
        expiry = datetime(2025, 10, 12, 11, 0, tzinfo=ZoneInfo("Asia/Tokyo"))
        store.set_access_token("tok", expiry)

        creds = store.get_credentials()
        assert creds.access_token == "tok"
        assert creds.expiry == expiry

    def test_access_token_valid_only_before_expiry(self, kv) -> None:
        store = TokenStore(kv)
        now = datetime(2025, 10, 12, 10, 0, tzinfo=ZoneInfo("Asia/Tokyo"))
        store.set_access_token("tok", now + timedelta(seconds=1))

        creds = store.get_credentials()
        assert creds.access_token_valid(now) is True
        assert creds.access_token_valid(now + timedelta(seconds=1)) is False

    def test_clear_all(self, kv) -> None:
        store = TokenStore(kv)
        store.set_client("id", "secret")
        store.set_access_token("tok", datetime(2030, 1, 1, tzinfo=ZoneInfo("UTC")))
        store.set_refresh_token("ref")
        store.set_pending_state("state")
        kv.set("calendar_alarm.enabled", True)

        store.clear_all()

        assert kv.keys() == ["calendar_alarm.enabled"]
        assert kv.get(KEY_OAUTH_STATE) is None
