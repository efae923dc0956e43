"""Tests for the command-line entry point."""

import argparse
import json

import pytest

from alarms.models import WORKDAYS, Weekday
from main import main, parse_days, parse_time


@pytest.fixture
def state_env(tmp_path, monkeypatch):
    monkeypatch.setenv("STATE_PATH", str(tmp_path / "state.json"))
    monkeypatch.setenv("SYNC_LOG_DIR", str(tmp_path / "history"))
    monkeypatch.setenv("GOOGLE_CLIENT_ID", "")
    return tmp_path / "state.json"


class TestArgumentParsing:
    def test_parse_time(self) -> None:
        assert parse_time("07:05") == (7, 5)

    @pytest.mark.parametrize("value", ["7", "25:00", "07:60", "ab:cd"])
    def test_parse_time_rejects(self, value) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            parse_time(value)

    def test_parse_days(self) -> None:
        assert parse_days("weekdays") == WORKDAYS
        assert parse_days("mon,Fri") == frozenset({Weekday.MONDAY, Weekday.FRIDAY})

    def test_parse_days_rejects(self) -> None:
        with pytest.raises(argparse.ArgumentTypeError):
            parse_days("mon,someday")


class TestCommands:
    def test_add_and_remove_alarm(self, state_env, capsys) -> None:
        assert main(["add-alarm", "07:30", "--days", "weekdays"]) == 0

        stored = json.loads(state_env.read_text())["alarms"]
        assert len(stored) == 1
        assert stored[0]["weekdays"] == [2, 3, 4, 5, 6]

        assert main(["remove-alarm", stored[0]["id"]]) == 0
        assert json.loads(state_env.read_text())["alarms"] == []
        assert main(["remove-alarm", stored[0]["id"]]) == 1

    def test_guests_toggle(self, state_env) -> None:
        assert main(["guests", "off"]) == 0
        assert json.loads(state_env.read_text())["calendar_alarm.only_events_with_guests"] is False

    def test_enable_without_sign_in(self, state_env, capsys) -> None:
        assert main(["enable"]) == 1
        assert "Not signed in" in capsys.readouterr().out

    def test_status(self, state_env, capsys) -> None:
        assert main(["status"]) == 0
        out = capsys.readouterr().out
        assert "Signed in:             no" in out
        assert "Last sync:             never" in out
