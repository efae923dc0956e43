"""Tests for the alarm model."""

from datetime import datetime

import pytest

from alarms.models import WEEKEND, WORKDAYS, Alarm, Weekday, describe_weekdays

from conftest import TZ

SUNDAY_10AM = datetime(2025, 10, 12, 10, 0, tzinfo=TZ)


class TestWeekday:
    def test_from_datetime(self) -> None:
        assert Weekday.from_datetime(SUNDAY_10AM) == Weekday.SUNDAY
        assert Weekday.from_datetime(datetime(2025, 10, 13, tzinfo=TZ)) == Weekday.MONDAY
        assert Weekday.from_datetime(datetime(2025, 10, 18, tzinfo=TZ)) == Weekday.SATURDAY

    @pytest.mark.parametrize("text", ["mon", "Monday", " MON ", "2"])
    def test_parse(self, text) -> None:
        assert Weekday.parse(text) == Weekday.MONDAY

    def test_parse_unknown(self) -> None:
        with pytest.raises(ValueError):
            Weekday.parse("funday")

    def test_describe(self) -> None:
        assert describe_weekdays(frozenset()) == "One-shot"
        assert describe_weekdays(frozenset(Weekday)) == "Every day"
        assert describe_weekdays(WORKDAYS) == "Weekdays"
        assert describe_weekdays(WEEKEND) == "Weekends"
        assert describe_weekdays({Weekday.FRIDAY, Weekday.MONDAY}) == "Mon,Fri"


class TestAlarm:
    def test_rejects_out_of_range_time(self) -> None:
        with pytest.raises(ValueError):
            Alarm(hour=24, minute=0)
        with pytest.raises(ValueError):
            Alarm(hour=7, minute=60)

    def test_ids_are_unique(self) -> None:
        assert Alarm(hour=7, minute=0).id != Alarm(hour=7, minute=0).id

    def test_weekdays_coerced_from_ints(self) -> None:
        alarm = Alarm(hour=7, minute=0, weekdays={1, 7})
        assert alarm.weekdays == WEEKEND
        assert alarm.is_recurring is True

    def test_one_shot_due_at_its_minute(self) -> None:
        alarm = Alarm(hour=10, minute=0)
        assert alarm.is_due(SUNDAY_10AM) is True
        assert alarm.is_due(SUNDAY_10AM.replace(minute=1)) is False

    def test_disabled_never_due(self) -> None:
        assert Alarm(hour=10, minute=0, is_enabled=False).is_due(SUNDAY_10AM) is False

    def test_recurring_checks_weekday(self) -> None:
        assert Alarm(hour=10, minute=0, weekdays=WORKDAYS).is_due(SUNDAY_10AM) is False
        assert Alarm(hour=10, minute=0, weekdays=WEEKEND).is_due(SUNDAY_10AM) is True

    def test_stored_form(self) -> None:
        alarm = Alarm(hour=13, minute=28, is_calendar_derived=True, source_event_title="Customer call")
        raw = alarm.to_dict()

        assert raw == {
            "id": alarm.id,
            "hour": 13,
            "minute": 28,
            "is_enabled": True,
            "is_calendar_derived": True,
            "source_event_title": "Customer call",
            "weekdays": [],
        }
        assert Alarm.from_dict(raw) == alarm

    def test_from_dict_defaults(self) -> None:
        alarm = Alarm.from_dict({"id": "a1", "hour": "6", "minute": 0, "source_event_title": ""})
        assert alarm.is_enabled is True
        assert alarm.is_calendar_derived is False
        assert alarm.source_event_title is None
        assert alarm.weekdays == frozenset()
