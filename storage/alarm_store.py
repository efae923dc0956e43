"""Alarm store.

Keeps the alarm list as one serialized array under a single key of the
key-value store. Nothing is cached: every call reads the list back from
the store, so alarms written by another process are never overwritten.
"""

import logging
from collections.abc import Callable

from alarms.models import Alarm
from storage.kv_store import KeyValueStore

logger = logging.getLogger(__name__)

ALARMS_KEY = "alarms"


class AlarmStore:
    """CRUD over the persisted alarm list."""

    def __init__(self, kv: KeyValueStore) -> None:
        self.kv = kv

    def add(self, alarm: Alarm) -> None:
        alarms = self._load()
        alarms.append(alarm)
        self._save(alarms)

    def update(self, alarm: Alarm) -> bool:
        """Replace the stored alarm with the same id. Returns False if absent."""
        alarms = self._load()
        for index, existing in enumerate(alarms):
            if existing.id == alarm.id:
                alarms[index] = alarm
                self._save(alarms)
                return True
        return False

    def delete(self, alarm_id: str) -> bool:
        alarms = self._load()
        remaining = [a for a in alarms if a.id != alarm_id]
        if len(remaining) == len(alarms):
            return False
        self._save(remaining)
        return True

    def delete_all_where(self, predicate: Callable[[Alarm], bool]) -> int:
        """Delete every alarm matching ``predicate``.

        Returns:
            Number of alarms removed.
        """
        alarms = self._load()
        remaining = [a for a in alarms if not predicate(a)]
        removed = len(alarms) - len(remaining)
        if removed:
            self._save(remaining)
        return removed

    def _load(self) -> list[Alarm]:
        raw_items = self.kv.get(ALARMS_KEY) or []
        if not isinstance(raw_items, list):
            logger.error("Stored alarms are not a list; starting empty")
            return []

        alarms: list[Alarm] = []
        for raw in raw_items:
            try:
                alarms.append(Alarm.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed alarm record %r: %s", raw, e)
        return alarms

    def _save(self, alarms: list[Alarm]) -> None:
        self.kv.set(ALARMS_KEY, [alarm.to_dict() for alarm in alarms])

    def list(self) -> list[Alarm]:
        """Return all alarms, in insertion order."""
        return self._load()
