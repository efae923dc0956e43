"""Persistent key-value store.

The OAuth client, token store and scheduler only see the three-method
interface (``get`` / ``set`` / ``remove``). ``JsonFileStore`` backs it with
a single JSON document on disk and writes through on every mutation;
``MemoryStore`` keeps everything in a dict (tests, dry runs).

The daemon and the one-shot CLI commands run as separate processes on the
same file, so ``JsonFileStore`` re-reads it whenever it changed on disk
before serving a read or applying a write.
"""

import json
import logging
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Minimal settings store used across the app."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStore:
    """In-process store. Values are copied in and out."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = deepcopy(initial) if initial else {}

    def get(self, key: str, default: Any = None) -> Any:
        self._refresh()
        if key not in self._data:
            return default
        return deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._refresh()
        self._data[key] = deepcopy(value)
        self._persist()

    def remove(self, key: str) -> None:
        self._refresh()
        if key in self._data:
            del self._data[key]
            self._persist()

    def keys(self) -> list[str]:
        self._refresh()
        return sorted(self._data)

    def _refresh(self) -> None:
        """Hook for subclasses; the in-memory store is always current."""

    def _persist(self) -> None:
        """Hook for subclasses; the in-memory store has nothing to flush."""


class JsonFileStore(MemoryStore):
    """Store backed by one JSON file, rewritten after every mutation."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._signature: tuple[int, ...] | None = None
        self._load()

    def _file_signature(self) -> tuple[int, ...] | None:
        try:
            stat = os.stat(self.path)
        except FileNotFoundError:
            return None
        return (stat.st_ino, stat.st_mtime_ns, stat.st_ctime_ns, stat.st_size)

    def _refresh(self) -> None:
        if self._file_signature() != self._signature:
            logger.debug("State file %s changed on disk; reloading", self.path)
            self._load()

    def _load(self) -> None:
        self._signature = self._file_signature()
        if self._signature is None:
            self._data = {}
            return
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Could not read state file %s: %s", self.path, e)
            return

        if not isinstance(payload, dict):
            logger.error("Ignoring state file %s: top level is not an object", self.path)
            return
        self._data = payload

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._data, indent=2, default=str), encoding="utf-8")
        tmp_path.replace(self.path)
        self._signature = self._file_signature()
