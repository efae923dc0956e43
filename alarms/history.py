"""Sync History Logger.

Appends one JSON object per calendar sync attempt to a daily log file
(NDJSON), so "why didn't my alarm ring?" can be answered with jq:

    jq 'select(.outcome == "failed")' logs/sync_history/2025-10-12.log
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Directory for sync history logs
LOG_DIR = Path(__file__).parent.parent / "logs" / "sync_history"

_error_logger = logging.getLogger("alarms.history.errors")


def log_sync_result(
    outcome: str,
    log_dir: Path | None = None,
    **details: Any,
) -> None:
    """Append a sync attempt to today's history file.

    Write failures are logged and swallowed: history must never break a sync.

    Args:
        outcome: "completed" or "failed".
        log_dir: Override for the log directory (defaults to LOG_DIR).
        **details: Extra fields (event counts, error text, ...).
    """
    target_dir = Path(log_dir) if log_dir is not None else LOG_DIR
    now = datetime.now(timezone.utc)
    log_file = target_dir / f"{now.strftime('%Y-%m-%d')}.log"

    entry = {
        "logged_at": now.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "outcome": outcome,
        **details,
    }

    try:
        target_dir.mkdir(parents=True, exist_ok=True)
        with open(log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")
    except OSError as e:
        _error_logger.error("Failed to write sync history: %s", e)


def read_recent(limit: int = 10, log_dir: Path | None = None) -> list[dict[str, Any]]:
    """Return the newest ``limit`` history entries, oldest first."""
    target_dir = Path(log_dir) if log_dir is not None else LOG_DIR
    if not target_dir.exists():
        return []

    entries: list[dict[str, Any]] = []
    for log_file in sorted(target_dir.glob("*.log"), reverse=True):
        lines = log_file.read_text(encoding="utf-8").splitlines()
        for line in reversed(lines):
            if not line.strip():
                continue
            try:
                entries.append(json.loads(line))
            except json.JSONDecodeError:
                continue
            if len(entries) >= limit:
                return list(reversed(entries))
    return list(reversed(entries))
