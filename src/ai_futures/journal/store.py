"""JSONL decision journal."""

from __future__ import annotations

import json
from collections.abc import Iterator
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Literal, get_args

from ai_futures.utils.logging import get_logger

EventType = Literal[
    "cycle_start",
    "account_snapshot",
    "candidates",
    "market_data",
    "ai_decision",
    "order",
    "cycle_end",
    "error",
]
EVENT_TYPES: frozenset[str] = frozenset(get_args(EventType))

_FILE_PREFIX = "decisions-"


class JournalStore:
    """Append-only event log of every cycle, one ``decisions-YYYY-MM-DD.jsonl`` per UTC day.

    The journal doubles as the performance history: account snapshots and
    filled close orders are read back to compute the Sharpe ratio.
    """

    def __init__(self, journal_dir: Path) -> None:
        self._journal_dir = journal_dir
        self._journal_dir.mkdir(parents=True, exist_ok=True)
        self._logger = get_logger("ai_futures.journal.store")

    def append(self, event_type: EventType, payload: dict[str, Any]) -> dict[str, Any]:
        """Write one event and return the stored record."""
        if event_type not in EVENT_TYPES:
            raise ValueError(f"unsupported_event_type: {event_type}")
        now = datetime.now(timezone.utc)
        record = {"timestamp": now.isoformat(), "event_type": event_type, "payload": payload}
        line = json.dumps(record, ensure_ascii=False, default=str)
        with self._day_file(now.date()).open("a", encoding="utf-8") as f:
            f.write(line + "\n")
        return record

    def load_recent(self, limit: int, *, event_type: EventType | None = None) -> list[dict[str, Any]]:
        """Return up to ``limit`` most recent events, oldest first."""
        if limit <= 0:
            return []
        newest_first: list[dict[str, Any]] = []
        for record in self._records_newest_first():
            if event_type is not None and record.get("event_type") != event_type:
                continue
            newest_first.append(record)
            if len(newest_first) == limit:
                break
        newest_first.reverse()
        return newest_first

    def _records_newest_first(self) -> Iterator[dict[str, Any]]:
        for path in sorted(self._journal_dir.glob(f"{_FILE_PREFIX}*.jsonl"), reverse=True):
            for line in reversed(path.read_text(encoding="utf-8").splitlines()):
                if not line.strip():
                    continue
                try:
                    yield json.loads(line)
                except json.JSONDecodeError:
                    # A crash mid-write leaves at most one truncated line.
                    self._logger.warning("journal_line_corrupt", file=path.name)

    def _day_file(self, day: date) -> Path:
        return self._journal_dir / f"{_FILE_PREFIX}{day.isoformat()}.jsonl"
