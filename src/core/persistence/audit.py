"""
Event ledger — append-only record of plan execution events.

Every event the engine or the use cases emit can be appended to an
NDJSON (newline-delimited JSON) file, giving an instance its execution
history: when a plan started, which phases completed, what failed.

The ledger is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from src.core.observability.events import EventRecorder, EventType

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_DIR = ".state"
DEFAULT_LEDGER_FILE = "events.ndjson"


class EventEntry(BaseModel):
    """A single ledger line."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    subject: str = ""              # namespace/instance
    type: str = EventType.NORMAL
    reason: str = ""
    message: str = ""


class EventLedger:
    """Append-only event ledger writer/reader."""

    def __init__(self, path: Path | None = None, root: Path | None = None):
        if path is not None:
            self._path = path
        elif root is not None:
            self._path = root / DEFAULT_LEDGER_DIR / DEFAULT_LEDGER_FILE
        else:
            self._path = Path(DEFAULT_LEDGER_DIR) / DEFAULT_LEDGER_FILE

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: EventEntry) -> None:
        """Append an entry to the ledger.

        Raises:
            OSError: The ledger file cannot be written.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False) + "\n"
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line)
        logger.debug("Ledger entry written: %s %s", entry.subject, entry.reason)

    def read_all(self) -> list[EventEntry]:
        """Read all entries, oldest first. Corrupt lines are skipped."""
        if not self._path.is_file():
            return []

        entries = []
        with self._path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(EventEntry.model_validate(json.loads(line)))
                except (json.JSONDecodeError, ValidationError) as e:
                    logger.warning("Skipping corrupt ledger entry at line %d: %s", line_num, e)
        return entries

    def read_recent(self, n: int = 20) -> list[EventEntry]:
        return self.read_all()[-n:]

    def entry_count(self) -> int:
        if not self._path.is_file():
            return 0
        with self._path.open("r", encoding="utf-8") as f:
            return sum(1 for line in f if line.strip())


class LedgerEventRecorder(EventRecorder):
    """Event recorder that appends to an ``EventLedger``."""

    def __init__(self, ledger: EventLedger):
        self._ledger = ledger

    @property
    def ledger(self) -> EventLedger:
        return self._ledger

    def record(self, subject: str, event_type: EventType, reason: str, message: str) -> None:
        self._ledger.write(EventEntry(
            subject=subject,
            type=str(event_type),
            reason=reason,
            message=message,
        ))
