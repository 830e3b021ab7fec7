"""
Run log for the execution record.

Every step narrates into one shared RunLog. Entries are append-only and
keep insertion order; the same messages are mirrored to the Python logger
so they also show up in the diagnostic stream.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .models import ExecutionRecord, LogEntry

logger = logging.getLogger("ccm_remediator")


class RunLog:
    """Append-only, timestamped log of a single run."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.entries: List[LogEntry] = []

    def log(self, message: str, level: int = logging.INFO) -> LogEntry:
        entry = LogEntry(timestamp=self._clock(), message=message)
        self.entries.append(entry)
        logger.log(level, message)
        return entry

    def warning(self, message: str) -> LogEntry:
        return self.log(message, logging.WARNING)

    def error(self, message: str) -> LogEntry:
        return self.log(message, logging.ERROR)

    def lines(self) -> List[str]:
        return [entry.render() for entry in self.entries]

    def contains(self, text: str) -> bool:
        return any(text in entry.message for entry in self.entries)

    def __len__(self) -> int:
        return len(self.entries)


def finalize_record(record: ExecutionRecord, run_log: RunLog, end_time: datetime) -> ExecutionRecord:
    """Stamp the end time and copy the rendered log into the record."""
    record.end_time = end_time
    record.log = run_log.lines()
    return record
