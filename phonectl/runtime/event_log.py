# phonectl/runtime/event_log.py
from __future__ import annotations

from typing import Iterator, Tuple

from phonectl.runtime.state import LogEntry

DEFAULT_LOG_LIMIT = 100


class EventLog:
    """
    Bounded event history, newest first.

    Entries are ordered by timestamp descending, ties by id descending.
    Each append publishes a brand-new tuple, so readers always hold either
    the previous or the fully updated log.
    """

    def __init__(self, limit: int = DEFAULT_LOG_LIMIT):
        if limit < 1:
            raise ValueError(f"log limit must be >= 1 (got {limit})")
        self._limit = int(limit)
        self._entries: Tuple[LogEntry, ...] = ()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def entries(self) -> Tuple[LogEntry, ...]:
        return self._entries

    def append(self, entry: LogEntry) -> bool:
        """Insert, re-sort, truncate. Returns False if the entry fell off the end."""
        merged = sorted(
            self._entries + (entry,),
            key=lambda e: (e.timestamp, e.id),
            reverse=True,
        )
        kept = tuple(merged[: self._limit])
        self._entries = kept
        return entry in kept

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self._entries)
