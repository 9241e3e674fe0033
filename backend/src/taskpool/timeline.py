"""
Append-only per-slot timeline: the record of what happened to a slot and when.

Entries are kept in insertion order. Timestamps are informational only and
are never used to reorder history.
"""
from typing import List, Sequence

from .models import TimelineEntry
from .store import SlotStore


class TimelineLog:
    """Thin append/read facade over the store's timeline operations."""

    def __init__(self, store: SlotStore):
        self._store = store

    def append(self, slot_id: str, entry: TimelineEntry) -> None:
        """Append one entry. Every call adds a row; content is not de-duplicated."""
        self._store.append_timeline(slot_id, [entry])

    def append_many(self, slot_id: str, entries: Sequence[TimelineEntry]) -> None:
        """Append several entries contiguously, in the given order, in one write."""
        if not entries:
            return
        self._store.append_timeline(slot_id, list(entries))

    def read(self, slot_id: str) -> List[TimelineEntry]:
        """Entries oldest first; empty for a slot never written to."""
        return list(self._store.read_timeline(slot_id))
