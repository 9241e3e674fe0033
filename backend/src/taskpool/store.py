"""
Storage contract consumed by the engine.

Implementations must express all mutual exclusion as storage-side conditional
writes; the engine never holds in-process locks. Calls that time out or are
throttled raise StorageUnavailable.
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from .models import TaskGroup, TaskSlot, TimelineEntry


class SlotStore(ABC):
    """Record store for task groups, their slots and the slot timelines."""

    @abstractmethod
    def create_group(
        self,
        group: TaskGroup,
        slots: Sequence[TaskSlot],
        entries: Sequence[TimelineEntry]
    ) -> None:
        """
        Atomically write the group, its slots and one initial timeline entry per
        slot (entries[i] belongs to slots[i]).
        """

    @abstractmethod
    def get_group(self, group_id: str) -> Optional[TaskGroup]:
        """Return the group or None."""

    @abstractmethod
    def list_groups(self) -> List[TaskGroup]:
        """Return all groups."""

    @abstractmethod
    def get_slot(self, group_id: str, participant_index: int) -> Optional[TaskSlot]:
        """Strongly consistent read of one slot, or None."""

    @abstractmethod
    def list_slots(self, group_id: str) -> List[TaskSlot]:
        """Strongly consistent read of all slots of a group, ordered by participant index."""

    @abstractmethod
    def update_slot(self, slot: TaskSlot, expected_version: int) -> bool:
        """
        Replace the slot only if its stored version still equals expected_version.

        Returns:
            True if written, False if the slot changed since it was read
        """

    @abstractmethod
    def append_timeline(self, slot_id: str, entries: Sequence[TimelineEntry]) -> None:
        """
        Append entries, in order, to the slot's timeline without overwriting
        concurrent appends. Creates the log on first use.

        Raises:
            SlotNotFound: if the slot does not exist
        """

    @abstractmethod
    def read_timeline(self, slot_id: str) -> List[TimelineEntry]:
        """Entries in insertion order; empty if never written."""
