"""
In-memory SlotStore for engine tests.

A single lock stands in for the storage service's per-item atomicity: each
method call is one "request" to the store, and update_slot is a real
compare-and-swap on the version. The engine itself never sees the lock.
"""
import copy
import threading
from datetime import datetime, timedelta, timezone

from taskpool.errors import SlotNotFound, StorageUnavailable
from taskpool.models import split_slot_id
from taskpool.store import SlotStore

CREATOR = 'creator-1'
ALICE = 'user-alice'
BOB = 'user-bob'
CAROL = 'user-carol'


class InMemorySlotStore(SlotStore):

    def __init__(self):
        self._lock = threading.Lock()
        self.groups = {}
        self.slots = {}      # (group_id, participant_index) -> TaskSlot
        self.timelines = {}  # slot_id -> [TimelineEntry]
        self.fail_timeline_appends = False
        self.unavailable = False
        self.update_calls = 0
        self.before_update = None  # hook(slot) run before the CAS, for race tests

    def _check_available(self):
        if self.unavailable:
            raise StorageUnavailable(diagnostic={'operation': 'fake', 'code': 'ReadTimeoutError'})

    def create_group(self, group, slots, entries):
        self._check_available()
        with self._lock:
            if group.group_id in self.groups:
                raise ValueError('group exists')
            self.groups[group.group_id] = copy.deepcopy(group)
            for slot, entry in zip(slots, entries):
                self.slots[(slot.group_id, slot.participant_index)] = copy.deepcopy(slot)
                self.timelines[slot.slot_id] = [entry]

    def get_group(self, group_id):
        self._check_available()
        with self._lock:
            return copy.deepcopy(self.groups.get(group_id))

    def list_groups(self):
        self._check_available()
        with self._lock:
            return [copy.deepcopy(g) for g in self.groups.values()]

    def get_slot(self, group_id, participant_index):
        self._check_available()
        with self._lock:
            return copy.deepcopy(self.slots.get((group_id, participant_index)))

    def list_slots(self, group_id):
        self._check_available()
        with self._lock:
            slots = [copy.deepcopy(s) for (g, _), s in self.slots.items() if g == group_id]
        return sorted(slots, key=lambda s: s.participant_index)

    def update_slot(self, slot, expected_version):
        self._check_available()
        if self.before_update:
            self.before_update(slot)
        with self._lock:
            self.update_calls += 1
            key = (slot.group_id, slot.participant_index)
            current = self.slots.get(key)
            if current is None or current.version != expected_version:
                return False
            self.slots[key] = copy.deepcopy(slot)
            return True

    def append_timeline(self, slot_id, entries):
        self._check_available()
        if self.fail_timeline_appends:
            raise StorageUnavailable(diagnostic={'operation': 'append_timeline', 'code': 'ReadTimeoutError'})
        parts = split_slot_id(slot_id)
        with self._lock:
            if parts is None or parts not in self.slots:
                raise SlotNotFound(f"Slot {slot_id} not found")
            self.timelines.setdefault(slot_id, []).extend(entries)

    def read_timeline(self, slot_id):
        self._check_available()
        with self._lock:
            return list(self.timelines.get(slot_id, []))


class FakeClock:
    """Settable clock; call it to get the current instant."""

    def __init__(self, start=None):
        self.current = start or datetime(2025, 6, 2, 4, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, instant):
        self.current = instant
