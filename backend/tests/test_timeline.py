"""
Tests for the append-only slot timeline.
"""
from datetime import datetime, timedelta, timezone

import pytest

from fakes import ALICE, CREATOR
from taskpool.errors import SlotNotFound
from taskpool.models import TimelineEntry
from taskpool.timeline import TimelineLog

T0 = datetime(2025, 6, 2, 4, 0, tzinfo=timezone.utc)


def entry(status, minutes=0, **kwargs):
    return TimelineEntry(status=status, timestamp=T0 + timedelta(minutes=minutes), **kwargs)


@pytest.fixture()
def slot_id(make_group):
    return f"{make_group()}.1"


@pytest.fixture()
def timeline(store):
    return TimelineLog(store)


class TestTimelineLog:
    """Tests for TimelineLog append/read."""

    def test_new_slot_starts_with_create_entry(self, timeline, slot_id):
        entries = timeline.read(slot_id)
        assert len(entries) == 1
        assert entries[0].status == 'unclaimed'
        assert entries[0].actor_id == CREATOR

    def test_read_unwritten_slot_is_empty(self, timeline, store, slot_id):
        store.timelines.pop(slot_id)
        assert timeline.read(slot_id) == []

    def test_append_creates_missing_timeline(self, timeline, store, slot_id):
        store.timelines.pop(slot_id)
        timeline.append(slot_id, entry('claimed', actor_id=ALICE))
        assert [e.status for e in timeline.read(slot_id)] == ['claimed']

    def test_insertion_order_wins_over_timestamps(self, timeline, slot_id):
        """A later append with an earlier clock reading still lands last."""
        timeline.append(slot_id, entry('claimed', minutes=10))
        timeline.append(slot_id, entry('submitted', minutes=-30))

        entries = timeline.read(slot_id)
        assert [e.status for e in entries] == ['unclaimed', 'claimed', 'submitted']
        assert entries[2].timestamp < entries[1].timestamp

    def test_append_many_is_contiguous(self, timeline, slot_id):
        timeline.append_many(slot_id, [entry('reclaim', reason='No photo'), entry('unclaimed')])
        assert [e.status for e in timeline.read(slot_id)] == ['unclaimed', 'reclaim', 'unclaimed']

    def test_append_many_empty_is_noop(self, timeline, store, slot_id):
        timeline.append_many(slot_id, [])
        assert len(store.timelines[slot_id]) == 1

    def test_identical_entries_are_not_deduplicated(self, timeline, slot_id):
        duplicate = entry('claimed', actor_id=ALICE)
        timeline.append(slot_id, duplicate)
        timeline.append(slot_id, duplicate)
        assert len(timeline.read(slot_id)) == 3

    def test_append_to_unknown_slot(self, timeline, make_group):
        group_id = make_group()
        with pytest.raises(SlotNotFound):
            timeline.append(f"{group_id}.99", entry('claimed'))

    def test_append_to_malformed_id(self, timeline):
        with pytest.raises(SlotNotFound):
            timeline.append('not-a-slot', entry('claimed'))


class TestTimelineEntry:

    def test_view_always_has_reason(self):
        view = entry('claimed', actor_id=ALICE, actor_name='Alice', action='claim').to_view()
        assert view == {
            'status': 'claimed',
            'actorId': ALICE,
            'actorName': 'Alice',
            'action': 'claim',
            'reason': None,
            'timestamp': '2025-06-02T04:00:00+00:00',
        }

    def test_item_round_trip(self):
        original = entry('reclaim', actor_id=CREATOR, action='reject_reclaim', reason='Blurry photo')
        assert TimelineEntry.from_item(original.to_item()) == original
