"""
Shared fixtures for engine and handler tests.
"""
import os
import sys
from datetime import datetime, timezone

import pytest

# Handler modules build their store at import time
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-east-1')
os.environ.setdefault('GROUPS_TABLE', 'test-task-groups')
os.environ.setdefault('SLOTS_TABLE', 'test-task-slots')
os.environ.setdefault('TIMELINE_TABLE', 'test-slot-timelines')

# Make the Lambda source tree importable (taskpool + handlers)
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
sys.path.insert(0, os.path.dirname(__file__))

from fakes import CREATOR, FakeClock, InMemorySlotStore  # noqa: E402
from taskpool.lifecycle import TaskLifecycle  # noqa: E402


@pytest.fixture()
def store():
    return InMemorySlotStore()


@pytest.fixture()
def clock():
    # 2025-06-02 12:00 business time (UTC+8)
    return FakeClock(datetime(2025, 6, 2, 4, 0, tzinfo=timezone.utc))


@pytest.fixture()
def lifecycle(store, clock):
    return TaskLifecycle(store, now=clock)


@pytest.fixture()
def group_definition():
    """Registration 06-01 09:00 to 06-07 18:00 business time; open at the fixture clock."""
    return {
        'title': 'Plant a tree',
        'description': 'Plant one sapling in the park and document it',
        'startDate': '2025-06-01T09:00',
        'deadline': '2025-06-07T18:00',
        'participantLimit': 2,
        'reward': '100.00',
        'currency': 'USDT',
        'rewardDistributionMode': 'equal',
        'proofConfig': {
            'description': {'enabled': True, 'minChars': 20},
        },
    }


@pytest.fixture()
def make_group(lifecycle, group_definition):
    """Create a group from the default definition, overridden by keyword arguments."""
    def _make(**overrides):
        definition = dict(group_definition)
        definition.update(overrides)
        return lifecycle.create_group(definition, CREATOR, 'Creator')
    return _make


@pytest.fixture()
def valid_proof():
    return {'description': 'Planted an oak sapling near the north gate.'}
