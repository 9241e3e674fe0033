"""
Tests for the DynamoDB slot store, with boto3 resource and client mocked.
"""
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, ReadTimeoutError

from taskpool.dynamo import DynamoSlotStore, deserialize_item, serialize_item
from taskpool.errors import SlotNotFound, StorageUnavailable
from taskpool.models import TaskGroup, TaskSlot, TimelineEntry

NOW = datetime(2025, 6, 2, 4, 0, tzinfo=timezone.utc)


def client_error(code, operation='PutItem', reasons=None):
    response = {'Error': {'Code': code, 'Message': code}}
    if reasons is not None:
        response['CancellationReasons'] = [{'Code': r} for r in reasons]
    return ClientError(response, operation)


def make_slot(**overrides):
    fields = dict(
        group_id='g-1',
        participant_index=1,
        reward=Decimal('50.00'),
        currency='USDT',
        created_at=NOW,
        updated_at=NOW,
    )
    fields.update(overrides)
    return TaskSlot(**fields)


def make_group():
    return TaskGroup(
        group_id='g-1',
        title='Plant a tree',
        description='Plant one sapling',
        creator_id='creator-1',
        start_at=NOW,
        deadline_at=NOW.replace(day=7),
        capacity=2,
        reward_mode='equal',
        total_reward=Decimal('100.00'),
        currency='USDT',
        created_at=NOW,
        proof_requirements={'description': {'enabled': True, 'minChars': 20}},
        assignee_ids=['user-alice'],
    )


@pytest.fixture()
def tables():
    return {'groups': MagicMock(), 'slots': MagicMock(), 'timeline': MagicMock()}


@pytest.fixture()
def client():
    return MagicMock()


@pytest.fixture()
def dynamo(tables, client):
    resource = MagicMock()
    resource.Table.side_effect = lambda name: tables[name]
    return DynamoSlotStore(
        resource=resource,
        client=client,
        groups_table='groups',
        slots_table='slots',
        timeline_table='timeline',
        append_retries=3,
    )


class TestItemMapping:

    def test_slot_round_trip(self):
        slot = make_slot(claimer_id='user-alice', status='claimed', claimed_at=NOW, version=4)
        assert TaskSlot.from_item(slot.to_item()) == slot

    def test_group_round_trip(self):
        group = make_group()
        assert TaskGroup.from_item(group.to_item()) == group

    def test_nulls_are_not_stored(self):
        item = make_slot().to_item()
        assert 'claimerId' not in item
        assert 'proof' not in item

    def test_low_level_serialization(self):
        item = serialize_item({'slotId': 'g-1.1', 'version': 2, 'reward': Decimal('50.00')})
        assert item == {'slotId': {'S': 'g-1.1'}, 'version': {'N': '2'}, 'reward': {'N': '50.00'}}
        assert deserialize_item(item) == {'slotId': 'g-1.1', 'version': Decimal('2'), 'reward': Decimal('50.00')}


class TestCreateGroup:

    def test_single_transaction(self, dynamo, client):
        group = make_group()
        slots = [make_slot(participant_index=i) for i in (1, 2)]
        entries = [TimelineEntry(status='unclaimed', timestamp=NOW, actor_id='creator-1', action='create')] * 2

        dynamo.create_group(group, slots, entries)

        client.transact_write_items.assert_called_once()
        items = client.transact_write_items.call_args.kwargs['TransactItems']
        assert len(items) == 5
        assert [i['Put']['TableName'] for i in items] == ['groups', 'slots', 'timeline', 'slots', 'timeline']
        assert all(i['Put']['ConditionExpression'].startswith('attribute_not_exists') for i in items)
        timeline_item = items[2]['Put']['Item']
        assert timeline_item['slotId'] == {'S': 'g-1.1'}
        assert timeline_item['entries']['L'][0]['M']['status'] == {'S': 'unclaimed'}

    def test_throttled(self, dynamo, client):
        client.transact_write_items.side_effect = client_error('ThrottlingException', 'TransactWriteItems')
        with pytest.raises(StorageUnavailable) as exc_info:
            dynamo.create_group(make_group(), [make_slot()], [TimelineEntry(status='unclaimed', timestamp=NOW)])
        assert exc_info.value.diagnostic == {'operation': 'create_group', 'code': 'ThrottlingException'}

    @pytest.mark.parametrize('reason', ['ThrottlingError', 'TransactionConflict', 'ProvisionedThroughputExceeded'])
    def test_cancelled_transaction_is_retryable(self, dynamo, client, reason):
        client.transact_write_items.side_effect = client_error(
            'TransactionCanceledException', 'TransactWriteItems', reasons=['None', reason, 'None']
        )
        with pytest.raises(StorageUnavailable) as exc_info:
            dynamo.create_group(make_group(), [make_slot()], [TimelineEntry(status='unclaimed', timestamp=NOW)])
        assert exc_info.value.diagnostic['reasons'] == ['None', reason, 'None']

    def test_existing_group_is_not_retryable(self, dynamo, client):
        client.transact_write_items.side_effect = client_error(
            'TransactionCanceledException', 'TransactWriteItems', reasons=['ConditionalCheckFailed', 'None', 'None']
        )
        with pytest.raises(ClientError):
            dynamo.create_group(make_group(), [make_slot()], [TimelineEntry(status='unclaimed', timestamp=NOW)])


class TestSlots:

    def test_get_slot_consistent_read(self, dynamo, tables):
        slot = make_slot(version=2)
        tables['slots'].get_item.return_value = {'Item': slot.to_item()}

        assert dynamo.get_slot('g-1', 1) == slot
        tables['slots'].get_item.assert_called_once_with(
            Key={'groupId': 'g-1', 'participantIndex': 1},
            ConsistentRead=True
        )

    def test_get_missing_slot(self, dynamo, tables):
        tables['slots'].get_item.return_value = {}
        assert dynamo.get_slot('g-1', 9) is None

    def test_list_slots_paginates_and_sorts(self, dynamo, tables):
        tables['slots'].query.side_effect = [
            {'Items': [make_slot(participant_index=3).to_item()], 'LastEvaluatedKey': {'groupId': 'g-1'}},
            {'Items': [make_slot(participant_index=1).to_item(), make_slot(participant_index=2).to_item()]},
        ]

        slots = dynamo.list_slots('g-1')

        assert [s.participant_index for s in slots] == [1, 2, 3]
        assert tables['slots'].query.call_count == 2
        assert tables['slots'].query.call_args.kwargs['ExclusiveStartKey'] == {'groupId': 'g-1'}
        assert tables['slots'].query.call_args.kwargs['ConsistentRead'] is True

    def test_update_conditioned_on_version(self, dynamo, tables):
        slot = make_slot(version=4)
        assert dynamo.update_slot(slot, expected_version=3) is True

        kwargs = tables['slots'].put_item.call_args.kwargs
        assert kwargs['Item']['version'] == 4
        expression = kwargs['ConditionExpression'].get_expression()
        assert expression['operator'] == '='
        assert expression['values'][0].name == 'version'
        assert expression['values'][1] == 3

    def test_update_lost_race(self, dynamo, tables):
        tables['slots'].put_item.side_effect = client_error('ConditionalCheckFailedException')
        assert dynamo.update_slot(make_slot(version=1), expected_version=0) is False

    @pytest.mark.parametrize('error', [
        ReadTimeoutError(endpoint_url='https://dynamodb.us-east-1.amazonaws.com'),
        EndpointConnectionError(endpoint_url='https://dynamodb.us-east-1.amazonaws.com'),
        client_error('ProvisionedThroughputExceededException'),
    ])
    def test_update_unavailable(self, dynamo, tables, error):
        tables['slots'].put_item.side_effect = error
        with pytest.raises(StorageUnavailable) as exc_info:
            dynamo.update_slot(make_slot(version=1), expected_version=0)
        assert exc_info.value.diagnostic['operation'] == 'update_slot'

    def test_other_client_errors_propagate(self, dynamo, tables):
        tables['slots'].put_item.side_effect = client_error('ValidationException')
        with pytest.raises(ClientError):
            dynamo.update_slot(make_slot(version=1), expected_version=0)


class TestTimeline:

    def entry(self):
        return TimelineEntry(status='claimed', timestamp=NOW, actor_id='user-alice', action='claim')

    def test_append_is_server_side(self, dynamo, client):
        dynamo.append_timeline('g-1.1', [self.entry()])

        items = client.transact_write_items.call_args.kwargs['TransactItems']
        check, update = items[0]['ConditionCheck'], items[1]['Update']
        assert check['TableName'] == 'slots'
        assert check['Key'] == {'groupId': {'S': 'g-1'}, 'participantIndex': {'N': '1'}}
        assert update['TableName'] == 'timeline'
        assert update['Key'] == {'slotId': {'S': 'g-1.1'}}
        assert 'list_append(if_not_exists(entries, :empty), :new)' in update['UpdateExpression']
        new = update['ExpressionAttributeValues'][':new']['L']
        assert new[0]['M']['status'] == {'S': 'claimed'}

    def test_append_to_missing_slot(self, dynamo, client):
        client.transact_write_items.side_effect = client_error(
            'TransactionCanceledException', 'TransactWriteItems', reasons=['ConditionalCheckFailed', 'None']
        )
        with pytest.raises(SlotNotFound):
            dynamo.append_timeline('g-1.9', [self.entry()])

    def test_append_malformed_id(self, dynamo, client):
        with pytest.raises(SlotNotFound):
            dynamo.append_timeline('g-1', [self.entry()])
        client.transact_write_items.assert_not_called()

    def test_append_retries_on_conflict(self, dynamo, client):
        client.transact_write_items.side_effect = [
            client_error('TransactionCanceledException', 'TransactWriteItems', reasons=['None', 'TransactionConflict']),
            {},
        ]
        dynamo.append_timeline('g-1.1', [self.entry()])
        assert client.transact_write_items.call_count == 2

    def test_append_gives_up(self, dynamo, client):
        client.transact_write_items.side_effect = client_error(
            'TransactionCanceledException', 'TransactWriteItems', reasons=['None', 'TransactionConflict']
        )
        with pytest.raises(StorageUnavailable):
            dynamo.append_timeline('g-1.1', [self.entry()])
        assert client.transact_write_items.call_count == 3

    def test_throttled_append(self, dynamo, client):
        client.transact_write_items.side_effect = client_error(
            'TransactionCanceledException', 'TransactWriteItems', reasons=['None', 'ThrottlingError']
        )
        with pytest.raises(StorageUnavailable):
            dynamo.append_timeline('g-1.1', [self.entry()])
        assert client.transact_write_items.call_count == 1

    def test_read_timeline(self, dynamo, tables):
        entry = self.entry()
        tables['timeline'].get_item.return_value = {'Item': {'slotId': 'g-1.1', 'entries': [entry.to_item()]}}
        assert dynamo.read_timeline('g-1.1') == [entry]

    def test_read_missing_timeline(self, dynamo, tables):
        tables['timeline'].get_item.return_value = {}
        assert dynamo.read_timeline('g-1.1') == []
