"""
DynamoDB implementation of the slot store.

Tables:
    GROUPS_TABLE    PK groupId
    SLOTS_TABLE     PK groupId, SK participantIndex (N)
    TIMELINE_TABLE  PK slotId, attribute `entries` (list, append-only)

Every slot write is a PutItem conditioned on the version that was read; group
creation and timeline appends are TransactWriteItems so that no partial group
and no orphan timeline can exist.
"""
from contextlib import contextmanager
from typing import Any, Dict, List, Optional, Sequence

import boto3
from boto3.dynamodb.conditions import Attr, Key
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, ConnectionError as BotoConnectionError, HTTPClientError

from .clock import now_utc, to_iso
from .config import config
from .errors import SlotNotFound, StorageUnavailable
from .logging import logger
from .models import TaskGroup, TaskSlot, TimelineEntry, split_slot_id
from .store import SlotStore

# Caller-imposed limits on every storage call
BOTO_CONFIG = BotoConfig(
    connect_timeout=config.STORAGE_CONNECT_TIMEOUT,
    read_timeout=config.STORAGE_READ_TIMEOUT,
    retries={'max_attempts': config.STORAGE_MAX_ATTEMPTS, 'mode': 'standard'}
)

# Error codes that mean "try again later" rather than "bad request"
RETRYABLE_ERROR_CODES = {
    'ProvisionedThroughputExceededException',
    'ThrottlingException',
    'RequestLimitExceeded',
    'InternalServerError',
    'ServiceUnavailable',
    'TransactionInProgressException',
}

# Cancellation reasons of a TransactWriteItems call that are worth retrying
RETRYABLE_CANCELLATION_REASONS = {
    'ThrottlingError',
    'TransactionConflict',
    'ProvisionedThroughputExceeded',
}

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a plain item to DynamoDB low-level attribute values."""
    return {k: _serializer.serialize(v) for k, v in item.items()}


def deserialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _deserializer.deserialize(v) for k, v in item.items()}


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


def _cancellation_reasons(error: ClientError) -> List[str]:
    return [r.get('Code') for r in error.response.get('CancellationReasons', [])]


@contextmanager
def storage_call(operation: str):
    """Translate timeouts, connection failures and throttling into StorageUnavailable."""
    try:
        yield
    except ClientError as e:
        code = _error_code(e)
        if code in RETRYABLE_ERROR_CODES:
            logger.warning(f"Storage call {operation} throttled or unavailable: {code}")
            raise StorageUnavailable(diagnostic={'operation': operation, 'code': code})
        if code == 'TransactionCanceledException':
            reasons = _cancellation_reasons(e)
            if RETRYABLE_CANCELLATION_REASONS.intersection(reasons):
                logger.warning(f"Storage call {operation} cancelled: {reasons}")
                raise StorageUnavailable(diagnostic={'operation': operation, 'code': code, 'reasons': reasons})
        raise
    except (BotoConnectionError, HTTPClientError) as e:
        logger.warning(f"Storage call {operation} failed: {e}")
        raise StorageUnavailable(diagnostic={'operation': operation, 'code': type(e).__name__})


class DynamoSlotStore(SlotStore):
    """SlotStore backed by three DynamoDB tables."""

    def __init__(
        self,
        resource=None,
        client=None,
        groups_table: Optional[str] = None,
        slots_table: Optional[str] = None,
        timeline_table: Optional[str] = None,
        append_retries: Optional[int] = None
    ):
        if resource is None:
            resource = boto3.resource('dynamodb', region_name=config.AWS_REGION, config=BOTO_CONFIG)
        if client is None:
            client = boto3.client('dynamodb', region_name=config.AWS_REGION, config=BOTO_CONFIG)

        self._client = client
        self._groups_name = groups_table or config.GROUPS_TABLE
        self._slots_name = slots_table or config.SLOTS_TABLE
        self._timeline_name = timeline_table or config.TIMELINE_TABLE
        self._groups = resource.Table(self._groups_name)
        self._slots = resource.Table(self._slots_name)
        self._timeline = resource.Table(self._timeline_name)
        self._append_retries = append_retries or config.TIMELINE_APPEND_RETRIES

    # ---- groups ----

    def create_group(
        self,
        group: TaskGroup,
        slots: Sequence[TaskSlot],
        entries: Sequence[TimelineEntry]
    ) -> None:
        timestamp = to_iso(group.created_at)
        transact_items = [{
            'Put': {
                'TableName': self._groups_name,
                'Item': serialize_item(group.to_item()),
                'ConditionExpression': 'attribute_not_exists(groupId)'
            }
        }]

        for slot, entry in zip(slots, entries):
            transact_items.append({
                'Put': {
                    'TableName': self._slots_name,
                    'Item': serialize_item(slot.to_item()),
                    'ConditionExpression': 'attribute_not_exists(groupId)'
                }
            })
            transact_items.append({
                'Put': {
                    'TableName': self._timeline_name,
                    'Item': serialize_item({
                        'slotId': slot.slot_id,
                        'entries': [entry.to_item()],
                        'updatedAt': timestamp
                    }),
                    'ConditionExpression': 'attribute_not_exists(slotId)'
                }
            })

        with storage_call('create_group'):
            self._client.transact_write_items(TransactItems=transact_items)

        logger.info(f"Created group {group.group_id} with {len(slots)} slots")

    def get_group(self, group_id: str) -> Optional[TaskGroup]:
        with storage_call('get_group'):
            response = self._groups.get_item(Key={'groupId': group_id}, ConsistentRead=True)
        item = response.get('Item')
        return TaskGroup.from_item(item) if item else None

    def list_groups(self) -> List[TaskGroup]:
        items = []
        params = {}
        with storage_call('list_groups'):
            while True:
                response = self._groups.scan(**params)
                items.extend(response.get('Items', []))
                if 'LastEvaluatedKey' not in response:
                    break
                params['ExclusiveStartKey'] = response['LastEvaluatedKey']
        return [TaskGroup.from_item(item) for item in items]

    # ---- slots ----

    def get_slot(self, group_id: str, participant_index: int) -> Optional[TaskSlot]:
        with storage_call('get_slot'):
            response = self._slots.get_item(
                Key={'groupId': group_id, 'participantIndex': participant_index},
                ConsistentRead=True
            )
        item = response.get('Item')
        return TaskSlot.from_item(item) if item else None

    def list_slots(self, group_id: str) -> List[TaskSlot]:
        items = []
        params = {
            'KeyConditionExpression': Key('groupId').eq(group_id),
            'ConsistentRead': True,
            'ScanIndexForward': True
        }
        with storage_call('list_slots'):
            while True:
                response = self._slots.query(**params)
                items.extend(response.get('Items', []))
                if 'LastEvaluatedKey' not in response:
                    break
                params['ExclusiveStartKey'] = response['LastEvaluatedKey']
        slots = [TaskSlot.from_item(item) for item in items]
        slots.sort(key=lambda s: s.participant_index)
        return slots

    def update_slot(self, slot: TaskSlot, expected_version: int) -> bool:
        with storage_call('update_slot'):
            try:
                self._slots.put_item(
                    Item=slot.to_item(),
                    ConditionExpression=Attr('version').eq(expected_version)
                )
            except ClientError as e:
                if _error_code(e) == 'ConditionalCheckFailedException':
                    logger.info(f"Slot {slot.slot_id} changed since version {expected_version}")
                    return False
                raise
        return True

    # ---- timeline ----

    def append_timeline(self, slot_id: str, entries: Sequence[TimelineEntry]) -> None:
        parts = split_slot_id(slot_id)
        if parts is None:
            raise SlotNotFound(f"Slot {slot_id} not found")
        group_id, participant_index = parts

        transact_items = [
            {
                'ConditionCheck': {
                    'TableName': self._slots_name,
                    'Key': serialize_item({'groupId': group_id, 'participantIndex': participant_index}),
                    'ConditionExpression': 'attribute_exists(groupId)'
                }
            },
            {
                # Server-side append: concurrent appends cannot clobber each other
                'Update': {
                    'TableName': self._timeline_name,
                    'Key': serialize_item({'slotId': slot_id}),
                    'UpdateExpression': 'SET entries = list_append(if_not_exists(entries, :empty), :new), updatedAt = :ts',
                    'ExpressionAttributeValues': serialize_item({
                        ':empty': [],
                        ':new': [entry.to_item() for entry in entries],
                        ':ts': to_iso(now_utc())
                    })
                }
            }
        ]

        for attempt in range(1, self._append_retries + 1):
            with storage_call('append_timeline'):
                try:
                    self._client.transact_write_items(TransactItems=transact_items)
                    return
                except ClientError as e:
                    if _error_code(e) != 'TransactionCanceledException':
                        raise
                    reasons = _cancellation_reasons(e)
                    if reasons and reasons[0] == 'ConditionalCheckFailed':
                        raise SlotNotFound(f"Slot {slot_id} not found")
                    if 'TransactionConflict' not in reasons:
                        raise
            logger.warning(f"Timeline append conflict on {slot_id} (attempt {attempt}/{self._append_retries})")

        raise StorageUnavailable(
            f"Timeline for slot {slot_id} is busy",
            diagnostic={'operation': 'append_timeline', 'code': 'TransactionConflict', 'slotId': slot_id}
        )

    def read_timeline(self, slot_id: str) -> List[TimelineEntry]:
        with storage_call('read_timeline'):
            response = self._timeline.get_item(Key={'slotId': slot_id}, ConsistentRead=True)
        item = response.get('Item') or {}
        return [TimelineEntry.from_item(entry) for entry in item.get('entries', [])]
