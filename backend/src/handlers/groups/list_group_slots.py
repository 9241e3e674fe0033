"""
List Group Slots Handler.
GET /groups/{groupId}/slots
Returns the group and every slot (participant) of it, ordered by participant index.
"""
from taskpool.dynamo import DynamoSlotStore
from taskpool.errors import TaskPoolError, ValidationError
from taskpool.lifecycle import TaskLifecycle
from taskpool.logging import log_event
from taskpool.models import SlotStatus
from taskpool.utils import error_response, format_response, get_path_param, internal_error_response

lifecycle = TaskLifecycle(DynamoSlotStore())


def handler(event, context):
    log_event(event)

    try:
        group_id = get_path_param(event, 'groupId')
        if not group_id:
            raise ValidationError('Missing groupId', field='groupId')

        group = lifecycle.get_group(group_id)
        slots = lifecycle.list_group_slots(group_id)

        return format_response(200, {
            'group': group,
            'slots': slots,
            'totalSlots': len(slots),
            'freeSlots': len([s for s in slots if s['status'] == SlotStatus.UNCLAIMED])
        })

    except TaskPoolError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response('listing group slots', e)
