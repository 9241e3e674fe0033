"""
Claim Slot Handler.
POST /groups/{groupId}/claim
POST /slots/{slotId}/claim
Assigns the caller the lowest free slot of the group. A slot id in the path
is resolved to its group; allocation is always group-wide.
"""
from taskpool.auth import get_user_name, require_user_sub
from taskpool.dynamo import DynamoSlotStore
from taskpool.errors import TaskPoolError, ValidationError
from taskpool.lifecycle import TaskLifecycle
from taskpool.logging import log_event
from taskpool.utils import error_response, format_response, get_path_param, internal_error_response

lifecycle = TaskLifecycle(DynamoSlotStore())


def handler(event, context):
    log_event(event)

    try:
        caller_id = require_user_sub(event)
        ref = get_path_param(event, 'slotId') or get_path_param(event, 'groupId')
        if not ref:
            raise ValidationError('Missing groupId or slotId')

        slot_id = lifecycle.claim(ref, caller_id, get_user_name(event))

        return format_response(200, {
            'message': 'Task claimed successfully',
            'slotId': slot_id
        })

    except TaskPoolError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response('claiming slot', e)
