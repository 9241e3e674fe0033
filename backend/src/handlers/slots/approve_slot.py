"""
Approve Slot Handler.
POST /slots/{slotId}/approve
Body: { "comment": "optional reviewer note" }
Only the task creator may approve.
"""
from taskpool.auth import get_user_name, require_user_sub
from taskpool.dynamo import DynamoSlotStore
from taskpool.errors import TaskPoolError, ValidationError
from taskpool.lifecycle import TaskLifecycle
from taskpool.logging import log_event
from taskpool.utils import error_response, format_response, get_path_param, internal_error_response, parse_body

lifecycle = TaskLifecycle(DynamoSlotStore())


def handler(event, context):
    log_event(event)

    try:
        caller_id = require_user_sub(event)
        slot_id = get_path_param(event, 'slotId')
        if not slot_id:
            raise ValidationError('Missing slotId', field='slotId')

        body = parse_body(event)
        lifecycle.approve(slot_id, caller_id, body.get('comment'), get_user_name(event))

        return format_response(200, {
            'message': 'Task approved',
            'slotId': slot_id
        })

    except TaskPoolError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response('approving slot', e)
