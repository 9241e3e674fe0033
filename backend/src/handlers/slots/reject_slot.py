"""
Reject Slot Handler.
POST /slots/{slotId}/reject
Body: { "reason": "...", "option": "resubmit" | "reclaim" | "rejected" }

resubmit  - claimer keeps the slot and must submit new proof
reclaim   - slot is released back to the pool
rejected  - final rejection
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
        option = body.get('option')
        lifecycle.reject(slot_id, caller_id, body.get('reason'), option, get_user_name(event))

        return format_response(200, {
            'message': 'Task rejected',
            'slotId': slot_id,
            'option': option
        })

    except TaskPoolError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response('rejecting slot', e)
