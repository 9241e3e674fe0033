"""
Acknowledge Transfer Handler.
POST /slots/{slotId}/transfer
Body: { "transferred": true }
Marks (or unmarks) that the reward of a completed slot has been paid out.
Payment itself happens outside the platform.
"""
from taskpool.auth import require_user_sub
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
        transferred = body.get('transferred', True)
        lifecycle.acknowledge_transfer(slot_id, caller_id, transferred)

        return format_response(200, {
            'message': 'Transfer acknowledged' if transferred else 'Transfer acknowledgement cleared',
            'slotId': slot_id,
            'transferred': transferred
        })

    except TaskPoolError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response('acknowledging transfer', e)
