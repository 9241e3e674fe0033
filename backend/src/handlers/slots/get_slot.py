"""
Get Slot Handler.
GET /slots/{slotId}
Returns one slot with its group summary and full timeline.
"""
from taskpool.dynamo import DynamoSlotStore
from taskpool.errors import TaskPoolError, ValidationError
from taskpool.lifecycle import TaskLifecycle
from taskpool.logging import log_event
from taskpool.utils import error_response, format_response, get_path_param, internal_error_response

lifecycle = TaskLifecycle(DynamoSlotStore())


def handler(event, context):
    log_event(event)

    try:
        slot_id = get_path_param(event, 'slotId')
        if not slot_id:
            raise ValidationError('Missing slotId', field='slotId')

        return format_response(200, lifecycle.get_slot(slot_id))

    except TaskPoolError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response('getting slot', e)
