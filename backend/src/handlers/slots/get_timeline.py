"""
Get Timeline Handler.
GET /slots/{slotId}/timeline
Returns the slot's audit trail in the order it was written.
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

        timeline = lifecycle.get_timeline(slot_id)
        return format_response(200, {
            'slotId': slot_id,
            'timeline': timeline,
            'totalEntries': len(timeline)
        })

    except TaskPoolError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response('getting timeline', e)
