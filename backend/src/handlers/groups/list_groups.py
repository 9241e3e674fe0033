"""
List Task Groups Handler.
GET /groups?open=true
Returns all task groups, newest first. With open=true only groups whose
registration window is currently open are returned.
"""
from taskpool.dynamo import DynamoSlotStore
from taskpool.errors import TaskPoolError
from taskpool.lifecycle import TaskLifecycle
from taskpool.logging import log_event
from taskpool.utils import error_response, format_response, get_query_param, internal_error_response

lifecycle = TaskLifecycle(DynamoSlotStore())


def handler(event, context):
    log_event(event)

    try:
        open_only = (get_query_param(event, 'open', 'false') or '').lower() in ('1', 'true', 'yes')
        groups = lifecycle.list_groups(open_only=open_only)

        return format_response(200, {
            'groups': groups,
            'totalGroups': len(groups)
        })

    except TaskPoolError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response('listing task groups', e)
