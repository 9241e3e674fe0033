"""
Create Task Group Handler.
POST /groups
Creates a task group and one slot per participant, with rewards split
equally or by weight.
"""
from taskpool.auth import get_user_name, require_user_sub
from taskpool.dynamo import DynamoSlotStore
from taskpool.errors import TaskPoolError
from taskpool.lifecycle import TaskLifecycle
from taskpool.logging import log_event
from taskpool.utils import error_response, format_response, internal_error_response, parse_body

lifecycle = TaskLifecycle(DynamoSlotStore())


def handler(event, context):
    """
    Body: {
        "title": "...", "description": "...",
        "startDate": "2025-06-01T09:00", "deadline": "2025-06-07T18:00",
        "submitDeadline": "2025-06-10T18:00",
        "participantLimit": 3, "reward": 100, "currency": "USDT",
        "rewardDistributionMode": "weighted",
        "weights": [{"participantIndex": 1, "weight": 2}],
        "proofConfig": {...}, "submissionInstructions": "...",
        "assignedUserIds": ["..."]
    }
    """
    log_event(event)

    try:
        creator_id = require_user_sub(event)
        body = parse_body(event)

        group_id = lifecycle.create_group(body, creator_id, get_user_name(event))
        group = lifecycle.get_group(group_id)

        return format_response(201, {
            'message': 'Task created successfully',
            'groupId': group_id,
            'group': group,
            'slots': lifecycle.list_group_slots(group_id)
        })

    except TaskPoolError as e:
        return error_response(e)
    except Exception as e:
        return internal_error_response('creating task group', e)
