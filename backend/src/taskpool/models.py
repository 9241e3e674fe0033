"""
Data models and status constants for the task pool.
Based on the slot lifecycle: unclaimed → claimed → submitted → completed,
with reviewer rejection paths back to unsubmit / unclaimed or to rejected.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .clock import format_local_datetime, from_iso, to_iso


class SlotStatus:
    """Slot lifecycle statuses."""
    UNCLAIMED = 'unclaimed'
    CLAIMED = 'claimed'
    UNSUBMIT = 'unsubmit'  # Rejected for resubmission, claim kept
    SUBMITTED = 'submitted'
    COMPLETED = 'completed'
    REJECTED = 'rejected'

    ALL = (UNCLAIMED, CLAIMED, UNSUBMIT, SUBMITTED, COMPLETED, REJECTED)
    TERMINAL = (COMPLETED, REJECTED)
    SUBMITTABLE = (CLAIMED, UNSUBMIT)


class TimelineMarker:
    """Transient timeline values that are not slot statuses."""
    RECLAIM = 'reclaim'


class TimelineAction:
    """Action labels written to timeline entries."""
    CREATE = 'create'
    CLAIM = 'claim'
    SUBMIT = 'submit_proof'
    APPROVE = 'approve'
    REJECT_RESUBMIT = 'reject_resubmit'
    REJECT_RECLAIM = 'reject_reclaim'
    REOPEN = 'reopen'
    REJECT_FINAL = 'reject_final'


class RejectOption:
    """Reviewer choices when rejecting a submitted slot."""
    RESUBMIT = 'resubmit'
    RECLAIM = 'reclaim'
    REJECTED = 'rejected'

    ALL = (RESUBMIT, RECLAIM, REJECTED)


class RewardMode:
    """Reward distribution modes."""
    EQUAL = 'equal'
    WEIGHTED = 'weighted'

    ALL = (EQUAL, WEIGHTED)


class Currency:
    """Supported reward currencies."""
    ETH = 'ETH'
    NT = 'NT'
    USDT = 'USDT'
    USDC = 'USDC'
    DAI = 'DAI'

    ALL = (ETH, NT, USDT, USDC, DAI)


def make_slot_id(group_id: str, participant_index: int) -> str:
    return f"{group_id}.{participant_index}"


def split_slot_id(slot_id: str) -> Optional[Tuple[str, int]]:
    """
    Split "<groupId>.<participantIndex>" into its parts.

    Returns:
        (group_id, participant_index) or None if the id is not a slot id
    """
    if not slot_id or '.' not in slot_id:
        return None
    group_id, _, index = slot_id.rpartition('.')
    if not group_id or not index.isdigit():
        return None
    return group_id, int(index)


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value))


def _drop_none(item: Dict[str, Any]) -> Dict[str, Any]:
    # DynamoDB rejects empty strings in key attributes and we never store nulls
    return {k: v for k, v in item.items() if v is not None}


@dataclass
class TaskGroup:
    """A task definition shared by all of its slots. Immutable after creation."""
    group_id: str
    title: str
    description: str
    creator_id: str
    start_at: datetime
    deadline_at: datetime
    capacity: int
    reward_mode: str
    total_reward: Decimal
    currency: str
    created_at: datetime
    activity_id: int = 0
    submit_deadline_at: Optional[datetime] = None
    proof_requirements: Dict[str, Any] = field(default_factory=dict)
    submission_instructions: Optional[str] = None
    assignee_ids: List[str] = field(default_factory=list)

    @property
    def is_restricted(self) -> bool:
        return bool(self.assignee_ids)

    def registration_open(self, now: datetime) -> bool:
        return self.start_at <= now <= self.deadline_at

    def to_item(self) -> Dict[str, Any]:
        return _drop_none({
            'groupId': self.group_id,
            'title': self.title,
            'description': self.description,
            'creatorId': self.creator_id,
            'activityId': self.activity_id,
            'startAt': to_iso(self.start_at),
            'deadlineAt': to_iso(self.deadline_at),
            'submitDeadlineAt': to_iso(self.submit_deadline_at),
            'capacity': self.capacity,
            'rewardMode': self.reward_mode,
            'totalReward': self.total_reward,
            'currency': self.currency,
            'proofRequirements': json.dumps(self.proof_requirements),
            'submissionInstructions': self.submission_instructions,
            'assigneeIds': list(self.assignee_ids) or None,
            'createdAt': to_iso(self.created_at),
        })

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'TaskGroup':
        return cls(
            group_id=item['groupId'],
            title=item['title'],
            description=item['description'],
            creator_id=item['creatorId'],
            activity_id=int(item.get('activityId', 0)),
            start_at=from_iso(item['startAt']),
            deadline_at=from_iso(item['deadlineAt']),
            submit_deadline_at=from_iso(item.get('submitDeadlineAt')),
            capacity=int(item['capacity']),
            reward_mode=item['rewardMode'],
            total_reward=_decimal(item['totalReward']),
            currency=item['currency'],
            proof_requirements=json.loads(item.get('proofRequirements') or '{}'),
            submission_instructions=item.get('submissionInstructions'),
            assignee_ids=list(item.get('assigneeIds') or []),
            created_at=from_iso(item['createdAt']),
        )

    def to_view(self) -> Dict[str, Any]:
        """API representation; window instants rendered in business local time."""
        return {
            'groupId': self.group_id,
            'title': self.title,
            'description': self.description,
            'creatorId': self.creator_id,
            'activityId': self.activity_id,
            'startDate': format_local_datetime(self.start_at),
            'deadline': format_local_datetime(self.deadline_at),
            'submitDeadline': format_local_datetime(self.submit_deadline_at) if self.submit_deadline_at else None,
            'participantLimit': self.capacity,
            'rewardDistributionMode': self.reward_mode,
            'totalReward': self.total_reward,
            'currency': self.currency,
            'proofConfig': self.proof_requirements,
            'submissionInstructions': self.submission_instructions,
            'assignedUserIds': list(self.assignee_ids),
            'createdAt': to_iso(self.created_at),
        }


@dataclass
class TaskSlot:
    """One claimable unit of a group. Mutated only through lifecycle transitions."""
    group_id: str
    participant_index: int
    reward: Decimal
    currency: str
    created_at: datetime
    updated_at: datetime
    status: str = SlotStatus.UNCLAIMED
    weight: Decimal = Decimal('1.0')
    claimer_id: Optional[str] = None
    claimer_name: Optional[str] = None
    proof: Optional[str] = None  # JSON-serialized proof payload
    reject_reason: Optional[str] = None  # Also holds the latest approval comment
    reject_option: Optional[str] = None
    discount: Optional[Decimal] = None
    discount_reason: Optional[str] = None
    claimed_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    transferred_at: Optional[datetime] = None
    version: int = 0

    @property
    def slot_id(self) -> str:
        return make_slot_id(self.group_id, self.participant_index)

    @property
    def is_free(self) -> bool:
        return self.claimer_id is None and self.status == SlotStatus.UNCLAIMED

    def proof_payload(self) -> Optional[Dict[str, Any]]:
        if not self.proof:
            return None
        return json.loads(self.proof)

    def to_item(self) -> Dict[str, Any]:
        return _drop_none({
            'groupId': self.group_id,
            'participantIndex': self.participant_index,
            'slotId': self.slot_id,
            'status': self.status,
            'reward': self.reward,
            'currency': self.currency,
            'weight': self.weight,
            'claimerId': self.claimer_id,
            'claimerName': self.claimer_name,
            'proof': self.proof,
            'rejectReason': self.reject_reason,
            'rejectOption': self.reject_option,
            'discount': self.discount,
            'discountReason': self.discount_reason,
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.updated_at),
            'claimedAt': to_iso(self.claimed_at),
            'submittedAt': to_iso(self.submitted_at),
            'completedAt': to_iso(self.completed_at),
            'transferredAt': to_iso(self.transferred_at),
            'version': self.version,
        })

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'TaskSlot':
        return cls(
            group_id=item['groupId'],
            participant_index=int(item['participantIndex']),
            status=item['status'],
            reward=_decimal(item['reward']),
            currency=item['currency'],
            weight=_decimal(item.get('weight', '1.0')),
            claimer_id=item.get('claimerId'),
            claimer_name=item.get('claimerName'),
            proof=item.get('proof'),
            reject_reason=item.get('rejectReason'),
            reject_option=item.get('rejectOption'),
            discount=_decimal(item.get('discount')),
            discount_reason=item.get('discountReason'),
            created_at=from_iso(item['createdAt']),
            updated_at=from_iso(item['updatedAt']),
            claimed_at=from_iso(item.get('claimedAt')),
            submitted_at=from_iso(item.get('submittedAt')),
            completed_at=from_iso(item.get('completedAt')),
            transferred_at=from_iso(item.get('transferredAt')),
            version=int(item.get('version', 0)),
        )

    def to_view(self) -> Dict[str, Any]:
        return {
            'slotId': self.slot_id,
            'groupId': self.group_id,
            'participantIndex': self.participant_index,
            'status': self.status,
            'claimerId': self.claimer_id,
            'claimerName': self.claimer_name,
            'reward': self.reward,
            'currency': self.currency,
            'weightCoefficient': self.weight,
            'proof': self.proof_payload(),
            'rejectReason': self.reject_reason,
            'rejectOption': self.reject_option,
            'discount': self.discount,
            'discountReason': self.discount_reason,
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.updated_at),
            'claimedAt': to_iso(self.claimed_at),
            'submittedAt': to_iso(self.submitted_at),
            'completedAt': to_iso(self.completed_at),
            'transferredAt': to_iso(self.transferred_at),
        }


@dataclass(frozen=True)
class TimelineEntry:
    """One immutable row of a slot's audit trail."""
    status: str
    timestamp: datetime
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    action: Optional[str] = None
    reason: Optional[str] = None

    def to_item(self) -> Dict[str, Any]:
        return _drop_none({
            'status': self.status,
            'actorId': self.actor_id,
            'actorName': self.actor_name,
            'action': self.action,
            'reason': self.reason,
            'timestamp': to_iso(self.timestamp),
        })

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'TimelineEntry':
        return cls(
            status=item['status'],
            actor_id=item.get('actorId'),
            actor_name=item.get('actorName'),
            action=item.get('action'),
            reason=item.get('reason'),
            timestamp=from_iso(item['timestamp']),
        )

    def to_view(self) -> Dict[str, Any]:
        view = self.to_item()
        view.setdefault('reason', None)
        return view
