"""
Task lifecycle engine.

Validates and applies every slot transition:

    unclaimed --claim--> claimed --submit--> submitted --approve--> completed
    submitted --reject(resubmit)--> unsubmit --submit--> submitted
    submitted|claimed|unsubmit --reject(reclaim)--> unclaimed
    submitted --reject(rejected)--> rejected

Each transition checks all guards first, then commits the slot with a single
conditional write on its version, then appends the timeline entries. A
timeline failure after a committed write is reported as PartialFailure and
never rolled back.
"""
import json
import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .allocator import SlotAllocator
from .clock import now_utc, parse_local_datetime
from .config import config
from .errors import (
    GroupNotFound,
    InvalidRejectOption,
    MissingReason,
    NoProofOnFile,
    NotClaimer,
    NotCreator,
    OutsideRegistrationWindow,
    OutsideSubmissionWindow,
    PartialFailure,
    ProofValidationFailed,
    SlotNotFound,
    ValidationError,
    WrongState,
)
from .logging import log_transition, logger as default_logger
from .models import (
    Currency,
    RejectOption,
    RewardMode,
    SlotStatus,
    TaskGroup,
    TaskSlot,
    TimelineAction,
    TimelineEntry,
    TimelineMarker,
    split_slot_id,
)
from .proof import normalize_requirements, validate_proof
from .rewards import allocate_rewards, parse_total
from .store import SlotStore
from .timeline import TimelineLog

# Statuses from which the creator may release a slot back to the pool
RECLAIMABLE = (SlotStatus.SUBMITTED, SlotStatus.CLAIMED, SlotStatus.UNSUBMIT)


def _required_text(definition: Dict[str, Any], key: str) -> str:
    value = definition.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{key} is required", field=key)
    return value.strip()


def _parse_assignees(definition: Dict[str, Any]) -> List[str]:
    raw = definition.get('assignedUserIds')
    if raw is None and definition.get('assignedUserId'):
        raw = [definition['assignedUserId']]
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(a, str) and a.strip() for a in raw):
        raise ValidationError("assignedUserIds must be a list of user ids", field='assignedUserIds')

    assignees = []
    for assignee in raw:
        if assignee.strip() not in assignees:
            assignees.append(assignee.strip())
    return assignees


def _parse_capacity(definition: Dict[str, Any], assignees: List[str]) -> int:
    capacity = definition.get('participantLimit')
    if capacity is None:
        capacity = max(len(assignees), 1)
    if isinstance(capacity, bool) or not isinstance(capacity, int):
        raise ValidationError("participantLimit must be an integer", field='participantLimit')
    if not 1 <= capacity <= config.MAX_SLOT_CAPACITY:
        raise ValidationError(
            f"participantLimit must be between 1 and {config.MAX_SLOT_CAPACITY}",
            field='participantLimit'
        )
    if len(assignees) > capacity:
        raise ValidationError("More assigned users than participant slots", field='assignedUserIds')
    return capacity


class TaskLifecycle:
    """Entry point for every task group and slot operation."""

    def __init__(
        self,
        store: SlotStore,
        now: Callable[[], datetime] = now_utc,
        logger: logging.Logger = None,
        allocator: SlotAllocator = None
    ):
        self._store = store
        self._now = now
        self._logger = logger or default_logger
        self._timeline = TimelineLog(store)
        self._allocator = allocator or SlotAllocator(store, logger=self._logger)

    # =========================================================================
    # LOADING
    # =========================================================================

    def _get_group(self, group_id: str) -> TaskGroup:
        group = self._store.get_group(group_id) if group_id else None
        if group is None:
            raise GroupNotFound(f"Task group {group_id} not found")
        return group

    def _load(self, slot_id: str) -> Tuple[TaskGroup, TaskSlot]:
        parts = split_slot_id(slot_id)
        if parts is None:
            raise SlotNotFound(f"Slot {slot_id} not found")
        slot = self._store.get_slot(*parts)
        if slot is None:
            raise SlotNotFound(f"Slot {slot_id} not found")
        return self._get_group(slot.group_id), slot

    # =========================================================================
    # WRITE PATH
    # =========================================================================

    def _record(
        self,
        transition: str,
        slot: TaskSlot,
        entries: Sequence[TimelineEntry],
        from_status: str,
        actor_id: str
    ) -> None:
        """Append the timeline entries of an already committed transition."""
        try:
            self._timeline.append_many(slot.slot_id, entries)
        except Exception as e:
            pending = [entry.to_item() for entry in entries]
            self._logger.error(
                f"Timeline append failed after committed {transition} on {slot.slot_id} "
                f"(version {slot.version}): {e}; pending entries: {json.dumps(pending)}"
            )
            raise PartialFailure(
                f"{transition} was applied but its audit trail could not be written",
                diagnostic={
                    'transition': transition,
                    'slotId': slot.slot_id,
                    'version': slot.version,
                    'pendingEntries': pending,
                    'cause': getattr(e, 'code', type(e).__name__),
                }
            ) from e

        log_transition(
            transition,
            self._logger,
            slotId=slot.slot_id,
            actorId=actor_id,
            fromStatus=from_status,
            toStatus=slot.status,
            version=slot.version,
            entries=len(entries),
        )

    def _commit(self, slot: TaskSlot, now: datetime, **changes) -> TaskSlot:
        """Write the slot if nobody else changed it since it was read."""
        updated = replace(slot, updated_at=now, version=slot.version + 1, **changes)
        if not self._store.update_slot(updated, expected_version=slot.version):
            raise WrongState(f"Slot {slot.slot_id} was modified concurrently, reload and retry")
        return updated

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def create_group(self, definition: Dict[str, Any], creator_id: str, creator_name: Optional[str] = None) -> str:
        """
        Create a task group and all of its slots.

        Args:
            definition: Group definition (title, description, startDate, deadline,
                submitDeadline, participantLimit, rewardDistributionMode,
                reward, currency, weights, proofConfig,
                submissionInstructions, assignedUserIds, activityId)
            creator_id: Identity of the creating user
            creator_name: Display name for the timeline

        Returns:
            The new group id
        """
        if not isinstance(definition, dict):
            raise ValidationError("Task definition must be an object")
        if not creator_id:
            raise ValidationError("creatorId is required", field='creatorId')

        title = _required_text(definition, 'title')
        description = _required_text(definition, 'description')

        if not definition.get('startDate') or not definition.get('deadline'):
            raise ValidationError("startDate and deadline are required", field='deadline')
        start_at = parse_local_datetime(definition['startDate'])
        deadline_at = parse_local_datetime(definition['deadline'])
        if deadline_at <= start_at:
            raise ValidationError("deadline must be after startDate", field='deadline')

        submit_deadline_at = None
        if definition.get('submitDeadline'):
            submit_deadline_at = parse_local_datetime(definition['submitDeadline'])
            if submit_deadline_at < start_at:
                raise ValidationError("submitDeadline must not be before startDate", field='submitDeadline')

        assignees = _parse_assignees(definition)
        capacity = _parse_capacity(definition, assignees)

        currency = definition.get('currency') or config.DEFAULT_CURRENCY
        if currency not in Currency.ALL:
            raise ValidationError(f"Unsupported currency: {currency}", field='currency')

        if definition.get('reward') is None:
            raise ValidationError("reward is required", field='reward')
        mode = definition.get('rewardDistributionMode') or RewardMode.EQUAL
        rewards = allocate_rewards(definition['reward'], capacity, mode, definition.get('weights'))

        activity_id = definition.get('activityId') or 0
        if isinstance(activity_id, bool) or not isinstance(activity_id, int):
            raise ValidationError("activityId must be an integer", field='activityId')

        instructions = definition.get('submissionInstructions')
        if instructions is not None and not isinstance(instructions, str):
            raise ValidationError("submissionInstructions must be text", field='submissionInstructions')

        now = self._now()
        group = TaskGroup(
            group_id=str(uuid.uuid4()),
            title=title,
            description=description,
            creator_id=creator_id,
            activity_id=activity_id,
            start_at=start_at,
            deadline_at=deadline_at,
            submit_deadline_at=submit_deadline_at,
            capacity=capacity,
            reward_mode=mode,
            total_reward=parse_total(definition['reward']),
            currency=currency,
            proof_requirements=normalize_requirements(definition.get('proofConfig')),
            submission_instructions=instructions,
            assignee_ids=assignees,
            created_at=now,
        )

        slots = [
            TaskSlot(
                group_id=group.group_id,
                participant_index=reward.participant_index,
                reward=reward.amount,
                currency=currency,
                weight=reward.weight,
                created_at=now,
                updated_at=now,
            )
            for reward in rewards
        ]
        entries = [
            TimelineEntry(
                status=SlotStatus.UNCLAIMED,
                timestamp=now,
                actor_id=creator_id,
                actor_name=creator_name,
                action=TimelineAction.CREATE,
            )
            for _ in slots
        ]

        self._store.create_group(group, slots, entries)
        log_transition(
            'create_group',
            self._logger,
            groupId=group.group_id,
            actorId=creator_id,
            capacity=capacity,
            rewardMode=mode,
            totalReward=group.total_reward,
        )
        return group.group_id

    def claim(self, ref: str, caller_id: str, caller_name: Optional[str] = None) -> str:
        """
        Claim the lowest free eligible slot of a group.

        Args:
            ref: A group id, or a slot id (resolved to its group)

        Returns:
            The claimed slot id
        """
        if not caller_id:
            raise ValidationError("caller id is required")
        parts = split_slot_id(ref)
        group = self._get_group(parts[0] if parts else ref)

        now = self._now()
        if not group.registration_open(now):
            raise OutsideRegistrationWindow()

        slot = self._allocator.allocate(group, caller_id, now, caller_name)
        entry = TimelineEntry(
            status=SlotStatus.CLAIMED,
            timestamp=now,
            actor_id=caller_id,
            actor_name=caller_name,
            action=TimelineAction.CLAIM,
        )
        self._record('claim', slot, [entry], SlotStatus.UNCLAIMED, caller_id)
        return slot.slot_id

    def submit_proof(
        self,
        slot_id: str,
        caller_id: str,
        proof: Dict[str, Any],
        caller_name: Optional[str] = None
    ) -> None:
        if not isinstance(proof, dict):
            raise ProofValidationFailed("Proof must be an object", field='proof')

        group, slot = self._load(slot_id)
        if slot.claimer_id is None or slot.claimer_id != caller_id:
            raise NotClaimer()
        if slot.status not in SlotStatus.SUBMITTABLE:
            raise WrongState(f"Cannot submit proof for a slot in status {slot.status}")

        now = self._now()
        if group.submit_deadline_at and now > group.submit_deadline_at:
            raise OutsideSubmissionWindow()

        normalized = validate_proof(group.proof_requirements, proof)

        updated = self._commit(
            slot,
            now,
            status=SlotStatus.SUBMITTED,
            proof=json.dumps(normalized, sort_keys=True),
            submitted_at=now,
        )
        entry = TimelineEntry(
            status=SlotStatus.SUBMITTED,
            timestamp=now,
            actor_id=caller_id,
            actor_name=caller_name or slot.claimer_name,
            action=TimelineAction.SUBMIT,
        )
        self._record('submit_proof', updated, [entry], slot.status, caller_id)

    def approve(
        self,
        slot_id: str,
        caller_id: str,
        comment: Optional[str] = None,
        caller_name: Optional[str] = None
    ) -> None:
        """Approve a submitted slot. The comment becomes the slot's latest reviewer note."""
        group, slot = self._load(slot_id)
        if caller_id != group.creator_id:
            raise NotCreator()
        if slot.status != SlotStatus.SUBMITTED:
            raise WrongState(f"Cannot approve a slot in status {slot.status}")
        if not slot.proof:
            raise NoProofOnFile()

        note = comment.strip() if isinstance(comment, str) and comment.strip() else None
        now = self._now()
        updated = self._commit(
            slot,
            now,
            status=SlotStatus.COMPLETED,
            completed_at=now,
            reject_reason=note,
            reject_option=None,
        )
        entry = TimelineEntry(
            status=SlotStatus.COMPLETED,
            timestamp=now,
            actor_id=caller_id,
            actor_name=caller_name,
            action=TimelineAction.APPROVE,
            reason=note,
        )
        self._record('approve', updated, [entry], slot.status, caller_id)

    def reject(
        self,
        slot_id: str,
        caller_id: str,
        reason: str,
        option: str,
        caller_name: Optional[str] = None
    ) -> None:
        """
        Reject a slot's submission.

        Options:
            resubmit: proof cleared, claim kept, status unsubmit
            reclaim:  proof and claimer cleared, slot reopened (two timeline rows)
            rejected: terminal
        """
        reason = reason.strip() if isinstance(reason, str) else ''
        if not reason:
            raise MissingReason()
        if option not in RejectOption.ALL:
            raise InvalidRejectOption()

        group, slot = self._load(slot_id)
        if caller_id != group.creator_id:
            raise NotCreator()
        allowed = RECLAIMABLE if option == RejectOption.RECLAIM else (SlotStatus.SUBMITTED,)
        if slot.status not in allowed:
            raise WrongState(f"Cannot reject ({option}) a slot in status {slot.status}")

        now = self._now()

        def entry(status, action, with_reason=True):
            return TimelineEntry(
                status=status,
                timestamp=now,
                actor_id=caller_id,
                actor_name=caller_name,
                action=action,
                reason=reason if with_reason else None,
            )

        if option == RejectOption.RESUBMIT:
            updated = self._commit(
                slot, now,
                status=SlotStatus.UNSUBMIT,
                proof=None,
                reject_reason=reason,
                reject_option=option,
            )
            entries = [entry(SlotStatus.UNSUBMIT, TimelineAction.REJECT_RESUBMIT)]
        elif option == RejectOption.RECLAIM:
            updated = self._commit(
                slot, now,
                status=SlotStatus.UNCLAIMED,
                proof=None,
                claimer_id=None,
                claimer_name=None,
                claimed_at=None,
                submitted_at=None,
                reject_reason=reason,
                reject_option=option,
            )
            # Reject, then re-open: two distinct audit rows
            entries = [
                entry(TimelineMarker.RECLAIM, TimelineAction.REJECT_RECLAIM),
                entry(SlotStatus.UNCLAIMED, TimelineAction.REOPEN, with_reason=False),
            ]
        else:
            updated = self._commit(
                slot, now,
                status=SlotStatus.REJECTED,
                reject_reason=reason,
                reject_option=option,
            )
            entries = [entry(SlotStatus.REJECTED, TimelineAction.REJECT_FINAL)]

        self._record(f"reject_{option}", updated, entries, slot.status, caller_id)

    def acknowledge_transfer(self, slot_id: str, caller_id: str, ack: bool = True) -> None:
        """Set or clear the reward-transfer acknowledgement of a completed slot."""
        if not isinstance(ack, bool):
            raise ValidationError("ack must be true or false", field='ack')

        group, slot = self._load(slot_id)
        if caller_id != group.creator_id:
            raise NotCreator()
        if slot.status != SlotStatus.COMPLETED:
            raise WrongState("Transfers can only be acknowledged for completed slots")
        if ack and slot.transferred_at is not None:
            raise WrongState("Transfer already acknowledged")
        if not ack and slot.transferred_at is None:
            raise WrongState("Transfer is not acknowledged")

        now = self._now()
        updated = self._commit(slot, now, transferred_at=now if ack else None)
        log_transition(
            'acknowledge_transfer',
            self._logger,
            slotId=updated.slot_id,
            actorId=caller_id,
            ack=ack,
            version=updated.version,
        )

    # =========================================================================
    # READS
    # =========================================================================

    def get_group(self, group_id: str) -> Dict[str, Any]:
        return self._get_group(group_id).to_view()

    def list_groups(self, open_only: bool = False) -> List[Dict[str, Any]]:
        """All groups, newest first; optionally only those open for registration now."""
        groups = self._store.list_groups()
        if open_only:
            now = self._now()
            groups = [g for g in groups if g.registration_open(now)]
        groups.sort(key=lambda g: g.created_at, reverse=True)
        return [g.to_view() for g in groups]

    def get_slot(self, slot_id: str) -> Dict[str, Any]:
        """Slot view with its group summary and full timeline."""
        group, slot = self._load(slot_id)
        view = slot.to_view()
        view.update({
            'title': group.title,
            'creatorId': group.creator_id,
            'rewardDistributionMode': group.reward_mode,
            'timeline': [e.to_view() for e in self._timeline.read(slot.slot_id)],
        })
        return view

    def list_group_slots(self, group_id: str) -> List[Dict[str, Any]]:
        group = self._get_group(group_id)
        return [slot.to_view() for slot in self._store.list_slots(group.group_id)]

    def get_timeline(self, slot_id: str) -> List[Dict[str, Any]]:
        _, slot = self._load(slot_id)
        return [e.to_view() for e in self._timeline.read(slot.slot_id)]
