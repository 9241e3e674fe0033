"""
Slot allocation: picks the free slot a claiming user gets.

The lowest eligible participant index always wins, so assignment order is
reproducible. The pick is committed with a conditional write on the slot
version; if another claim got there first the slots are re-read and the next
candidate is tried, up to a bounded number of attempts.
"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

from .config import config
from .errors import AlreadyClaimed, NoFreeSlot, NotEligible
from .logging import logger as default_logger
from .models import SlotStatus, TaskGroup, TaskSlot
from .store import SlotStore


def check_eligibility(group: TaskGroup, caller_id: str) -> None:
    """Restricted groups accept only listed assignees and the creator."""
    if not group.is_restricted or caller_id == group.creator_id:
        return
    if caller_id not in group.assignee_ids:
        raise NotEligible()


def reserved_for(group: TaskGroup, participant_index: int) -> Optional[str]:
    """In a restricted group slot i is reserved for the i-th listed assignee."""
    if participant_index <= len(group.assignee_ids):
        return group.assignee_ids[participant_index - 1]
    return None


def eligible_free_slots(group: TaskGroup, slots: List[TaskSlot], caller_id: str) -> List[TaskSlot]:
    """Free slots the caller may take, lowest participant index first."""
    free = sorted((s for s in slots if s.is_free), key=lambda s: s.participant_index)
    if not group.is_restricted or caller_id == group.creator_id:
        return free
    return [
        s for s in free
        if reserved_for(group, s.participant_index) in (None, caller_id)
    ]


class SlotAllocator:

    def __init__(self, store: SlotStore, max_retries: int = None, logger: logging.Logger = None):
        self._store = store
        self._max_retries = max_retries or config.CLAIM_MAX_RETRIES
        self._logger = logger or default_logger

    def allocate(
        self,
        group: TaskGroup,
        caller_id: str,
        now: datetime,
        caller_name: Optional[str] = None
    ) -> TaskSlot:
        """
        Claim the lowest free eligible slot of the group for the caller.

        Returns:
            The slot as written (status claimed)

        Raises:
            NotEligible: caller is not allowed into a restricted group
            AlreadyClaimed: caller already holds a slot in this group
            NoFreeSlot: nothing left to claim, or every attempt lost a race
        """
        check_eligibility(group, caller_id)

        for attempt in range(1, self._max_retries + 1):
            slots = self._store.list_slots(group.group_id)

            if any(s.claimer_id == caller_id for s in slots):
                raise AlreadyClaimed()

            candidates = eligible_free_slots(group, slots, caller_id)
            if not candidates:
                raise NoFreeSlot()

            slot = candidates[0]
            claimed = replace(
                slot,
                claimer_id=caller_id,
                claimer_name=caller_name,
                status=SlotStatus.CLAIMED,
                claimed_at=now,
                updated_at=now,
                version=slot.version + 1
            )
            if self._store.update_slot(claimed, expected_version=slot.version):
                return claimed

            self._logger.warning(
                f"Claim conflict on {slot.slot_id} for {caller_id} "
                f"(attempt {attempt}/{self._max_retries})"
            )

        raise NoFreeSlot("No free slot could be secured, please retry")
