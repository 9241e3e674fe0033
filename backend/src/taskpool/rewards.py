"""
Reward distribution across the slots of a task group.

Amounts are Decimals rounded to cents. Rounding remainders are NOT
redistributed: the slot rewards of an equal split may differ from the total by
up to N * 0.01.
"""
from collections import namedtuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional

from .errors import InvalidDistribution
from .models import RewardMode

CENT = Decimal('0.01')
DEFAULT_WEIGHT = Decimal('1.0')

SlotReward = namedtuple('SlotReward', ['participant_index', 'weight', 'amount'])


def _round_cent(value: Decimal) -> Decimal:
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits for the decimal context
        raise InvalidDistribution("reward is too large")


def _to_decimal(value: Any, what: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidDistribution(f"{what} must be a number")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidDistribution(f"{what} must be a number")
    if not number.is_finite():
        raise InvalidDistribution(f"{what} must be a finite number")
    return number


def parse_total(value: Any) -> Decimal:
    """Validate a group's total reward and return it as a Decimal."""
    total = _to_decimal(value, 'reward')
    if total < 0:
        raise InvalidDistribution("reward must not be negative")
    return total


def _parse_weights(weights: Iterable[Any], capacity: int) -> dict:
    """Accept [{'participantIndex': i, 'weight': w}] or [(i, w)] pairs."""
    parsed = {}
    for entry in weights:
        if isinstance(entry, dict):
            index, weight = entry.get('participantIndex'), entry.get('weight')
        else:
            try:
                index, weight = entry
            except (TypeError, ValueError):
                raise InvalidDistribution("Each weight must be a (participantIndex, weight) pair")

        if isinstance(index, bool) or not isinstance(index, int) or not 1 <= index <= capacity:
            raise InvalidDistribution(f"participantIndex must be between 1 and {capacity}")
        if index in parsed:
            raise InvalidDistribution(f"Duplicate weight for participantIndex {index}")

        weight = _to_decimal(weight, 'weight')
        if weight <= 0:
            raise InvalidDistribution(f"Weight for participantIndex {index} must be greater than 0")
        parsed[index] = weight
    return parsed


def allocate_rewards(
    total: Any,
    capacity: int,
    mode: str = RewardMode.EQUAL,
    weights: Optional[Iterable[Any]] = None
) -> List[SlotReward]:
    """
    Compute the reward of every slot of a group.

    Args:
        total: Total reward pool of the group
        capacity: Number of slots (>= 1)
        mode: 'equal' or 'weighted'
        weights: (participantIndex, weight) pairs, required in weighted mode;
            indexes left out get weight 1.0

    Returns:
        One SlotReward per participant index 1..capacity, in order

    Raises:
        InvalidDistribution: on an unknown mode, a negative total, missing
            weights in weighted mode, or any weight <= 0
    """
    total = parse_total(total)
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
        raise InvalidDistribution("capacity must be a positive integer")

    if mode == RewardMode.EQUAL:
        amount = _round_cent(total / capacity)
        return [SlotReward(i, DEFAULT_WEIGHT, amount) for i in range(1, capacity + 1)]

    if mode == RewardMode.WEIGHTED:
        if not weights:
            raise InvalidDistribution("weights are required for weighted distribution")
        if not isinstance(weights, (list, tuple)):
            raise InvalidDistribution("weights must be a list of (participantIndex, weight) pairs")
        parsed = _parse_weights(weights, capacity)
        slot_weights = [parsed.get(i, DEFAULT_WEIGHT) for i in range(1, capacity + 1)]
        weight_sum = sum(slot_weights)
        return [
            SlotReward(i, w, _round_cent(total * w / weight_sum))
            for i, w in enumerate(slot_weights, start=1)
        ]

    raise InvalidDistribution(f"Unknown distribution mode: {mode!r}")
