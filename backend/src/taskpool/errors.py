"""
Error taxonomy for the task pool engine.

Every error carries a stable machine-readable ``code`` plus a human-readable
message, and maps to an HTTP status for the Lambda handlers. Only
TransientStorageError and PartialFailure expose diagnostic details.
"""
from typing import Any, Dict, Optional


class TaskPoolError(Exception):
    """Base class for all engine errors."""

    code = 'TaskPoolError'
    http_status = 500
    default_message = 'Task pool error'

    def __init__(self, message: str = None, field: str = None, diagnostic: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.field = field
        self.diagnostic = diagnostic
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {'error': self.code, 'message': self.message}
        if self.field:
            body['field'] = self.field
        return body


# =============================================================================
# CATEGORIES
# =============================================================================

class ValidationError(TaskPoolError):
    """Malformed or missing input."""
    code = 'ValidationError'
    http_status = 400
    default_message = 'Invalid input'


class AuthorizationError(TaskPoolError):
    code = 'AuthorizationError'
    http_status = 403
    default_message = 'Not authorized'


class StateConflictError(TaskPoolError):
    code = 'StateConflict'
    http_status = 409
    default_message = 'Operation conflicts with the current slot state'


class NotFoundError(TaskPoolError):
    code = 'NotFound'
    http_status = 404
    default_message = 'Not found'


class TransientStorageError(TaskPoolError):
    """Retryable by the caller with backoff."""
    code = 'TransientStorageError'
    http_status = 503
    default_message = 'Storage temporarily unavailable'

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body['retryable'] = True
        if self.diagnostic:
            body['diagnostic'] = self.diagnostic
        return body


class PartialFailure(TaskPoolError):
    """
    The slot write committed but a follow-up write (timeline append) failed.
    The committed write is never reversed; the diagnostic lists what is missing.
    """
    code = 'PartialFailure'
    http_status = 500
    default_message = 'Operation recorded but audit trail update failed'

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.diagnostic:
            body['diagnostic'] = self.diagnostic
        return body


# =============================================================================
# VALIDATION
# =============================================================================

class InvalidTimestamp(ValidationError):
    code = 'InvalidTimestamp'
    default_message = 'Timestamp could not be parsed'


class InvalidDistribution(ValidationError):
    code = 'InvalidDistribution'
    default_message = 'Invalid reward distribution'


class ProofValidationFailed(ValidationError):
    code = 'ProofValidationFailed'
    default_message = 'Proof does not meet the task requirements'


class MissingReason(ValidationError):
    code = 'MissingReason'
    default_message = 'A rejection reason is required'


class InvalidRejectOption(ValidationError):
    code = 'InvalidRejectOption'
    default_message = 'Reject option must be one of resubmit, reclaim, rejected'


# =============================================================================
# AUTHORIZATION
# =============================================================================

class Unauthenticated(AuthorizationError):
    code = 'Unauthenticated'
    http_status = 401
    default_message = 'Authentication required'


class NotCreator(AuthorizationError):
    code = 'NotCreator'
    default_message = 'Only the task creator can perform this action'


class NotClaimer(AuthorizationError):
    code = 'NotClaimer'
    default_message = 'Only the claimer of this slot can perform this action'


class NotEligible(AuthorizationError):
    code = 'NotEligible'
    default_message = 'This task is restricted to specific participants'


# =============================================================================
# STATE CONFLICTS
# =============================================================================

class WrongState(StateConflictError):
    code = 'WrongState'
    default_message = 'Slot is not in a state that allows this action'


class AlreadyClaimed(StateConflictError):
    code = 'AlreadyClaimed'
    default_message = 'You already hold a slot in this task'


class NoFreeSlot(StateConflictError):
    code = 'NoFreeSlot'
    default_message = 'No free slot is available for this task'


class NoProofOnFile(StateConflictError):
    code = 'NoProofOnFile'
    default_message = 'Slot has no proof to approve'


class OutsideRegistrationWindow(StateConflictError):
    code = 'OutsideRegistrationWindow'
    default_message = 'Task registration is not open'


class OutsideSubmissionWindow(StateConflictError):
    code = 'OutsideSubmissionWindow'
    default_message = 'Submission deadline has passed'


# =============================================================================
# NOT FOUND / STORAGE
# =============================================================================

class SlotNotFound(NotFoundError):
    code = 'SlotNotFound'
    default_message = 'Slot not found'


class GroupNotFound(NotFoundError):
    code = 'GroupNotFound'
    default_message = 'Task group not found'


class StorageUnavailable(TransientStorageError):
    code = 'StorageUnavailable'
