"""
Timeslot Errors

Error taxonomy for recurring series operations.

Conflicts are not errors: overlapping occurrences are reported as
ConflictInfo data and the caller decides the policy.
"""
from typing import Optional


class TimeslotError(Exception):
    """Base class for all recurring series errors"""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ParseError(TimeslotError):
    """Malformed RRULE, duration, time range or datetime input"""

    kind = "parse_error"


class ValidationError(TimeslotError):
    """User input rejected before any mutation was attempted"""

    kind = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(TimeslotError):
    """Referenced group, version or instance does not exist"""

    kind = "not_found"


class StateInvariantError(TimeslotError):
    """Caller tried to break a series invariant (programmer error)"""

    kind = "state_invariant_error"


class PersistenceError(TimeslotError):
    """Failure reported by the data-access collaborator"""

    kind = "persistence_error"


class ConstraintViolation(PersistenceError):
    """Unique or exclusion constraint rejected a write"""

    kind = "constraint_violation"


class OperationCancelled(TimeslotError):
    """A preview or validation run was cancelled cooperatively"""

    kind = "cancelled"

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)
