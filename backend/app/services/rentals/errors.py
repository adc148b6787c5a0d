"""Exceptions raised by the rental billing engine.

Every error is raised before any row is written; callers can surface the
message verbatim.
"""


class RentalEngineError(Exception):
    """Base exception for rental engine errors."""


class ValidationError(RentalEngineError):
    """Malformed or missing input."""


class NotFoundError(RentalEngineError):
    """Entity does not exist or belongs to another tenant."""


class InvariantViolation(RentalEngineError):
    """Operation would break a ledger invariant."""


class NotEligibleError(RentalEngineError):
    """Operation is not allowed yet (or any more) for this entity."""


class NotOverdueError(NotEligibleError):
    """Penalty requested before the grace period has elapsed."""


class InsufficientBalanceError(InvariantViolation):
    """Deposit balance cannot cover the requested movement."""


class InvalidStatusTransition(InvariantViolation):
    """Lease status change not allowed by the lifecycle table."""
