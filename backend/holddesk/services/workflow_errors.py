from __future__ import annotations


class WorkflowError(Exception):
    """Base error for rejected hold, deal and catalog operations."""

    code = "workflow_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code.replace("_", " "))


class NotFoundError(WorkflowError, LookupError):
    """Referenced hold, deal, product or user does not exist."""

    code = "not_found"


class ForbiddenError(WorkflowError):
    """Actor lacks the capability or standing for the operation."""

    code = "forbidden"


class NotOwnerError(ForbiddenError):
    """Actor does not own the hold or deal."""

    code = "not_owner"


class InvalidStateError(WorkflowError):
    """Operation is not valid from the record's current status."""

    code = "invalid_state"


class InactiveProductError(InvalidStateError):
    code = "inactive"


class AlreadyHeldError(InvalidStateError):
    code = "already_held"


class AlreadyExtendedError(InvalidStateError):
    code = "already_extended"


class TooEarlyError(InvalidStateError):
    code = "too_early"


class HoldExpiredError(InvalidStateError):
    code = "expired"


class InvalidHoldError(InvalidStateError):
    """Hold is missing, foreign, expired or no longer active."""

    code = "invalid_hold"


class InvalidTransitionError(InvalidStateError):
    code = "invalid_transition"


class ResourceExhaustedError(WorkflowError):
    """Product inventory or its daily allowance is used up."""

    code = "resource_exhausted"


class SoldOutError(ResourceExhaustedError):
    code = "sold_out"


class DailyLimitReachedError(ResourceExhaustedError):
    code = "daily_limit_reached"


class CooldownError(WorkflowError):
    """Agent let a hold on this product expire too recently."""

    code = "cooldown"

    def __init__(self, message: str | None = None, *, retry_after: int = 0) -> None:
        super().__init__(message)
        self.retry_after = max(0, int(retry_after))


class ValidationFailedError(WorkflowError, ValueError):
    """Required evidence or field is missing or malformed."""

    code = "validation_error"


class ConflictError(WorkflowError):
    """Lost a race on a conditional update; safe to re-fetch and retry."""

    code = "conflict"
