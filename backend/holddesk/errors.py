from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from holddesk.services.workflow_errors import (
    ConflictError,
    CooldownError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ResourceExhaustedError,
    ValidationFailedError,
    WorkflowError,
)

WORKFLOW_ERROR_STATUS: list[tuple[type[WorkflowError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (CooldownError, status.HTTP_429_TOO_MANY_REQUESTS),
    (ValidationFailedError, 422),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ResourceExhaustedError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
]


def _status_for_workflow_error(exc: WorkflowError) -> int:
    for error_type, status_code in WORKFLOW_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


def raise_http_error_from_exception(exc: Exception, db: Session | None = None) -> None:
    if db is not None and isinstance(exc, (WorkflowError, SQLAlchemyError)):
        db.rollback()

    if isinstance(exc, WorkflowError):
        headers = None
        if isinstance(exc, CooldownError):
            headers = {"Retry-After": str(exc.retry_after)}
        raise HTTPException(
            status_code=_status_for_workflow_error(exc),
            detail={"code": exc.code, "message": str(exc)},
            headers=headers,
        ) from exc
    if isinstance(exc, LookupError):
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if isinstance(exc, IntegrityError):
        raise HTTPException(
            status_code=409,
            detail="database constraint violation",
        ) from exc
    if isinstance(exc, SQLAlchemyError):
        raise HTTPException(
            status_code=500,
            detail="database error",
        ) from exc

    raise exc
