"""Translation of domain errors into HTTP error responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from .exceptions import AppError, IntegrityConstraintViolation, NotFoundError
from .scheduling.schedule_errors import (
    CapacityConflictError,
    CapacityInvariantError,
    ChildAlreadyAssignedError,
    ChildNotAssignedError,
    DriverUnavailableError,
    InvalidScheduleConfigError,
    InvalidSeatOverrideError,
    InvariantViolationError,
    TemporalInputError,
    VehicleAlreadyBoundError,
    VehicleNotBoundError,
    VehicleUnavailableError,
)
from .scheduling.schedule_models import FailureReason

_STATUS_BY_ERROR: tuple[tuple[type[AppError], int], ...] = (
    (CapacityConflictError, status.HTTP_409_CONFLICT),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (VehicleNotBoundError, status.HTTP_404_NOT_FOUND),
    (ChildNotAssignedError, status.HTTP_404_NOT_FOUND),
    (VehicleAlreadyBoundError, status.HTTP_409_CONFLICT),
    (ChildAlreadyAssignedError, status.HTTP_409_CONFLICT),
    (DriverUnavailableError, status.HTTP_409_CONFLICT),
    (VehicleUnavailableError, status.HTTP_409_CONFLICT),
    (IntegrityConstraintViolation, status.HTTP_409_CONFLICT),
    (TemporalInputError, status.HTTP_400_BAD_REQUEST),
    (InvalidSeatOverrideError, status.HTTP_400_BAD_REQUEST),
    (InvalidScheduleConfigError, status.HTTP_400_BAD_REQUEST),
    (CapacityInvariantError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (InvariantViolationError, 422),
)


def status_for(exc: AppError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def failure_reason_for(exc: AppError) -> str:
    if isinstance(exc, NotFoundError) and exc.entity == "schedule_slot":
        return FailureReason.SLOT_NOT_FOUND.value
    return str(exc.failure_reason)


def http_error(exc: AppError) -> HTTPException:
    """Build the ``{"status": "error", "failure_reason": ...}`` response for ``exc``."""

    return HTTPException(
        status_code=status_for(exc),
        detail={
            "status": "error",
            "failure_reason": failure_reason_for(exc),
            "details": str(exc),
        },
    )


__all__ = ["failure_reason_for", "http_error", "status_for"]
