"""Domain-specific exceptions for the scheduling engine."""

from ..exceptions import AppError
from .schedule_models import FailureReason


class ScheduleError(AppError):
    """Base class for scheduling errors."""

    failure_reason: str = FailureReason.INVALID_REQUEST


class InvariantViolationError(ScheduleError):
    """Raised when a write would break a slot invariant; caller must fix input."""


class VehicleAlreadyBoundError(InvariantViolationError):
    """Raised when the vehicle already has an assignment on the slot."""

    failure_reason = FailureReason.VEHICLE_ALREADY_BOUND


class VehicleNotBoundError(InvariantViolationError):
    """Raised when unbinding a vehicle that is not assigned to the slot."""

    failure_reason = FailureReason.VEHICLE_NOT_BOUND


class ChildAlreadyAssignedError(InvariantViolationError):
    """Raised when the child already occupies a seat in the slot."""

    failure_reason = FailureReason.CHILD_ALREADY_ASSIGNED


class ChildNotAssignedError(InvariantViolationError):
    """Raised when removing a child that has no seat in the slot."""

    failure_reason = FailureReason.CHILD_NOT_ASSIGNED


class OverrideBelowOccupancyError(InvariantViolationError):
    """Raised when a seat override would drop capacity below current occupancy."""

    failure_reason = FailureReason.OVERRIDE_BELOW_OCCUPANCY

    def __init__(self, message: str, *, occupancy: int, requested: int) -> None:
        super().__init__(message)
        self.occupancy = occupancy
        self.requested = requested


class InvalidSeatOverrideError(InvariantViolationError):
    """Raised when a seat override is outside the allowed range."""

    failure_reason = FailureReason.INVALID_SEAT_OVERRIDE


class DriverUnavailableError(InvariantViolationError):
    """Raised when the driver already drives another vehicle at that instant."""

    failure_reason = FailureReason.DRIVER_UNAVAILABLE


class VehicleUnavailableError(InvariantViolationError):
    """Raised when the vehicle already serves another slot at that instant."""

    failure_reason = FailureReason.VEHICLE_UNAVAILABLE


class PastTripError(InvariantViolationError):
    """Raised when modifying a trip whose datetime already passed."""

    failure_reason = FailureReason.PAST_TRIP


class TimeNotConfiguredError(InvariantViolationError):
    """Raised when a slot time is missing from the group schedule grid."""

    failure_reason = FailureReason.TIME_NOT_CONFIGURED


class CapacityInvariantError(InvariantViolationError):
    """Raised when a committed state reports negative available seats."""

    failure_reason = FailureReason.CAPACITY_INVARIANT


class CapacityConflictError(ScheduleError):
    """Raised when capacity was consumed between observation and commit.

    This is the only scheduling error for which refetching state and retrying
    is the correct reaction. It deliberately does not inherit from
    :class:`InvariantViolationError`.
    """

    failure_reason = FailureReason.CAPACITY_CONFLICT

    def __init__(
        self,
        message: str,
        *,
        vehicle_assignment_id: str,
        occupancy: int | None = None,
        capacity: int | None = None,
    ) -> None:
        super().__init__(message)
        self.vehicle_assignment_id = vehicle_assignment_id
        self.occupancy = occupancy
        self.capacity = capacity


class TemporalInputError(ScheduleError):
    """Raised for malformed temporal input before any store access."""


class InvalidWeekdayError(TemporalInputError):
    failure_reason = FailureReason.INVALID_WEEKDAY


class InvalidWeekLabelError(TemporalInputError):
    failure_reason = FailureReason.INVALID_WEEK_LABEL


class InvalidClockTimeError(TemporalInputError):
    failure_reason = FailureReason.INVALID_CLOCK_TIME


class InvalidTimezoneError(TemporalInputError):
    failure_reason = FailureReason.INVALID_TIMEZONE


class InvalidScheduleConfigError(ScheduleError):
    """Raised when a group schedule grid fails validation."""

    failure_reason = FailureReason.INVALID_SCHEDULE_CONFIG
