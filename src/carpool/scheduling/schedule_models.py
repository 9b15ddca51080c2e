"""Data structures for the trip scheduling engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class FailureReason(StrEnum):
    """Failure reasons enumerated in schedule error contracts."""

    INVALID_REQUEST = "invalid_request"
    NOT_FOUND = "not_found"
    SLOT_NOT_FOUND = "slot_not_found"
    VEHICLE_ALREADY_BOUND = "vehicle_already_bound"
    VEHICLE_NOT_BOUND = "vehicle_not_bound"
    CHILD_ALREADY_ASSIGNED = "child_already_assigned"
    CHILD_NOT_ASSIGNED = "child_not_assigned"
    OVERRIDE_BELOW_OCCUPANCY = "override_below_occupancy"
    INVALID_SEAT_OVERRIDE = "invalid_seat_override"
    DRIVER_UNAVAILABLE = "driver_unavailable"
    VEHICLE_UNAVAILABLE = "vehicle_unavailable"
    PAST_TRIP = "past_trip"
    TIME_NOT_CONFIGURED = "time_not_configured"
    CAPACITY_CONFLICT = "capacity_conflict"
    CAPACITY_INVARIANT = "capacity_invariant"
    INVALID_WEEKDAY = "invalid_weekday"
    INVALID_WEEK_LABEL = "invalid_week_label"
    INVALID_CLOCK_TIME = "invalid_clock_time"
    INVALID_TIMEZONE = "invalid_timezone"
    INVALID_SCHEDULE_CONFIG = "invalid_schedule_config"
    INTERNAL_ERROR = "internal_error"


@dataclass(slots=True)
class VehicleRef:
    id: str
    name: str
    capacity: int


@dataclass(slots=True)
class DriverRef:
    id: str
    name: str


@dataclass(slots=True)
class ChildRef:
    id: str
    name: str


@dataclass(slots=True)
class GroupRef:
    id: str
    name: str
    timezone: str = "UTC"


@dataclass(slots=True)
class VehicleAssignment:
    """A vehicle (and optional driver) bound to a schedule slot."""

    id: str
    slot_id: str
    vehicle: VehicleRef
    driver: DriverRef | None = None
    seat_override: int | None = None
    occupancy: int = 0
    version: int = 1
    updated_at: datetime | None = None


@dataclass(slots=True)
class ChildAssignment:
    id: str
    slot_id: str
    vehicle_assignment_id: str
    child: ChildRef


@dataclass(slots=True)
class ScheduleSlot:
    """One concrete, UTC-anchored trip instance for a group."""

    id: str
    group_id: str
    datetime: datetime
    vehicle_assignments: list[VehicleAssignment] = field(default_factory=list)
    child_assignments: list[ChildAssignment] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def children_of(self, vehicle_assignment_id: str) -> list[ChildAssignment]:
        return [
            assignment
            for assignment in self.child_assignments
            if assignment.vehicle_assignment_id == vehicle_assignment_id
        ]


@dataclass(slots=True)
class VehicleCapacity:
    """Computed seat figures for one vehicle assignment."""

    assignment: VehicleAssignment
    effective_capacity: int
    has_override: bool
    occupied: int
    available_seats: int


@dataclass(slots=True)
class SlotDetail:
    """Slot snapshot enriched with capacity figures for display."""

    slot: ScheduleSlot
    vehicles: list[VehicleCapacity]
    total_capacity: int
    available_seats: int
    anomalous: bool = False


@dataclass(slots=True)
class UnbindResult:
    vehicle_assignment_id: str
    slot_id: str
    slot_deleted: bool


@dataclass(slots=True)
class WeeklySchedule:
    group_id: str
    week: str
    timezone: str
    start: datetime
    end: datetime
    slots: list[SlotDetail] = field(default_factory=list)
