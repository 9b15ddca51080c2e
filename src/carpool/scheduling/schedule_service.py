"""Slot aggregate manager: the only writer of slots and their assignments."""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable
from datetime import datetime, timezone

import structlog

from ..schedule_config.schedule_config_repository import ScheduleConfigRepository
from .capacity import available_seats, effective_capacity, has_override, total_capacity
from .schedule_errors import (
    CapacityConflictError,
    CapacityInvariantError,
    ChildAlreadyAssignedError,
    DriverUnavailableError,
    InvalidSeatOverrideError,
    PastTripError,
    TimeNotConfiguredError,
    VehicleUnavailableError,
)
from .schedule_models import (
    ChildAssignment,
    ScheduleSlot,
    SlotDetail,
    UnbindResult,
    VehicleAssignment,
    VehicleCapacity,
    WeeklySchedule,
)
from .schedule_repository import ScheduleRepository
from .temporal import (
    ensure_utc,
    format_local,
    get_zone,
    parse_week_label,
    resolve_slot_datetime,
    week_bounds,
    week_label_of,
    weekly_pattern_entry,
)

logger = structlog.get_logger(__name__)

DEFAULT_MAX_SEAT_OVERRIDE = 10


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleService:
    """Coordinate slot creation, vehicle binding and seat assignment."""

    def __init__(
        self,
        repo: ScheduleRepository,
        *,
        config_repo: ScheduleConfigRepository | None = None,
        clock: Callable[[], datetime] | None = None,
        max_seat_override: int = DEFAULT_MAX_SEAT_OVERRIDE,
        enforce_past_trip_guard: bool = True,
        require_schedule_config: bool = False,
    ) -> None:
        if max_seat_override < 0:
            raise ValueError("max_seat_override cannot be negative")
        self._repo = repo
        self._config_repo = config_repo
        self._clock = clock or _default_clock
        self._max_seat_override = max_seat_override
        self._enforce_past_trip_guard = enforce_past_trip_guard
        self._require_schedule_config = require_schedule_config

    # vehicle binding ----------------------------------------------------

    def create_slot_with_vehicle(
        self,
        group_id: str,
        weekday: str,
        week_label: str,
        local_time: str,
        tz_name: str,
        vehicle_id: str,
        *,
        driver_id: str | None = None,
        seat_override: int | None = None,
    ) -> VehicleAssignment:
        """Resolve a local weekly slot to UTC and bind the vehicle to it."""
        instant = resolve_slot_datetime(weekday, week_label, local_time, tz_name)
        return self.bind_vehicle(
            group_id, instant, vehicle_id, driver_id=driver_id, seat_override=seat_override
        )

    def bind_vehicle(
        self,
        group_id: str,
        instant: datetime,
        vehicle_id: str,
        *,
        driver_id: str | None = None,
        seat_override: int | None = None,
    ) -> VehicleAssignment:
        instant = ensure_utc(instant)
        self._validate_seat_override(seat_override)
        group = self._repo.get_group(group_id)
        self._ensure_not_past(instant, group.timezone)
        self._repo.get_vehicle(vehicle_id)
        existing = self._repo.find_slot(group_id, instant)
        self._ensure_vehicle_available(
            vehicle_id, instant, exclude_slot_id=existing.id if existing else None
        )
        if driver_id is not None:
            self._repo.get_driver(driver_id)
            self._ensure_driver_available(driver_id, instant)
        self._ensure_time_configured(group_id, instant)

        assignment = self._repo.bind_vehicle(
            group_id, instant, vehicle_id, driver_id=driver_id, seat_override=seat_override
        )
        logger.info(
            "schedule.vehicle.bound",
            group_id=group_id,
            slot_id=assignment.slot_id,
            vehicle_assignment_id=assignment.id,
            vehicle_id=vehicle_id,
            driver_id=driver_id,
            datetime=instant.isoformat(),
        )
        return assignment

    def bind_vehicle_to_slot(
        self,
        slot_id: str,
        vehicle_id: str,
        *,
        driver_id: str | None = None,
        seat_override: int | None = None,
    ) -> VehicleAssignment:
        self._validate_seat_override(seat_override)
        slot = self._repo.get_slot(slot_id)
        self._ensure_slot_open(slot)
        self._repo.get_vehicle(vehicle_id)
        self._ensure_vehicle_available(vehicle_id, slot.datetime, exclude_slot_id=slot_id)
        if driver_id is not None:
            self._repo.get_driver(driver_id)
            self._ensure_driver_available(driver_id, slot.datetime)
        assignment = self._repo.add_vehicle(
            slot_id, vehicle_id, driver_id=driver_id, seat_override=seat_override
        )
        logger.info(
            "schedule.vehicle.bound",
            group_id=slot.group_id,
            slot_id=slot_id,
            vehicle_assignment_id=assignment.id,
            vehicle_id=vehicle_id,
            driver_id=driver_id,
            datetime=slot.datetime.isoformat(),
        )
        return assignment

    def unbind_vehicle(self, slot_id: str, vehicle_id: str) -> UnbindResult:
        """Remove a vehicle with its children; the last vehicle takes the slot with it."""
        slot = self._repo.get_slot(slot_id)
        self._ensure_slot_open(slot)
        result = self._repo.unbind_vehicle(slot_id, vehicle_id)
        logger.info(
            "schedule.vehicle.unbound",
            slot_id=slot_id,
            vehicle_id=vehicle_id,
            vehicle_assignment_id=result.vehicle_assignment_id,
        )
        if result.slot_deleted:
            logger.info("schedule.slot.deleted", slot_id=slot_id, group_id=slot.group_id)
        return result

    def set_driver(self, assignment_id: str, driver_id: str | None) -> VehicleAssignment:
        assignment = self._repo.get_vehicle_assignment(assignment_id)
        slot = self._repo.get_slot(assignment.slot_id)
        self._ensure_slot_open(slot)
        if driver_id is not None:
            self._repo.get_driver(driver_id)
            self._ensure_driver_available(driver_id, slot.datetime, exclude_assignment_id=assignment_id)
        updated = self._repo.set_driver(assignment_id, driver_id)
        logger.info(
            "schedule.driver.set",
            slot_id=slot.id,
            vehicle_assignment_id=assignment_id,
            driver_id=driver_id,
        )
        return updated

    def set_seat_override(self, assignment_id: str, seats: int | None) -> VehicleAssignment:
        """Override the seat count for this trip; ``None`` restores the vehicle default."""
        self._validate_seat_override(seats)
        assignment = self._repo.get_vehicle_assignment(assignment_id)
        slot = self._repo.get_slot(assignment.slot_id)
        self._ensure_slot_open(slot)
        updated = self._repo.set_seat_override(assignment_id, seats)
        logger.info(
            "schedule.seat_override.set",
            slot_id=slot.id,
            vehicle_assignment_id=assignment_id,
            seat_override=seats,
            effective_capacity=effective_capacity(updated),
        )
        return updated

    # child assignment ---------------------------------------------------

    def assign_child(
        self, slot_id: str, child_id: str, vehicle_assignment_id: str
    ) -> ChildAssignment:
        slot = self._repo.get_slot(slot_id)
        self._ensure_slot_open(slot)
        self._repo.get_child(child_id)
        if any(assignment.child.id == child_id for assignment in slot.child_assignments):
            raise ChildAlreadyAssignedError(
                f"child '{child_id}' is already assigned in slot '{slot_id}'"
            )
        try:
            assignment = self._repo.assign_child(slot_id, child_id, vehicle_assignment_id)
        except CapacityConflictError as exc:
            logger.warning(
                "schedule.child.conflict",
                slot_id=slot_id,
                child_id=child_id,
                vehicle_assignment_id=vehicle_assignment_id,
                occupancy=exc.occupancy,
                capacity=exc.capacity,
            )
            raise
        logger.info(
            "schedule.child.assigned",
            slot_id=slot_id,
            child_id=child_id,
            vehicle_assignment_id=vehicle_assignment_id,
        )
        return assignment

    def remove_child(self, slot_id: str, child_id: str) -> ChildAssignment:
        slot = self._repo.get_slot(slot_id)
        self._ensure_slot_open(slot)
        removed = self._repo.remove_child(slot_id, child_id)
        logger.info(
            "schedule.child.removed",
            slot_id=slot_id,
            child_id=child_id,
            vehicle_assignment_id=removed.vehicle_assignment_id,
        )
        return removed

    # reads --------------------------------------------------------------

    def get_slot(self, slot_id: str) -> SlotDetail:
        return build_slot_detail(self._repo.get_slot(slot_id))

    def get_schedule(
        self, group_id: str, week_label: str | None = None, tz_name: str | None = None
    ) -> WeeklySchedule:
        """Slots of a group inside one local ISO week, ordered by datetime.

        Defaults to the group timezone and the week containing "now" there.
        """
        if week_label is not None:
            parse_week_label(week_label)
        if tz_name is not None:
            get_zone(tz_name)
        group = self._repo.get_group(group_id)
        zone_name = tz_name or group.timezone
        label = week_label or week_label_of(self._clock(), zone_name)
        start, end = week_bounds(label, zone_name)
        details = [
            build_slot_detail(slot, strict=False)
            for slot in self._repo.list_slots(group_id, start, end)
        ]
        for detail in details:
            if detail.anomalous:
                logger.warning(
                    "schedule.slot.anomalous", group_id=group_id, slot_id=detail.slot.id
                )
        return WeeklySchedule(
            group_id=group_id,
            week=label,
            timezone=zone_name,
            start=start,
            end=end,
            slots=details,
        )

    def list_conflicts(self, slot_id: str) -> list[str]:
        """Audit a slot for inconsistencies; never raises for what it finds."""
        slot = self._repo.get_slot(slot_id)
        conflicts: list[str] = []
        if not slot.vehicle_assignments:
            conflicts.append("slot has no vehicles")

        assignment_ids = {assignment.id for assignment in slot.vehicle_assignments}
        for assignment in slot.vehicle_assignments:
            name = assignment.vehicle.name
            occupied = len(slot.children_of(assignment.id))
            capacity = effective_capacity(assignment)
            if occupied > capacity:
                conflicts.append(
                    f"vehicle '{name}' is over capacity ({occupied} children, {capacity} seats)"
                )
            if assignment.occupancy != occupied:
                conflicts.append(
                    f"vehicle '{name}' occupancy counter is {assignment.occupancy} "
                    f"but {occupied} children are assigned"
                )

        child_counts = Counter(assignment.child.id for assignment in slot.child_assignments)
        child_names = {assignment.child.id: assignment.child.name for assignment in slot.child_assignments}
        for child_id, count in child_counts.items():
            if count > 1:
                conflicts.append(f"child '{child_names[child_id]}' is assigned {count} times")
        for assignment in slot.child_assignments:
            if assignment.vehicle_assignment_id not in assignment_ids:
                conflicts.append(
                    f"child '{assignment.child.name}' is seated in a vehicle of another slot"
                )

        driver_counts = Counter(
            assignment.driver.id for assignment in slot.vehicle_assignments if assignment.driver
        )
        for assignment in slot.vehicle_assignments:
            driver = assignment.driver
            if driver is not None and driver_counts[driver.id] > 1:
                conflicts.append(f"driver '{driver.name}' drives several vehicles in this slot")
                driver_counts[driver.id] = 0

        others = self._repo.list_assignments_at(slot.datetime, exclude_slot_id=slot.id)
        for assignment in slot.vehicle_assignments:
            for other in others:
                if other.vehicle.id == assignment.vehicle.id:
                    conflicts.append(
                        f"vehicle '{assignment.vehicle.name}' is also booked in slot '{other.slot_id}'"
                    )
                if (
                    assignment.driver is not None
                    and other.driver is not None
                    and other.driver.id == assignment.driver.id
                ):
                    conflicts.append(
                        f"driver '{assignment.driver.name}' is also driving in slot '{other.slot_id}'"
                    )
        return conflicts

    # guards -------------------------------------------------------------

    def _validate_seat_override(self, seats: int | None) -> None:
        if seats is None:
            return
        if isinstance(seats, bool) or not isinstance(seats, int):
            raise InvalidSeatOverrideError("seat override must be an integer")
        if not 0 <= seats <= self._max_seat_override:
            raise InvalidSeatOverrideError(
                f"seat override must be between 0 and {self._max_seat_override}"
            )

    def _ensure_slot_open(self, slot: ScheduleSlot) -> None:
        self._ensure_not_past(slot.datetime)

    def _ensure_not_past(self, instant: datetime, tz_name: str = "UTC") -> None:
        if not self._enforce_past_trip_guard:
            return
        if ensure_utc(instant) < ensure_utc(self._clock()):
            raise PastTripError(f"trip at {format_local(instant, tz_name)} ({tz_name}) already started")

    def _ensure_driver_available(
        self,
        driver_id: str,
        instant: datetime,
        *,
        exclude_assignment_id: str | None = None,
    ) -> None:
        for assignment in self._repo.list_assignments_at(instant):
            if assignment.id == exclude_assignment_id:
                continue
            if assignment.driver is not None and assignment.driver.id == driver_id:
                raise DriverUnavailableError(
                    f"driver '{assignment.driver.name}' already drives "
                    f"'{assignment.vehicle.name}' at {ensure_utc(instant).isoformat()}"
                )

    def _ensure_vehicle_available(
        self,
        vehicle_id: str,
        instant: datetime,
        *,
        exclude_slot_id: str | None = None,
    ) -> None:
        """A vehicle serves one slot per instant across every group."""
        for assignment in self._repo.list_assignments_at(instant, exclude_slot_id=exclude_slot_id):
            if assignment.vehicle.id == vehicle_id:
                raise VehicleUnavailableError(
                    f"vehicle '{assignment.vehicle.name}' is already booked in slot "
                    f"'{assignment.slot_id}' at {ensure_utc(instant).isoformat()}"
                )

    def _ensure_time_configured(self, group_id: str, instant: datetime) -> None:
        if self._config_repo is None:
            return
        config = self._config_repo.get(group_id)
        if config is None:
            if self._require_schedule_config:
                raise TimeNotConfiguredError(f"group '{group_id}' has no schedule configuration")
            return
        if not config.allows(instant):
            weekday, clock = weekly_pattern_entry(instant)
            raise TimeNotConfiguredError(
                f"{weekday.value} {clock} UTC is not part of the group schedule"
            )


def build_slot_detail(slot: ScheduleSlot, *, strict: bool = True) -> SlotDetail:
    """Attach per-vehicle and slot-level seat figures to a slot snapshot.

    An over-capacity vehicle raises ``CapacityInvariantError``. With
    ``strict=False`` the vehicle reports no free seats instead and the
    detail is flagged ``anomalous``.
    """

    vehicles: list[VehicleCapacity] = []
    anomalous = False
    for assignment in slot.vehicle_assignments:
        occupied = len(slot.children_of(assignment.id))
        try:
            remaining = available_seats(assignment, occupied)
        except CapacityInvariantError:
            if strict:
                raise
            anomalous = True
            remaining = 0
        vehicles.append(
            VehicleCapacity(
                assignment=assignment,
                effective_capacity=effective_capacity(assignment),
                has_override=has_override(assignment),
                occupied=occupied,
                available_seats=remaining,
            )
        )
    return SlotDetail(
        slot=slot,
        vehicles=vehicles,
        total_capacity=total_capacity(slot.vehicle_assignments),
        available_seats=sum(vehicle.available_seats for vehicle in vehicles),
        anomalous=anomalous,
    )
