from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import delete

from src.carpool.db.db_models import SlotChildModel, SlotVehicleModel
from src.carpool.exceptions import NotFoundError
from src.carpool.scheduling.schedule_errors import (
    CapacityInvariantError,
    ChildAlreadyAssignedError,
    DriverUnavailableError,
    InvalidSeatOverrideError,
    InvalidWeekdayError,
    InvalidWeekLabelError,
    PastTripError,
    TimeNotConfiguredError,
    VehicleAlreadyBoundError,
    VehicleUnavailableError,
)
from src.carpool.scheduling.schedule_service import ScheduleService
from tests.helpers.scheduling import MONDAY_0800_PARIS

pytestmark = pytest.mark.unit


def _create_monday_slot(service, refs, vehicle_id=None, **kwargs):
    return service.create_slot_with_vehicle(
        refs.group,
        "MONDAY",
        "2025-26",
        "08:00",
        "Europe/Paris",
        vehicle_id or refs.minivan,
        **kwargs,
    )


def test_create_slot_resolves_local_time_to_utc(service, refs) -> None:
    assignment = _create_monday_slot(service, refs, driver_id=refs.driver)

    detail = service.get_slot(assignment.slot_id)

    assert detail.slot.datetime == MONDAY_0800_PARIS
    assert detail.slot.group_id == refs.group
    assert detail.total_capacity == 4
    assert detail.available_seats == 4
    assert detail.vehicles[0].assignment.driver.name == "Alex"


def test_temporal_errors_precede_store_lookups(service, refs) -> None:
    with pytest.raises(InvalidWeekdayError):
        service.create_slot_with_vehicle(
            "unknown-group", "MONDAYS", "2025-26", "08:00", "Europe/Paris", "unknown-vehicle"
        )
    with pytest.raises(InvalidWeekLabelError):
        service.create_slot_with_vehicle(
            "unknown-group", "MONDAY", "2025-99", "08:00", "Europe/Paris", "unknown-vehicle"
        )


def test_unknown_references_raise_not_found(service, refs) -> None:
    with pytest.raises(NotFoundError):
        service.bind_vehicle("unknown-group", MONDAY_0800_PARIS, refs.minivan)
    with pytest.raises(NotFoundError):
        service.bind_vehicle(refs.group, MONDAY_0800_PARIS, "unknown-vehicle")

    assignment = _create_monday_slot(service, refs)
    with pytest.raises(NotFoundError):
        service.assign_child(assignment.slot_id, "unknown-child", assignment.id)
    with pytest.raises(NotFoundError):
        service.set_driver(assignment.id, "unknown-driver")


def test_slot_detail_reports_override_and_seats(service, refs) -> None:
    minivan = _create_monday_slot(service, refs)
    hatchback = service.bind_vehicle_to_slot(minivan.slot_id, refs.hatchback, seat_override=3)
    service.assign_child(minivan.slot_id, refs.children[0], minivan.id)
    service.assign_child(minivan.slot_id, refs.children[1], hatchback.id)
    service.assign_child(minivan.slot_id, refs.children[2], hatchback.id)

    detail = service.get_slot(minivan.slot_id)
    by_vehicle = {entry.assignment.vehicle.id: entry for entry in detail.vehicles}

    assert by_vehicle[refs.minivan].has_override is False
    assert by_vehicle[refs.minivan].available_seats == 3
    assert by_vehicle[refs.hatchback].has_override is True
    assert by_vehicle[refs.hatchback].effective_capacity == 3
    assert by_vehicle[refs.hatchback].occupied == 2
    assert detail.total_capacity == 7
    assert detail.available_seats == 4


def test_seat_override_bounds(service, refs) -> None:
    assignment = _create_monday_slot(service, refs)

    with pytest.raises(InvalidSeatOverrideError):
        service.set_seat_override(assignment.id, 11)
    with pytest.raises(InvalidSeatOverrideError):
        service.set_seat_override(assignment.id, -1)
    with pytest.raises(InvalidSeatOverrideError):
        service.bind_vehicle(refs.group, MONDAY_0800_PARIS, refs.hatchback, seat_override=42)

    assert service.set_seat_override(assignment.id, 10).seat_override == 10
    assert service.set_seat_override(assignment.id, None).seat_override is None


def test_max_seat_override_is_configurable(schedule_repo, clock, refs) -> None:
    strict = ScheduleService(schedule_repo, clock=clock, max_seat_override=3)

    with pytest.raises(InvalidSeatOverrideError):
        strict.bind_vehicle(refs.group, MONDAY_0800_PARIS, refs.minivan, seat_override=4)


def test_past_trip_guard_rejects_writes(service, clock, refs) -> None:
    assignment = _create_monday_slot(service, refs)
    service.assign_child(assignment.slot_id, refs.children[0], assignment.id)

    clock.now = MONDAY_0800_PARIS + timedelta(minutes=1)

    with pytest.raises(PastTripError):
        service.assign_child(assignment.slot_id, refs.children[1], assignment.id)
    with pytest.raises(PastTripError):
        service.remove_child(assignment.slot_id, refs.children[0])
    with pytest.raises(PastTripError):
        service.set_seat_override(assignment.id, 2)
    with pytest.raises(PastTripError):
        service.unbind_vehicle(assignment.slot_id, refs.minivan)
    with pytest.raises(PastTripError):
        service.bind_vehicle(refs.group, MONDAY_0800_PARIS, refs.hatchback)

    # reads stay available
    assert service.get_slot(assignment.slot_id).available_seats == 3


def test_past_trip_guard_can_be_disabled(schedule_repo, clock, refs) -> None:
    clock.now = datetime(2030, 1, 1, tzinfo=timezone.utc)
    lenient = ScheduleService(schedule_repo, clock=clock, enforce_past_trip_guard=False)

    assignment = lenient.bind_vehicle(refs.group, MONDAY_0800_PARIS, refs.minivan)
    lenient.assign_child(assignment.slot_id, refs.children[0], assignment.id)

    assert lenient.get_slot(assignment.slot_id).available_seats == 3


def test_driver_cannot_drive_two_vehicles_at_once(service, refs) -> None:
    _create_monday_slot(service, refs, driver_id=refs.driver)

    with pytest.raises(DriverUnavailableError):
        service.bind_vehicle(refs.other_group, MONDAY_0800_PARIS, refs.hatchback, driver_id=refs.driver)

    other = service.bind_vehicle(refs.other_group, MONDAY_0800_PARIS, refs.hatchback)
    with pytest.raises(DriverUnavailableError):
        service.set_driver(other.id, refs.driver)

    later = service.bind_vehicle(
        refs.group, MONDAY_0800_PARIS + timedelta(hours=9), refs.hatchback, driver_id=refs.driver
    )
    assert later.driver.id == refs.driver


def test_vehicle_cannot_serve_two_groups_at_once(service, refs) -> None:
    own = _create_monday_slot(service, refs)

    with pytest.raises(VehicleUnavailableError) as excinfo:
        service.bind_vehicle(refs.other_group, MONDAY_0800_PARIS, refs.minivan)
    assert own.slot_id in str(excinfo.value)

    other = service.bind_vehicle(refs.other_group, MONDAY_0800_PARIS, refs.hatchback)
    with pytest.raises(VehicleUnavailableError):
        service.bind_vehicle_to_slot(other.slot_id, refs.minivan)

    later = service.bind_vehicle(refs.other_group, MONDAY_0800_PARIS + timedelta(hours=1), refs.minivan)
    assert later.vehicle.id == refs.minivan


def test_rebinding_vehicle_to_its_own_slot_is_already_bound(service, refs) -> None:
    assignment = _create_monday_slot(service, refs)

    with pytest.raises(VehicleAlreadyBoundError):
        service.bind_vehicle(refs.group, MONDAY_0800_PARIS, refs.minivan)
    with pytest.raises(VehicleAlreadyBoundError):
        service.bind_vehicle_to_slot(assignment.slot_id, refs.minivan)


def test_reassigning_same_driver_to_own_assignment_is_allowed(service, refs) -> None:
    assignment = _create_monday_slot(service, refs, driver_id=refs.driver)

    updated = service.set_driver(assignment.id, refs.driver)

    assert updated.driver.id == refs.driver
    assert updated.version == assignment.version + 1


def test_slot_time_must_be_part_of_group_schedule(service, config_repo, refs) -> None:
    config_repo.upsert(refs.group, {"MONDAY": ["07:00"]})

    with pytest.raises(TimeNotConfiguredError):
        _create_monday_slot(service, refs)

    config_repo.upsert(refs.group, {"MONDAY": ["06:00", "07:00"]})
    assignment = _create_monday_slot(service, refs)
    assert assignment.slot_id


def test_schedule_config_can_be_required(schedule_repo, config_repo, clock, refs) -> None:
    strict = ScheduleService(
        schedule_repo, config_repo=config_repo, clock=clock, require_schedule_config=True
    )

    with pytest.raises(TimeNotConfiguredError):
        strict.bind_vehicle(refs.group, MONDAY_0800_PARIS, refs.minivan)


def test_duplicate_child_is_rejected(service, refs) -> None:
    minivan = _create_monday_slot(service, refs)
    hatchback = service.bind_vehicle_to_slot(minivan.slot_id, refs.hatchback)
    service.assign_child(minivan.slot_id, refs.children[0], minivan.id)

    with pytest.raises(ChildAlreadyAssignedError):
        service.assign_child(minivan.slot_id, refs.children[0], hatchback.id)


def test_unbind_last_vehicle_reports_slot_deletion(service, refs) -> None:
    assignment = _create_monday_slot(service, refs)
    service.assign_child(assignment.slot_id, refs.children[0], assignment.id)

    result = service.unbind_vehicle(assignment.slot_id, refs.minivan)

    assert result.slot_deleted is True
    with pytest.raises(NotFoundError):
        service.get_slot(assignment.slot_id)


def test_weekly_schedule_lists_slots_in_local_week(service, refs) -> None:
    friday = service.create_slot_with_vehicle(
        refs.group, "FRIDAY", "2025-26", "16:30", "Europe/Paris", refs.minivan
    )
    monday = _create_monday_slot(service, refs)
    service.create_slot_with_vehicle(
        refs.group, "MONDAY", "2025-27", "08:00", "Europe/Paris", refs.minivan
    )

    schedule = service.get_schedule(refs.group, "2025-26")

    assert schedule.timezone == "Europe/Paris"
    assert [detail.slot.id for detail in schedule.slots] == [monday.slot_id, friday.slot_id]


def test_weekly_schedule_defaults_to_current_week(service, clock, refs) -> None:
    clock.now = datetime(2025, 6, 20, 9, 0, tzinfo=timezone.utc)
    _create_monday_slot(service, refs)

    assert service.get_schedule(refs.group).week == "2025-25"
    clock.now = datetime(2025, 6, 23, 5, 0, tzinfo=timezone.utc)
    assert len(service.get_schedule(refs.group).slots) == 1


def test_list_conflicts_on_healthy_slot(service, refs) -> None:
    assignment = _create_monday_slot(service, refs, driver_id=refs.driver)
    service.assign_child(assignment.slot_id, refs.children[0], assignment.id)

    assert service.list_conflicts(assignment.slot_id) == []


def test_list_conflicts_reports_counter_drift_and_over_capacity(
    service, session_factory, refs
) -> None:
    assignment = _create_monday_slot(service, refs, vehicle_id=refs.hatchback)
    service.assign_child(assignment.slot_id, refs.children[0], assignment.id)
    with session_factory() as session:
        # bypass the conditional writes to simulate corrupted data
        for child_id in refs.children[1:3]:
            session.add(
                SlotChildModel(
                    slot_id=assignment.slot_id,
                    vehicle_assignment_id=assignment.id,
                    child_id=child_id,
                )
            )
        session.commit()

    conflicts = service.list_conflicts(assignment.slot_id)

    assert any("over capacity" in message for message in conflicts)
    assert any("occupancy counter is 1" in message for message in conflicts)
    with pytest.raises(CapacityInvariantError):
        service.get_slot(assignment.slot_id)


def test_list_conflicts_reports_double_bookings(service, schedule_repo, refs) -> None:
    own = _create_monday_slot(service, refs, driver_id=refs.driver)
    # bypass the service guard to create a clash
    other = schedule_repo.bind_vehicle(
        refs.other_group, MONDAY_0800_PARIS, refs.minivan, driver_id=refs.driver
    )

    conflicts = service.list_conflicts(own.slot_id)

    assert f"vehicle 'Minivan' is also booked in slot '{other.slot_id}'" in conflicts
    assert f"driver 'Alex' is also driving in slot '{other.slot_id}'" in conflicts


def test_list_conflicts_reports_empty_slot(service, session_factory, refs) -> None:
    assignment = _create_monday_slot(service, refs)
    with session_factory() as session:
        session.execute(delete(SlotVehicleModel).where(SlotVehicleModel.id == assignment.id))
        session.commit()

    assert service.list_conflicts(assignment.slot_id) == ["slot has no vehicles"]


def test_weekly_schedule_flags_over_capacity_slot(service, session_factory, refs) -> None:
    crowded = _create_monday_slot(service, refs, vehicle_id=refs.hatchback)
    healthy = service.create_slot_with_vehicle(
        refs.group, "FRIDAY", "2025-26", "16:30", "Europe/Paris", refs.minivan
    )
    with session_factory() as session:
        # three children in a two-seat car
        for child_id in refs.children[:3]:
            session.add(
                SlotChildModel(
                    slot_id=crowded.slot_id,
                    vehicle_assignment_id=crowded.id,
                    child_id=child_id,
                )
            )
        session.commit()

    schedule = service.get_schedule(refs.group, "2025-26")

    flagged, fine = schedule.slots
    assert flagged.slot.id == crowded.slot_id
    assert flagged.anomalous is True
    assert flagged.vehicles[0].occupied == 3
    assert flagged.vehicles[0].available_seats == 0
    assert fine.slot.id == healthy.slot_id
    assert fine.anomalous is False
    assert fine.available_seats == 4
    with pytest.raises(CapacityInvariantError):
        service.get_slot(crowded.slot_id)
