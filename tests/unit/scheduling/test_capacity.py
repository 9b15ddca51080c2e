from __future__ import annotations

import pytest

from src.carpool.scheduling import capacity
from src.carpool.scheduling.schedule_errors import (
    CapacityConflictError,
    CapacityInvariantError,
    InvariantViolationError,
)
from src.carpool.scheduling.schedule_models import VehicleAssignment, VehicleRef

pytestmark = pytest.mark.unit


def _assignment(capacity_seats: int, seat_override: int | None = None) -> VehicleAssignment:
    return VehicleAssignment(
        id="va-1",
        slot_id="slot-1",
        vehicle=VehicleRef(id="vehicle-1", name="Minivan", capacity=capacity_seats),
        seat_override=seat_override,
    )


def test_zero_override_differs_from_no_override() -> None:
    zero = _assignment(4, seat_override=0)
    default = _assignment(4)

    assert capacity.effective_capacity(zero) == 0
    assert capacity.has_override(zero) is True
    assert capacity.effective_capacity(default) == 4
    assert capacity.has_override(default) is False


def test_override_may_exceed_vehicle_capacity() -> None:
    assert capacity.effective_capacity(_assignment(4, seat_override=6)) == 6


def test_total_capacity_sums_effective_capacities() -> None:
    assignments = [_assignment(4), _assignment(5, seat_override=2), _assignment(7, seat_override=0)]

    assert capacity.total_capacity(assignments) == 6
    assert capacity.total_capacity([]) == 0


def test_available_seats() -> None:
    assert capacity.available_seats(_assignment(4), 1) == 3
    assert capacity.available_seats(_assignment(4, seat_override=2), 2) == 0


def test_negative_available_seats_raise_instead_of_clamping() -> None:
    with pytest.raises(CapacityInvariantError):
        capacity.available_seats(_assignment(4, seat_override=1), 2)


def test_capacity_conflict_is_not_an_invariant_violation() -> None:
    assert not issubclass(CapacityConflictError, InvariantViolationError)
    assert issubclass(CapacityInvariantError, InvariantViolationError)
