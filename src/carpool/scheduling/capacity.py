"""Seat capacity arithmetic for vehicle assignments.

Functions accept anything exposing ``seat_override`` and ``vehicle.capacity``
(domain dataclasses as well as ORM rows) and never touch storage.
"""

from __future__ import annotations

from typing import Iterable, Protocol

from .schedule_errors import CapacityInvariantError

__all__ = [
    "SeatSource",
    "effective_capacity",
    "has_override",
    "total_capacity",
    "available_seats",
]


class _HasCapacity(Protocol):
    capacity: int


class SeatSource(Protocol):
    seat_override: int | None
    vehicle: _HasCapacity


def effective_capacity(assignment: SeatSource) -> int:
    """Return the override when set (``0`` included), else the vehicle default."""

    if assignment.seat_override is not None:
        return assignment.seat_override
    return assignment.vehicle.capacity


def has_override(assignment: SeatSource) -> bool:
    return assignment.seat_override is not None


def total_capacity(assignments: Iterable[SeatSource]) -> int:
    return sum(effective_capacity(assignment) for assignment in assignments)


def available_seats(assignment: SeatSource, occupied: int) -> int:
    """Return remaining seats; a negative figure is a defect and raises."""

    remaining = effective_capacity(assignment) - occupied
    if remaining < 0:
        raise CapacityInvariantError(
            f"{occupied} children assigned to a vehicle with "
            f"{effective_capacity(assignment)} seats"
        )
    return remaining
