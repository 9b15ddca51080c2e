"""Pydantic schemas for the schedule API."""

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field

from .capacity import effective_capacity, has_override
from .schedule_models import SlotDetail, VehicleAssignment, VehicleCapacity, WeeklySchedule


class VehiclePayload(BaseModel):
    id: str
    name: str
    capacity: int


class PersonPayload(BaseModel):
    id: str
    name: str


class VehicleAssignmentResponse(BaseModel):
    id: str
    slot_id: str
    vehicle: VehiclePayload
    driver: PersonPayload | None = None
    seat_override: int | None = None
    effective_capacity: int
    has_override: bool
    occupancy: int
    version: int

    @classmethod
    def from_domain(cls, assignment: VehicleAssignment) -> "VehicleAssignmentResponse":
        driver = assignment.driver
        return cls(
            id=assignment.id,
            slot_id=assignment.slot_id,
            vehicle=VehiclePayload(
                id=assignment.vehicle.id,
                name=assignment.vehicle.name,
                capacity=assignment.vehicle.capacity,
            ),
            driver=PersonPayload(id=driver.id, name=driver.name) if driver else None,
            seat_override=assignment.seat_override,
            effective_capacity=effective_capacity(assignment),
            has_override=has_override(assignment),
            occupancy=assignment.occupancy,
            version=assignment.version,
        )


class VehicleCapacityResponse(VehicleAssignmentResponse):
    occupied: int
    available_seats: int
    children: list[PersonPayload] = Field(default_factory=list)


class SlotDetailResponse(BaseModel):
    id: str
    group_id: str
    datetime: dt.datetime
    vehicles: list[VehicleCapacityResponse] = Field(default_factory=list)
    total_capacity: int
    available_seats: int
    anomalous: bool = False

    @classmethod
    def from_domain(cls, detail: SlotDetail) -> "SlotDetailResponse":
        slot = detail.slot
        return cls(
            id=slot.id,
            group_id=slot.group_id,
            datetime=slot.datetime,
            vehicles=[_vehicle_capacity(detail, entry) for entry in detail.vehicles],
            total_capacity=detail.total_capacity,
            available_seats=detail.available_seats,
            anomalous=detail.anomalous,
        )


def _vehicle_capacity(detail: SlotDetail, entry: VehicleCapacity) -> VehicleCapacityResponse:
    base = VehicleAssignmentResponse.from_domain(entry.assignment)
    return VehicleCapacityResponse(
        **base.model_dump(),
        occupied=entry.occupied,
        available_seats=entry.available_seats,
        children=[
            PersonPayload(id=child.child.id, name=child.child.name)
            for child in detail.slot.children_of(entry.assignment.id)
        ],
    )


class WeeklyScheduleResponse(BaseModel):
    group_id: str
    week: str
    timezone: str
    start: dt.datetime
    end: dt.datetime
    slots: list[SlotDetailResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, schedule: WeeklySchedule) -> "WeeklyScheduleResponse":
        return cls(
            group_id=schedule.group_id,
            week=schedule.week,
            timezone=schedule.timezone,
            start=schedule.start,
            end=schedule.end,
            slots=[SlotDetailResponse.from_domain(detail) for detail in schedule.slots],
        )


class UnbindResponse(BaseModel):
    slot_id: str
    vehicle_assignment_id: str
    slot_deleted: bool


class ConflictsResponse(BaseModel):
    slot_id: str
    conflicts: list[str] = Field(default_factory=list)


class CreateSlotRequest(BaseModel):
    weekday: str
    week: str = Field(description="ISO week label, YYYY-WW or YYYY-Www")
    time: str = Field(description="Local clock time, HH:MM")
    timezone: str
    vehicle_id: str
    driver_id: str | None = None
    seat_override: int | None = None


class BindVehicleRequest(BaseModel):
    vehicle_id: str
    driver_id: str | None = None
    seat_override: int | None = None


class SetDriverRequest(BaseModel):
    driver_id: str | None = None


class SetSeatOverrideRequest(BaseModel):
    seat_override: int | None = None


class AssignChildRequest(BaseModel):
    child_id: str
    vehicle_assignment_id: str


class WeeklyPatternRequest(BaseModel):
    pattern: dict[str, list[str]]
    timezone: str
    reference: dt.date | None = None


class WeeklyPatternResponse(BaseModel):
    pattern: dict[str, list[str]]
    timezone: str
