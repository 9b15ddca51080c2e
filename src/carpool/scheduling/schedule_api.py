"""Schedule slot routes (vehicle binding, seat assignment, weekly view)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response, status

from ..api_errors import http_error
from ..exceptions import AppError
from .schedule_schemas import (
    AssignChildRequest,
    BindVehicleRequest,
    ConflictsResponse,
    CreateSlotRequest,
    SetDriverRequest,
    SetSeatOverrideRequest,
    SlotDetailResponse,
    UnbindResponse,
    VehicleAssignmentResponse,
    WeeklyScheduleResponse,
)
from .schedule_service import ScheduleService

router = APIRouter(prefix="/api", tags=["schedule"])


def get_schedule_service(request: Request) -> ScheduleService:
    """Fetch schedule service from application state."""
    try:
        return request.app.state.schedule_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("ScheduleService is not configured") from exc


@router.post(
    "/groups/{group_id}/schedule-slots",
    status_code=status.HTTP_201_CREATED,
    response_model=VehicleAssignmentResponse,
)
def create_slot(
    group_id: str,
    payload: CreateSlotRequest,
    service: ScheduleService = Depends(get_schedule_service),
) -> VehicleAssignmentResponse:
    try:
        assignment = service.create_slot_with_vehicle(
            group_id,
            payload.weekday,
            payload.week,
            payload.time,
            payload.timezone,
            payload.vehicle_id,
            driver_id=payload.driver_id,
            seat_override=payload.seat_override,
        )
    except AppError as exc:
        raise http_error(exc) from exc
    return VehicleAssignmentResponse.from_domain(assignment)


@router.get("/groups/{group_id}/schedule", response_model=WeeklyScheduleResponse)
def fetch_schedule(
    group_id: str,
    week: str | None = Query(default=None, description="ISO week label, YYYY-WW"),
    timezone: str | None = Query(default=None, description="IANA timezone, defaults to the group's"),
    service: ScheduleService = Depends(get_schedule_service),
) -> WeeklyScheduleResponse:
    try:
        schedule = service.get_schedule(group_id, week, timezone)
    except AppError as exc:
        raise http_error(exc) from exc
    return WeeklyScheduleResponse.from_domain(schedule)


@router.get("/schedule-slots/{slot_id}", response_model=SlotDetailResponse)
def fetch_slot(
    slot_id: str,
    service: ScheduleService = Depends(get_schedule_service),
) -> SlotDetailResponse:
    try:
        detail = service.get_slot(slot_id)
    except AppError as exc:
        raise http_error(exc) from exc
    return SlotDetailResponse.from_domain(detail)


@router.get("/schedule-slots/{slot_id}/conflicts", response_model=ConflictsResponse)
def fetch_conflicts(
    slot_id: str,
    service: ScheduleService = Depends(get_schedule_service),
) -> ConflictsResponse:
    try:
        conflicts = service.list_conflicts(slot_id)
    except AppError as exc:
        raise http_error(exc) from exc
    return ConflictsResponse(slot_id=slot_id, conflicts=conflicts)


@router.post(
    "/schedule-slots/{slot_id}/vehicles",
    status_code=status.HTTP_201_CREATED,
    response_model=VehicleAssignmentResponse,
)
def bind_vehicle(
    slot_id: str,
    payload: BindVehicleRequest,
    service: ScheduleService = Depends(get_schedule_service),
) -> VehicleAssignmentResponse:
    try:
        assignment = service.bind_vehicle_to_slot(
            slot_id,
            payload.vehicle_id,
            driver_id=payload.driver_id,
            seat_override=payload.seat_override,
        )
    except AppError as exc:
        raise http_error(exc) from exc
    return VehicleAssignmentResponse.from_domain(assignment)


@router.delete("/schedule-slots/{slot_id}/vehicles/{vehicle_id}", response_model=UnbindResponse)
def unbind_vehicle(
    slot_id: str,
    vehicle_id: str,
    service: ScheduleService = Depends(get_schedule_service),
) -> UnbindResponse:
    try:
        result = service.unbind_vehicle(slot_id, vehicle_id)
    except AppError as exc:
        raise http_error(exc) from exc
    return UnbindResponse(
        slot_id=result.slot_id,
        vehicle_assignment_id=result.vehicle_assignment_id,
        slot_deleted=result.slot_deleted,
    )


@router.patch("/vehicle-assignments/{assignment_id}/driver", response_model=VehicleAssignmentResponse)
def set_driver(
    assignment_id: str,
    payload: SetDriverRequest,
    service: ScheduleService = Depends(get_schedule_service),
) -> VehicleAssignmentResponse:
    try:
        assignment = service.set_driver(assignment_id, payload.driver_id)
    except AppError as exc:
        raise http_error(exc) from exc
    return VehicleAssignmentResponse.from_domain(assignment)


@router.patch(
    "/vehicle-assignments/{assignment_id}/seat-override",
    response_model=VehicleAssignmentResponse,
)
def set_seat_override(
    assignment_id: str,
    payload: SetSeatOverrideRequest,
    service: ScheduleService = Depends(get_schedule_service),
) -> VehicleAssignmentResponse:
    try:
        assignment = service.set_seat_override(assignment_id, payload.seat_override)
    except AppError as exc:
        raise http_error(exc) from exc
    return VehicleAssignmentResponse.from_domain(assignment)


@router.post(
    "/schedule-slots/{slot_id}/children",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def assign_child(
    slot_id: str,
    payload: AssignChildRequest,
    service: ScheduleService = Depends(get_schedule_service),
) -> Response:
    try:
        service.assign_child(slot_id, payload.child_id, payload.vehicle_assignment_id)
    except AppError as exc:
        raise http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete(
    "/schedule-slots/{slot_id}/children/{child_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def remove_child(
    slot_id: str,
    child_id: str,
    service: ScheduleService = Depends(get_schedule_service),
) -> Response:
    try:
        service.remove_child(slot_id, child_id)
    except AppError as exc:
        raise http_error(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
