"""Group schedule configuration routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request

from ..api_errors import http_error
from ..exceptions import AppError
from ..scheduling.schedule_schemas import WeeklyPatternRequest, WeeklyPatternResponse
from .schedule_config_models import default_schedule_hours
from .schedule_config_schemas import (
    DefaultScheduleHoursResponse,
    ScheduleConfigResponse,
    ScheduleConfigUpdateRequest,
)
from .schedule_config_service import ScheduleConfigService

router = APIRouter(prefix="/api", tags=["schedule-config"])


def get_schedule_config_service(request: Request) -> ScheduleConfigService:
    try:
        return request.app.state.schedule_config_service  # type: ignore[attr-defined]
    except AttributeError as exc:  # pragma: no cover - defensive path
        raise RuntimeError("ScheduleConfigService is not configured") from exc


@router.get("/groups/{group_id}/schedule-config", response_model=ScheduleConfigResponse)
def read_schedule_config(
    group_id: str,
    timezone: str | None = Query(default=None, description="Return times in this timezone"),
    service: ScheduleConfigService = Depends(get_schedule_config_service),
) -> ScheduleConfigResponse:
    try:
        config = service.get_config(group_id)
        if timezone is None:
            return ScheduleConfigResponse(
                group_id=group_id,
                schedule_hours=config.schedule_hours,
                updated_at=config.updated_at,
            )
        local = service.get_local_config(group_id, timezone)
    except AppError as exc:
        raise http_error(exc) from exc
    return ScheduleConfigResponse(
        group_id=group_id,
        schedule_hours=local,
        timezone=timezone,
        updated_at=config.updated_at,
    )


@router.put("/groups/{group_id}/schedule-config", response_model=ScheduleConfigResponse)
def update_schedule_config(
    group_id: str,
    payload: ScheduleConfigUpdateRequest,
    service: ScheduleConfigService = Depends(get_schedule_config_service),
) -> ScheduleConfigResponse:
    try:
        config = service.update_config(
            group_id,
            payload.schedule_hours,
            tz_name=payload.timezone,
            reference=payload.reference,
        )
    except AppError as exc:
        raise http_error(exc) from exc
    return ScheduleConfigResponse(
        group_id=config.group_id,
        schedule_hours=config.schedule_hours,
        updated_at=config.updated_at,
    )


@router.post("/schedule/weekly-pattern/local", response_model=WeeklyPatternResponse)
def convert_weekly_pattern(
    payload: WeeklyPatternRequest,
    service: ScheduleConfigService = Depends(get_schedule_config_service),
) -> WeeklyPatternResponse:
    try:
        pattern = service.convert_to_local(
            payload.pattern, payload.timezone, reference=payload.reference
        )
    except AppError as exc:
        raise http_error(exc) from exc
    return WeeklyPatternResponse(pattern=pattern, timezone=payload.timezone)


@router.get("/schedule-config/default", response_model=DefaultScheduleHoursResponse)
def read_default_schedule_hours() -> DefaultScheduleHoursResponse:
    return DefaultScheduleHoursResponse(schedule_hours=default_schedule_hours())


@router.post("/groups/{group_id}/schedule-config/reset", response_model=ScheduleConfigResponse)
def reset_schedule_config(
    group_id: str,
    service: ScheduleConfigService = Depends(get_schedule_config_service),
) -> ScheduleConfigResponse:
    try:
        config = service.reset_config(group_id)
    except AppError as exc:
        raise http_error(exc) from exc
    return ScheduleConfigResponse(
        group_id=config.group_id,
        schedule_hours=config.schedule_hours,
        updated_at=config.updated_at,
    )
