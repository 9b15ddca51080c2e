"""Pydantic schemas for group schedule configuration."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class ScheduleConfigResponse(BaseModel):
    group_id: str
    schedule_hours: dict[str, list[str]] = Field(default_factory=dict)
    timezone: str = "UTC"
    updated_at: datetime | None = None


class ScheduleConfigUpdateRequest(BaseModel):
    schedule_hours: dict[str, list[str]]
    timezone: str | None = Field(
        default=None,
        description="When set, schedule_hours are local times in this timezone.",
    )
    reference: date | None = None


class DefaultScheduleHoursResponse(BaseModel):
    schedule_hours: dict[str, list[str]]
    timezone: str = "UTC"
