"""Dependency wiring helpers."""

from fastapi import FastAPI

from .config import AppConfig
from .schedule_config.schedule_config_api import router as schedule_config_router
from .schedule_config.schedule_config_repository import ScheduleConfigRepository
from .schedule_config.schedule_config_service import ScheduleConfigService
from .scheduling.schedule_api import router as schedule_router
from .scheduling.schedule_repository import ScheduleRepository
from .scheduling.schedule_service import ScheduleService


def include_routers(app: FastAPI, config: AppConfig) -> None:
    """Mount module routers and attach services."""
    settings = config.settings
    schedule_repo = ScheduleRepository(config.session_factory)
    config_repo = ScheduleConfigRepository(config.session_factory)

    schedule_service = ScheduleService(
        schedule_repo,
        config_repo=config_repo,
        clock=config.clock,
        max_seat_override=settings.max_seat_override,
        enforce_past_trip_guard=settings.enforce_past_trip_guard,
        require_schedule_config=settings.require_schedule_config,
    )
    schedule_config_service = ScheduleConfigService(
        config_repo, schedule_repo, clock=config.clock
    )

    app.state.config = config
    app.state.schedule_repo = schedule_repo
    app.state.schedule_service = schedule_service
    app.state.schedule_config_service = schedule_config_service

    app.include_router(schedule_router)
    app.include_router(schedule_config_router)
