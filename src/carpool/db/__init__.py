"""Database models and utilities for the scheduling engine."""

from .db_init import init_db
from .db_models import (
    Base,
    ChildModel,
    DriverModel,
    GroupModel,
    GroupScheduleConfigModel,
    ScheduleSlotModel,
    SlotChildModel,
    SlotVehicleModel,
    VehicleModel,
)
from .db_session import build_engine, build_session_factory

__all__ = [
    "Base",
    "ChildModel",
    "DriverModel",
    "GroupModel",
    "GroupScheduleConfigModel",
    "ScheduleSlotModel",
    "SlotChildModel",
    "SlotVehicleModel",
    "VehicleModel",
    "build_engine",
    "build_session_factory",
    "init_db",
]
