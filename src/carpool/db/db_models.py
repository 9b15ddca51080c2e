"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


def new_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    """Naive UTC timestamp, the storage convention for every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class that applies a deterministic naming convention."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class GroupModel(Base):
    """Carpool group reference data (owned by the membership service)."""

    __tablename__ = "carpool_group"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")


class VehicleModel(Base):
    __tablename__ = "vehicle"
    __table_args__ = (CheckConstraint("capacity >= 0", name="capacity_non_negative"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)


class DriverModel(Base):
    __tablename__ = "driver"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)


class ChildModel(Base):
    __tablename__ = "child"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False)


class ScheduleSlotModel(Base):
    """One concrete trip instance; ``starts_at`` is naive UTC."""

    __tablename__ = "schedule_slot"
    __table_args__ = (
        UniqueConstraint("group_id", "datetime", name="uq_schedule_slot_group_datetime"),
        Index("ix_schedule_slot_datetime", "datetime"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    group_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("carpool_group.id", ondelete="CASCADE"), nullable=False
    )
    starts_at: Mapped[datetime] = mapped_column("datetime", DateTime, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    vehicles: Mapped[list["SlotVehicleModel"]] = relationship(
        back_populates="slot",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SlotVehicleModel.created_at",
    )
    children: Mapped[list["SlotChildModel"]] = relationship(
        back_populates="slot",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SlotChildModel.created_at",
    )


class SlotVehicleModel(Base):
    """Vehicle bound to a slot with optional driver and seat override."""

    __tablename__ = "schedule_slot_vehicle"
    __table_args__ = (
        UniqueConstraint("slot_id", "vehicle_id", name="uq_schedule_slot_vehicle_slot_vehicle"),
        CheckConstraint(
            "seat_override IS NULL OR seat_override >= 0", name="seat_override_non_negative"
        ),
        CheckConstraint("occupancy >= 0", name="occupancy_non_negative"),
        Index("ix_schedule_slot_vehicle_driver_id", "driver_id"),
        Index("ix_schedule_slot_vehicle_vehicle_id", "vehicle_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    slot_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("schedule_slot.id", ondelete="CASCADE"), nullable=False
    )
    vehicle_id: Mapped[str] = mapped_column(String(32), ForeignKey("vehicle.id"), nullable=False)
    driver_id: Mapped[str | None] = mapped_column(String(32), ForeignKey("driver.id"))
    seat_override: Mapped[int | None] = mapped_column(Integer)
    occupancy: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    slot: Mapped[ScheduleSlotModel] = relationship(back_populates="vehicles")
    vehicle: Mapped[VehicleModel] = relationship(lazy="joined")
    driver: Mapped[DriverModel | None] = relationship(lazy="joined")


class SlotChildModel(Base):
    __tablename__ = "schedule_slot_child"
    __table_args__ = (
        UniqueConstraint("slot_id", "child_id", name="uq_schedule_slot_child_slot_child"),
        Index("ix_schedule_slot_child_vehicle_assignment_id", "vehicle_assignment_id"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    slot_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("schedule_slot.id", ondelete="CASCADE"), nullable=False
    )
    vehicle_assignment_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("schedule_slot_vehicle.id", ondelete="CASCADE"), nullable=False
    )
    child_id: Mapped[str] = mapped_column(String(32), ForeignKey("child.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    slot: Mapped[ScheduleSlotModel] = relationship(back_populates="children")
    child: Mapped[ChildModel] = relationship(lazy="joined")


class GroupScheduleConfigModel(Base):
    """Weekly grid of allowed UTC trip times for a group."""

    __tablename__ = "group_schedule_config"

    group_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("carpool_group.id", ondelete="CASCADE"), primary_key=True
    )
    schedule_hours: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
