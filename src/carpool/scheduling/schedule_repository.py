"""Schedule slot repository backed by SQLAlchemy.

Writes that touch seat counts are single conditional statements so that the
check and the write happen atomically in the database, whatever process
issued them.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..db.db_models import (
    ChildModel,
    DriverModel,
    GroupModel,
    ScheduleSlotModel,
    SlotChildModel,
    SlotVehicleModel,
    VehicleModel,
    utcnow,
)
from ..exceptions import DatabaseOperationError, NotFoundError, ensure_found, handle_sqlalchemy_errors
from .capacity import effective_capacity
from .schedule_errors import (
    CapacityConflictError,
    ChildAlreadyAssignedError,
    ChildNotAssignedError,
    OverrideBelowOccupancyError,
    VehicleAlreadyBoundError,
    VehicleNotBoundError,
)
from .schedule_models import (
    ChildAssignment,
    ChildRef,
    DriverRef,
    GroupRef,
    ScheduleSlot,
    UnbindResult,
    VehicleAssignment,
    VehicleRef,
)
from .temporal import ensure_utc

logger = logging.getLogger(__name__)

_SLOT_CREATE_ATTEMPTS = 3


def _to_db_datetime(value: datetime) -> datetime:
    return ensure_utc(value).replace(tzinfo=None)


def _vehicle_capacity_subquery():
    return (
        select(VehicleModel.capacity)
        .where(VehicleModel.id == SlotVehicleModel.vehicle_id)
        .correlate_except(VehicleModel)
        .scalar_subquery()
    )


class ScheduleRepository:
    """Persist schedule slots together with their vehicle and child assignments."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    # reference data -----------------------------------------------------

    def get_group(self, group_id: str) -> GroupRef:
        with self._session_factory() as session:
            row = ensure_found(session.get(GroupModel, group_id), entity="group", identifier=group_id)
            return GroupRef(id=row.id, name=row.name, timezone=row.timezone)

    def get_vehicle(self, vehicle_id: str) -> VehicleRef:
        with self._session_factory() as session:
            row = ensure_found(
                session.get(VehicleModel, vehicle_id), entity="vehicle", identifier=vehicle_id
            )
            return VehicleRef(id=row.id, name=row.name, capacity=row.capacity)

    def get_driver(self, driver_id: str) -> DriverRef:
        with self._session_factory() as session:
            row = ensure_found(session.get(DriverModel, driver_id), entity="driver", identifier=driver_id)
            return DriverRef(id=row.id, name=row.name)

    def get_child(self, child_id: str) -> ChildRef:
        with self._session_factory() as session:
            row = ensure_found(session.get(ChildModel, child_id), entity="child", identifier=child_id)
            return ChildRef(id=row.id, name=row.name)

    # reads --------------------------------------------------------------

    def get_slot(self, slot_id: str) -> ScheduleSlot:
        with self._session_factory() as session:
            row = session.execute(
                self._slot_query().where(ScheduleSlotModel.id == slot_id)
            ).scalar_one_or_none()
            if row is None:
                raise NotFoundError(f"schedule slot '{slot_id}' not found", entity="schedule_slot")
            return self._to_domain(row)

    def find_slot(self, group_id: str, instant: datetime) -> ScheduleSlot | None:
        with self._session_factory() as session:
            row = session.execute(
                self._slot_query().where(
                    ScheduleSlotModel.group_id == group_id,
                    ScheduleSlotModel.starts_at == _to_db_datetime(instant),
                )
            ).scalar_one_or_none()
            return self._to_domain(row) if row is not None else None

    def list_slots(
        self, group_id: str, start: datetime, end: datetime | None = None
    ) -> Sequence[ScheduleSlot]:
        """Return group slots with ``start <= datetime < end`` ordered by datetime.

        Without ``end`` every slot from ``start`` onwards is returned.
        """
        query = self._slot_query().where(
            ScheduleSlotModel.group_id == group_id,
            ScheduleSlotModel.starts_at >= _to_db_datetime(start),
        )
        if end is not None:
            query = query.where(ScheduleSlotModel.starts_at < _to_db_datetime(end))
        with self._session_factory() as session:
            rows = session.execute(query.order_by(ScheduleSlotModel.starts_at)).scalars().all()
            return [self._to_domain(row) for row in rows]

    def get_vehicle_assignment(self, assignment_id: str) -> VehicleAssignment:
        with self._session_factory() as session:
            row = session.get(SlotVehicleModel, assignment_id)
            if row is None:
                raise NotFoundError(
                    f"vehicle assignment '{assignment_id}' not found", entity="vehicle_assignment"
                )
            return self._assignment_to_domain(row)

    def list_assignments_at(
        self, instant: datetime, *, exclude_slot_id: str | None = None
    ) -> Sequence[VehicleAssignment]:
        """Vehicle assignments of every group's slots starting at ``instant``."""
        with self._session_factory() as session:
            query = (
                select(SlotVehicleModel)
                .join(ScheduleSlotModel, ScheduleSlotModel.id == SlotVehicleModel.slot_id)
                .where(ScheduleSlotModel.starts_at == _to_db_datetime(instant))
            )
            if exclude_slot_id is not None:
                query = query.where(SlotVehicleModel.slot_id != exclude_slot_id)
            rows = session.execute(query).unique().scalars().all()
            return [self._assignment_to_domain(row) for row in rows]

    # vehicle assignments ------------------------------------------------

    def bind_vehicle(
        self,
        group_id: str,
        instant: datetime,
        vehicle_id: str,
        *,
        driver_id: str | None = None,
        seat_override: int | None = None,
    ) -> VehicleAssignment:
        """Locate or create the ``(group, instant)`` slot and bind the vehicle to it."""
        starts_at = _to_db_datetime(instant)
        for attempt in range(1, _SLOT_CREATE_ATTEMPTS + 1):
            with self._session_factory() as session, handle_sqlalchemy_errors(entity="schedule_slot"):
                slot = session.execute(
                    select(ScheduleSlotModel).where(
                        ScheduleSlotModel.group_id == group_id,
                        ScheduleSlotModel.starts_at == starts_at,
                    )
                ).scalar_one_or_none()
                if slot is None:
                    slot = ScheduleSlotModel(group_id=group_id, starts_at=starts_at)
                    session.add(slot)
                    try:
                        session.flush()
                    except IntegrityError:
                        # another writer created the slot first; re-select it
                        session.rollback()
                        logger.info(
                            "slot create race for group=%s at=%s (attempt %s)",
                            group_id,
                            starts_at,
                            attempt,
                        )
                        continue
                row = self._insert_assignment(
                    session,
                    slot.id,
                    vehicle_id,
                    driver_id=driver_id,
                    seat_override=seat_override,
                )
                if row is None:
                    continue
                return self._assignment_to_domain(row)
        raise DatabaseOperationError(
            f"schedule_slot: could not bind vehicle '{vehicle_id}' after {_SLOT_CREATE_ATTEMPTS} attempts"
        )

    def add_vehicle(
        self,
        slot_id: str,
        vehicle_id: str,
        *,
        driver_id: str | None = None,
        seat_override: int | None = None,
    ) -> VehicleAssignment:
        """Bind a vehicle to an existing slot."""
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="vehicle_assignment"):
            if session.get(ScheduleSlotModel, slot_id) is None:
                raise NotFoundError(f"schedule slot '{slot_id}' not found", entity="schedule_slot")
            row = self._insert_assignment(
                session, slot_id, vehicle_id, driver_id=driver_id, seat_override=seat_override
            )
            if row is None:
                raise NotFoundError(f"schedule slot '{slot_id}' not found", entity="schedule_slot")
            return self._assignment_to_domain(row)

    def _insert_assignment(
        self,
        session: Session,
        slot_id: str,
        vehicle_id: str,
        *,
        driver_id: str | None,
        seat_override: int | None,
    ) -> SlotVehicleModel | None:
        """Insert and commit; ``None`` means the slot vanished concurrently."""
        row = SlotVehicleModel(
            slot_id=slot_id,
            vehicle_id=vehicle_id,
            driver_id=driver_id,
            seat_override=seat_override,
            occupancy=0,
        )
        session.add(row)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            duplicate = session.execute(
                select(SlotVehicleModel.id).where(
                    SlotVehicleModel.slot_id == slot_id,
                    SlotVehicleModel.vehicle_id == vehicle_id,
                )
            ).scalar_one_or_none()
            if duplicate is not None:
                raise VehicleAlreadyBoundError(
                    f"vehicle '{vehicle_id}' is already bound to slot '{slot_id}'"
                ) from None
            if session.get(ScheduleSlotModel, slot_id) is not None:
                raise
            return None
        session.refresh(row)
        return row

    def unbind_vehicle(self, slot_id: str, vehicle_id: str) -> UnbindResult:
        """Remove the assignment, its children and, when it was the last one, the slot.

        The slot row is locked first so concurrent unbinds of the same slot
        count the remaining vehicles one after the other.
        """
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="vehicle_assignment"):
            locked = session.execute(
                select(ScheduleSlotModel.id)
                .where(ScheduleSlotModel.id == slot_id)
                .with_for_update()
            ).scalar_one_or_none()
            if locked is None:
                raise NotFoundError(f"schedule slot '{slot_id}' not found", entity="schedule_slot")
            assignment_id = session.execute(
                select(SlotVehicleModel.id).where(
                    SlotVehicleModel.slot_id == slot_id,
                    SlotVehicleModel.vehicle_id == vehicle_id,
                )
            ).scalar_one_or_none()
            if assignment_id is None:
                raise VehicleNotBoundError(
                    f"vehicle '{vehicle_id}' is not bound to slot '{slot_id}'"
                )
            session.execute(
                delete(SlotChildModel).where(SlotChildModel.vehicle_assignment_id == assignment_id)
            )
            session.execute(delete(SlotVehicleModel).where(SlotVehicleModel.id == assignment_id))
            remaining = session.execute(
                select(func.count()).select_from(SlotVehicleModel).where(
                    SlotVehicleModel.slot_id == slot_id
                )
            ).scalar_one()
            slot_deleted = remaining == 0
            if slot_deleted:
                session.execute(delete(SlotChildModel).where(SlotChildModel.slot_id == slot_id))
                session.execute(delete(ScheduleSlotModel).where(ScheduleSlotModel.id == slot_id))
            session.commit()
            return UnbindResult(
                vehicle_assignment_id=assignment_id, slot_id=slot_id, slot_deleted=slot_deleted
            )

    def set_driver(self, assignment_id: str, driver_id: str | None) -> VehicleAssignment:
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="vehicle_assignment"):
            result = session.execute(
                update(SlotVehicleModel)
                .where(SlotVehicleModel.id == assignment_id)
                .values(
                    driver_id=driver_id,
                    version=SlotVehicleModel.version + 1,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.rollback()
                raise NotFoundError(
                    f"vehicle assignment '{assignment_id}' not found", entity="vehicle_assignment"
                )
            session.commit()
            return self._assignment_to_domain(session.get(SlotVehicleModel, assignment_id))

    def set_seat_override(self, assignment_id: str, seats: int | None) -> VehicleAssignment:
        """Apply the override only if the resulting capacity still covers occupancy."""
        new_capacity = seats if seats is not None else _vehicle_capacity_subquery()
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="vehicle_assignment"):
            result = session.execute(
                update(SlotVehicleModel)
                .where(
                    SlotVehicleModel.id == assignment_id,
                    SlotVehicleModel.occupancy <= new_capacity,
                )
                .values(
                    seat_override=seats,
                    version=SlotVehicleModel.version + 1,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                row = session.get(SlotVehicleModel, assignment_id)
                if row is None:
                    session.rollback()
                    raise NotFoundError(
                        f"vehicle assignment '{assignment_id}' not found",
                        entity="vehicle_assignment",
                    )
                occupancy = row.occupancy
                requested = seats if seats is not None else row.vehicle.capacity
                session.rollback()
                raise OverrideBelowOccupancyError(
                    f"capacity {requested} is below the {occupancy} children already assigned",
                    occupancy=occupancy,
                    requested=requested,
                )
            session.commit()
            return self._assignment_to_domain(session.get(SlotVehicleModel, assignment_id))

    # child assignments --------------------------------------------------

    def assign_child(self, slot_id: str, child_id: str, vehicle_assignment_id: str) -> ChildAssignment:
        """Take a seat and record the child in one transaction.

        The seat is taken first with a conditional increment of the
        occupancy counter; zero affected rows means the assignment is not in
        the slot or its seats were consumed by a concurrent writer.
        """
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="child_assignment"):
            result = session.execute(
                update(SlotVehicleModel)
                .where(
                    SlotVehicleModel.id == vehicle_assignment_id,
                    SlotVehicleModel.slot_id == slot_id,
                    SlotVehicleModel.occupancy
                    < func.coalesce(SlotVehicleModel.seat_override, _vehicle_capacity_subquery()),
                )
                .values(
                    occupancy=SlotVehicleModel.occupancy + 1,
                    version=SlotVehicleModel.version + 1,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                row = session.get(SlotVehicleModel, vehicle_assignment_id)
                if row is None or row.slot_id != slot_id:
                    session.rollback()
                    raise NotFoundError(
                        f"vehicle assignment '{vehicle_assignment_id}' not found in slot '{slot_id}'",
                        entity="vehicle_assignment",
                    )
                occupancy, capacity = row.occupancy, effective_capacity(row)
                session.rollback()
                raise CapacityConflictError(
                    f"no seat left in vehicle assignment '{vehicle_assignment_id}'",
                    vehicle_assignment_id=vehicle_assignment_id,
                    occupancy=occupancy,
                    capacity=capacity,
                )

            row = SlotChildModel(
                slot_id=slot_id,
                vehicle_assignment_id=vehicle_assignment_id,
                child_id=child_id,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise ChildAlreadyAssignedError(
                    f"child '{child_id}' is already assigned in slot '{slot_id}'"
                ) from None
            session.refresh(row)
            return self._child_to_domain(row)

    def remove_child(self, slot_id: str, child_id: str) -> ChildAssignment:
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="child_assignment"):
            row = session.execute(
                select(SlotChildModel).where(
                    SlotChildModel.slot_id == slot_id,
                    SlotChildModel.child_id == child_id,
                )
            ).scalar_one_or_none()
            if row is None:
                raise ChildNotAssignedError(f"child '{child_id}' is not assigned in slot '{slot_id}'")
            removed = self._child_to_domain(row)
            result = session.execute(
                delete(SlotChildModel)
                .where(SlotChildModel.id == row.id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.rollback()
                raise ChildNotAssignedError(f"child '{child_id}' is not assigned in slot '{slot_id}'")
            session.execute(
                update(SlotVehicleModel)
                .where(
                    SlotVehicleModel.id == removed.vehicle_assignment_id,
                    SlotVehicleModel.occupancy > 0,
                )
                .values(
                    occupancy=SlotVehicleModel.occupancy - 1,
                    version=SlotVehicleModel.version + 1,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return removed

    # mapping ------------------------------------------------------------

    @staticmethod
    def _slot_query():
        return select(ScheduleSlotModel).options(
            selectinload(ScheduleSlotModel.vehicles),
            selectinload(ScheduleSlotModel.children),
        )

    @staticmethod
    def _to_domain(model: ScheduleSlotModel) -> ScheduleSlot:
        return ScheduleSlot(
            id=model.id,
            group_id=model.group_id,
            datetime=ensure_utc(model.starts_at),
            vehicle_assignments=[
                ScheduleRepository._assignment_to_domain(vehicle) for vehicle in model.vehicles
            ],
            child_assignments=[
                ScheduleRepository._child_to_domain(child) for child in model.children
            ],
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _assignment_to_domain(model: SlotVehicleModel) -> VehicleAssignment:
        return VehicleAssignment(
            id=model.id,
            slot_id=model.slot_id,
            vehicle=VehicleRef(
                id=model.vehicle.id, name=model.vehicle.name, capacity=model.vehicle.capacity
            ),
            driver=DriverRef(id=model.driver.id, name=model.driver.name) if model.driver else None,
            seat_override=model.seat_override,
            occupancy=model.occupancy,
            version=model.version,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _child_to_domain(model: SlotChildModel) -> ChildAssignment:
        return ChildAssignment(
            id=model.id,
            slot_id=model.slot_id,
            vehicle_assignment_id=model.vehicle_assignment_id,
            child=ChildRef(id=model.child.id, name=model.child.name),
        )
