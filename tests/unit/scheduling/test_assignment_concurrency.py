from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import pytest
from sqlalchemy import func, select

from src.carpool.db.db_init import init_db
from src.carpool.db.db_models import ScheduleSlotModel, SlotChildModel, SlotVehicleModel
from src.carpool.db.db_session import build_engine, build_session_factory
from src.carpool.scheduling.schedule_errors import CapacityConflictError
from src.carpool.scheduling.schedule_repository import ScheduleRepository
from src.carpool.scheduling.schedule_service import ScheduleService
from tests.helpers.scheduling import MONDAY_0800_PARIS, FrozenClock, seed_reference_data

pytestmark = pytest.mark.unit


@pytest.fixture
def file_session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'carpool.db'}", busy_timeout_seconds=10)
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def file_service(file_session_factory) -> ScheduleService:
    return ScheduleService(
        ScheduleRepository(file_session_factory),
        clock=FrozenClock(datetime(2025, 6, 1, tzinfo=timezone.utc)),
    )


def _run_concurrently(calls: list[Callable[[], Any]]) -> tuple[list[Any], list[BaseException]]:
    """Start every call at the same time on its own thread."""

    barrier = threading.Barrier(len(calls))
    results: list[Any] = []
    errors: list[BaseException] = []
    lock = threading.Lock()

    def worker(call: Callable[[], Any]) -> None:
        barrier.wait()
        try:
            value = call()
        except Exception as exc:  # noqa: BLE001
            with lock:
                errors.append(exc)
        else:
            with lock:
                results.append(value)

    threads = [threading.Thread(target=worker, args=(call,)) for call in calls]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return results, errors


def test_concurrent_assignments_never_oversell_the_last_seat(
    file_session_factory, file_service
) -> None:
    refs = seed_reference_data(file_session_factory)
    assignment = file_service.bind_vehicle(
        refs.group, MONDAY_0800_PARIS, refs.hatchback, seat_override=1
    )

    results, errors = _run_concurrently(
        [
            lambda child_id=child_id: file_service.assign_child(
                assignment.slot_id, child_id, assignment.id
            )
            for child_id in refs.children[:2]
        ]
    )

    assert len(results) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], CapacityConflictError)
    assert errors[0].capacity == 1
    assert errors[0].occupancy == 1

    with file_session_factory() as session:
        occupancy = session.execute(
            select(SlotVehicleModel.occupancy).where(SlotVehicleModel.id == assignment.id)
        ).scalar_one()
        children = session.execute(
            select(func.count()).select_from(SlotChildModel).where(
                SlotChildModel.slot_id == assignment.slot_id
            )
        ).scalar_one()
    assert occupancy == 1
    assert children == 1


def test_concurrent_binds_converge_on_one_slot(file_session_factory, file_service) -> None:
    refs = seed_reference_data(file_session_factory)

    results, errors = _run_concurrently(
        [
            lambda vehicle_id=vehicle_id: file_service.bind_vehicle(
                refs.group, MONDAY_0800_PARIS, vehicle_id
            )
            for vehicle_id in (refs.minivan, refs.hatchback)
        ]
    )

    assert errors == []
    assert len({assignment.slot_id for assignment in results}) == 1
    with file_session_factory() as session:
        slots = session.execute(
            select(func.count()).select_from(ScheduleSlotModel)
        ).scalar_one()
    assert slots == 1
    detail = file_service.get_slot(results[0].slot_id)
    assert detail.total_capacity == 6


def test_concurrent_unbinds_delete_the_slot_exactly_once(
    file_session_factory, file_service
) -> None:
    refs = seed_reference_data(file_session_factory)
    first = file_service.bind_vehicle(refs.group, MONDAY_0800_PARIS, refs.minivan)
    file_service.bind_vehicle(refs.group, MONDAY_0800_PARIS, refs.hatchback)

    results, errors = _run_concurrently(
        [
            lambda vehicle_id=vehicle_id: file_service.unbind_vehicle(first.slot_id, vehicle_id)
            for vehicle_id in (refs.minivan, refs.hatchback)
        ]
    )

    assert errors == []
    assert sorted(result.slot_deleted for result in results) == [False, True]
    with file_session_factory() as session:
        slots = session.execute(
            select(func.count()).select_from(ScheduleSlotModel)
        ).scalar_one()
        assignments = session.execute(
            select(func.count()).select_from(SlotVehicleModel)
        ).scalar_one()
    assert slots == 0
    assert assignments == 0
