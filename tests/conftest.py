from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from src.carpool.db.db_init import init_db
from src.carpool.db.db_session import build_engine, build_session_factory
from src.carpool.schedule_config.schedule_config_repository import ScheduleConfigRepository
from src.carpool.scheduling.schedule_repository import ScheduleRepository
from src.carpool.scheduling.schedule_service import ScheduleService
from tests.helpers.scheduling import FrozenClock, seed_reference_data


@pytest.fixture
def engine():
    engine = build_engine("sqlite:///:memory:")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def refs(session_factory) -> SimpleNamespace:
    return seed_reference_data(session_factory)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def schedule_repo(session_factory) -> ScheduleRepository:
    return ScheduleRepository(session_factory)


@pytest.fixture
def config_repo(session_factory) -> ScheduleConfigRepository:
    return ScheduleConfigRepository(session_factory)


@pytest.fixture
def service(schedule_repo, config_repo, clock) -> ScheduleService:
    return ScheduleService(schedule_repo, config_repo=config_repo, clock=clock)
