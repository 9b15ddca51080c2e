"""Group schedule configuration repository backed by SQLAlchemy."""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.orm import Session

from ..db.db_models import GroupScheduleConfigModel, utcnow
from ..exceptions import handle_sqlalchemy_errors
from .schedule_config_models import ScheduleConfig


class ScheduleConfigRepository:
    """Store one UTC weekly grid per group."""

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    def get(self, group_id: str) -> ScheduleConfig | None:
        with self._session_factory() as session:
            row = session.get(GroupScheduleConfigModel, group_id)
            return self._to_domain(row) if row is not None else None

    def upsert(self, group_id: str, schedule_hours: dict[str, list[str]]) -> ScheduleConfig:
        with self._session_factory() as session, handle_sqlalchemy_errors(entity="group_schedule_config"):
            row = session.get(GroupScheduleConfigModel, group_id)
            if row is None:
                row = GroupScheduleConfigModel(group_id=group_id)
                session.add(row)
            row.schedule_hours = schedule_hours
            row.updated_at = utcnow()
            session.commit()
            session.refresh(row)
            return self._to_domain(row)

    @staticmethod
    def _to_domain(model: GroupScheduleConfigModel) -> ScheduleConfig:
        return ScheduleConfig(
            group_id=model.group_id,
            schedule_hours={day: list(times) for day, times in (model.schedule_hours or {}).items()},
            updated_at=model.updated_at,
        )
