"""Application configuration builder."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from .db.db_init import init_db
from .db.db_session import build_engine, build_session_factory


class Settings(BaseSettings):
    """Environment-driven settings (``CARPOOL_`` prefix, optional ``.env``)."""

    model_config = SettingsConfigDict(env_prefix="CARPOOL_", env_file=".env", extra="ignore")

    database_url: str = Field(
        default="sqlite:///carpool.db",
        description="SQLAlchemy URL of the schedule store.",
    )
    sqlite_busy_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="How long a SQLite writer waits for the write lock.",
    )
    max_seat_override: int = Field(
        default=10,
        ge=0,
        description="Upper bound of a per-trip seat override.",
    )
    enforce_past_trip_guard: bool = Field(
        default=True,
        description="Reject writes against trips whose datetime already passed.",
    )
    require_schedule_config: bool = Field(
        default=False,
        description="Reject slots of groups that have no schedule configuration.",
    )
    log_level: str = Field(default="INFO", description="Root log level.")


@dataclass(slots=True)
class AppConfig:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    clock: Callable[[], datetime] | None = None

    @property
    def database_url(self) -> str:
        return self.settings.database_url


def load_config(settings: Settings | None = None) -> AppConfig:
    """Load configuration from environment (SQLite by default) and create tables."""
    settings = settings or Settings()
    engine = build_engine(
        settings.database_url, busy_timeout_seconds=settings.sqlite_busy_timeout_seconds
    )
    session_factory = build_session_factory(engine)
    init_db(engine)
    return AppConfig(settings=settings, engine=engine, session_factory=session_factory)
