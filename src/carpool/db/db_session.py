"""Engine and session factory construction."""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)


def build_engine(database_url: str, *, busy_timeout_seconds: float = 30.0) -> Engine:
    """Create an engine; SQLite gets FK enforcement and write-locking transactions.

    Every SQLite transaction starts with ``BEGIN IMMEDIATE`` so concurrent
    writers wait on the busy timeout instead of failing on lock upgrade.
    """

    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(url, future=True, pool_pre_ping=True)

    kwargs: dict = {
        "future": True,
        "connect_args": {"check_same_thread": False, "timeout": busy_timeout_seconds},
    }
    if url.database in (None, "", ":memory:"):
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    _install_sqlite_hooks(engine)
    logger.debug("sqlite engine ready: %s", url.database or ":memory:")
    return engine


def _install_sqlite_hooks(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
        # hand transaction control to the "begin" hook below
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:  # type: ignore[no-untyped-def]
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)
