"""Database connectivity helpers."""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models_sql import Base


LOGGER = logging.getLogger(__name__)


def _apply_sqlite_pragmas(engine: Engine) -> None:
    """Enable WAL mode so overlapping runs do not block each other on reads."""

    try:
        with engine.connect() as connection:
            connection.execute(text("PRAGMA journal_mode=WAL"))
            connection.execute(text("PRAGMA synchronous=NORMAL"))
    except Exception as exc:  # pragma: no cover - best-effort tuning
        LOGGER.warning("Unable to configure SQLite pragmas: %s", exc)


def get_engine(url: str, *, busy_timeout: float = 30.0) -> Engine:
    """Create an engine for *url*; SQLite files get WAL and foreign keys."""

    is_sqlite = url.startswith("sqlite")
    connect_args = {"check_same_thread": False, "timeout": busy_timeout} if is_sqlite else {}
    kwargs: dict[str, object] = {"future": True, "pool_pre_ping": True, "connect_args": connect_args}
    if is_sqlite and ":memory:" in url:
        # in-memory SQLite lives per connection; share one across threads
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)

    if is_sqlite:
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        if ":memory:" not in url:
            _apply_sqlite_pragmas(engine)
    return engine


def make_session(engine: Engine) -> sessionmaker[Session]:
    """Create a configured session factory bound to *engine*."""

    return sessionmaker(engine, expire_on_commit=False, future=True)


def init_db(engine: Engine) -> None:
    """Create missing tables, leaving existing ones untouched."""

    Base.metadata.create_all(engine, checkfirst=True)
