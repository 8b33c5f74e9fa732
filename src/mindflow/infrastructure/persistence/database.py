"""
SQLAlchemy engine and session setup for the local SQLite database.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import DateTime, Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

logger = logging.getLogger(__name__)

MEMORY_URL = "sqlite://"


class Base(DeclarativeBase):
    pass


class UTCDateTime(TypeDecorator):
    """
    Stores datetimes as naive UTC and hands them back timezone-aware.

    SQLite has no timezone support; naive values passed in are assumed to be UTC.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


def _dump_json(value) -> str:
    # Keep non-ASCII readable so LIKE searches over JSON columns match raw text.
    return json.dumps(value, ensure_ascii=False)


def _serialize_checkouts(engine: Engine) -> None:
    """
    Let one session at a time use the single shared connection.

    The lock is taken when a session checks the connection out and released on
    checkin, after the pool has rolled back anything left open. Sessions on
    different threads would otherwise share one transaction.
    """
    lock = threading.RLock()

    @event.listens_for(engine, "checkout")
    def _acquire(dbapi_connection, connection_record, connection_proxy):
        lock.acquire()

    @event.listens_for(engine, "checkin")
    def _release(dbapi_connection, connection_record):
        lock.release()


def database_url(path: Path | str | None) -> str:
    if path is None or str(path) == ":memory:":
        return MEMORY_URL
    return f"sqlite:///{Path(path).expanduser()}"


def create_store_engine(path: Path | str | None = None, echo: bool = False) -> Engine:
    """
    Create the engine for the given database file (None or ':memory:' for in-memory).

    The parent directory is created for file databases.
    """
    url = database_url(path)
    if url == MEMORY_URL:
        # One shared connection, otherwise every session sees its own empty database.
        engine = create_engine(
            url,
            echo=echo,
            json_serializer=_dump_json,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        _serialize_checkouts(engine)
        return engine

    db_file = Path(path).expanduser()
    db_file.parent.mkdir(parents=True, exist_ok=True)
    return create_engine(
        url,
        echo=echo,
        json_serializer=_dump_json,
        connect_args={"check_same_thread": False},
    )


def init_db(engine: Engine) -> sessionmaker[Session]:
    """Create missing tables and return a session factory bound to the engine."""
    # Register the mapped tables on Base.metadata before create_all.
    from . import orm_models  # noqa: F401

    Base.metadata.create_all(engine)
    logger.debug(f"Database ready at {engine.url}")
    # Returned objects stay usable after the session closes
    return sessionmaker(bind=engine, expire_on_commit=False)
