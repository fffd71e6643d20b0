from __future__ import annotations

from contextlib import contextmanager
import sqlite3
from typing import Iterable, Iterator

from sqlalchemy import Connection, Engine, create_engine, event, inspect

from .config import Settings


def build_engine(settings: Settings) -> Engine:
    if settings.is_sqlite:
        return create_engine(
            settings.database_url,
            pool_pre_ping=True,
            connect_args={"check_same_thread": False},
        )

    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        connect_args={"connect_timeout": settings.db_connect_timeout},
    )


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, _connection_record) -> None:
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@contextmanager
def scoped_connection(engine: Engine, dispose: bool = False) -> Iterator[Connection]:
    """Check one connection out of ``engine`` and hand it back exactly once.

    With ``dispose`` the whole pool is torn down afterwards as well, for callers
    that built the engine only for this unit of work.
    """
    try:
        connection = engine.connect()
    except BaseException:
        if dispose:
            engine.dispose()
        raise

    try:
        yield connection
    finally:
        connection.close()
        if dispose:
            engine.dispose()


def existing_tables(connection: Connection, names: Iterable[str]) -> set[str]:
    inspector = inspect(connection)
    return {name for name in names if inspector.has_table(name)}
