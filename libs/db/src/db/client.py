"""Engine and session helpers shared by every consumer of the ``db`` library.

One engine per process, bound to the URL given on first use (or
``DATABASE_URL``). SQLite connections get foreign-key enforcement and SQLAlchemy-driven
transactions, so ``ON DELETE`` rules and savepoints behave as on Postgres.

Usage
-----
from db.client import session_scope

with session_scope() as s:
    s.execute(...)
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker

_ENGINE: Engine | None = None
_SESSION_MAKER: sessionmaker[Session] | None = None
_DB_URL: str | None = None


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
    return url


def _configure_sqlite(engine: Engine) -> None:
    # pysqlite manages BEGIN itself and breaks SAVEPOINT; hand transaction
    # control to SQLAlchemy so `Session.begin_nested()` works.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_conn, _record):  # pragma: no cover - driver bridge
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):  # pragma: no cover - driver bridge
        conn.exec_driver_sql("BEGIN")


def _create_engine(url: str) -> Engine:
    if make_url(url).get_backend_name() == "sqlite":
        engine = create_engine(url)
        _configure_sqlite(engine)
        return engine
    return create_engine(url, pool_pre_ping=True)


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the process-wide engine, creating it on first use.

    Without ``database_url`` an existing engine is reused as-is. Passing a URL
    that differs from the one the engine was built with raises
    ``RuntimeError``; call :func:`reset_engine` to switch databases.
    """

    global _ENGINE, _SESSION_MAKER, _DB_URL
    if _ENGINE is not None and database_url is None:
        return _ENGINE
    url = _database_url(database_url)
    if _ENGINE is None:
        _ENGINE = _create_engine(url)
        _SESSION_MAKER = sessionmaker(bind=_ENGINE, expire_on_commit=False, class_=Session)
        _DB_URL = url
    elif url != _DB_URL:
        raise RuntimeError(
            "database client already bound to a different DATABASE_URL; "
            "call reset_engine() before switching"
        )
    return _ENGINE


def reset_engine() -> None:
    """Dispose the shared engine so the next call re-reads its URL."""

    global _ENGINE, _SESSION_MAKER, _DB_URL
    if _ENGINE is not None:
        _ENGINE.dispose()
    _ENGINE = None
    _SESSION_MAKER = None
    _DB_URL = None


def get_session(*, database_url: str | None = None) -> Session:
    get_engine(database_url=database_url)
    assert _SESSION_MAKER is not None  # bound by get_engine
    return _SESSION_MAKER()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Yield a session; commit on success, roll back and re-raise on error."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "get_engine",
    "get_session",
    "reset_engine",
    "session_scope",
]
