from __future__ import annotations

import os
from typing import Generator, Optional
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.orm import sessionmaker, Session
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

DB_URL_ENV = "LOCATIONS_DB_URL"
DEFAULT_DB_URL = "sqlite:///./data/locations.db"


class DatabaseUnavailableError(RuntimeError):
    """The database could not be reached when a job started."""


def _normalize_sqlite_url(db_url: str) -> str:
    """Ensure sqlite file URLs are absolute and anchored at repo root when relative.

    This prevents mismatched files when different processes have different CWDs.
    """
    url = make_url(db_url)
    if url.get_backend_name() != "sqlite":
        return db_url
    db_path = url.database or ""
    # skip in-memory URLs
    if db_path in ("", ":memory:"):
        return db_url
    p = Path(db_path)
    if not p.is_absolute():
        url = url.set(database=str((ROOT / p).resolve()))
        return url.render_as_string(hide_password=False)
    return db_url


def resolve_db_url(override: Optional[str] = None) -> str:
    """Pick the database URL: explicit override, then LOCATIONS_DB_URL, then the repo default."""
    raw = override or os.environ.get(DB_URL_ENV) or DEFAULT_DB_URL
    return _normalize_sqlite_url(raw)


def _is_memory_sqlite(db_url: str) -> bool:
    url = make_url(db_url)
    return url.get_backend_name() == "sqlite" and (url.database or "") in ("", ":memory:")


def make_engine(db_url: str, *, enforce_foreign_keys: bool = True, echo: bool = False) -> Engine:
    """Build an engine for ``db_url``.

    SQLite gets PRAGMA foreign_keys and explicit BEGIN handling so SAVEPOINTs
    (used by the synchronizer's conflict fallback) behave. File databases use
    NullPool so handles are released immediately; in-memory ones share a single
    connection.
    """
    if _is_memory_sqlite(db_url):
        engine = create_engine(
            db_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    elif db_url.startswith("sqlite"):
        engine = create_engine(db_url, echo=echo, poolclass=NullPool)
    else:
        return create_engine(db_url, echo=echo, pool_pre_ping=True)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # type: ignore[override]
        # Let SQLAlchemy drive transactions so nested savepoints work
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA foreign_keys={'ON' if enforce_foreign_keys else 'OFF'}")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _do_begin(conn):  # type: ignore[override]
        conn.exec_driver_sql("BEGIN")

    return engine


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, class_=Session)


def check_connection(engine: Engine) -> None:
    """Raise DatabaseUnavailableError unless a trivial query succeeds."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        raise DatabaseUnavailableError(f"database unreachable at {engine.url!r}: {e}") from e


@contextmanager
def get_session(db_url: Optional[str] = None, *, check: bool = True) -> Generator[Session, None, None]:
    """Yield a session bound to a fresh engine for ``db_url``.

    The engine is owned by this context and disposed on exit, so callers pass
    the yielded session explicitly to whatever needs it.
    """
    engine = make_engine(resolve_db_url(db_url))
    try:
        if check:
            check_connection(engine)
        session = make_session_factory(engine)()
        try:
            yield session
        finally:
            session.close()
    finally:
        engine.dispose()
