"""db package exports for the project's database layer.

This file makes the `db` directory a package and re-exports commonly used
symbols to simplify imports in scripts (e.g. `from db import Base`).
"""
from .models import Base  # noqa: F401
from .session import (  # noqa: F401
    DatabaseUnavailableError,
    check_connection,
    get_session,
    make_engine,
    make_session_factory,
    resolve_db_url,
)

__all__ = [
    "Base",
    "DatabaseUnavailableError",
    "check_connection",
    "get_session",
    "make_engine",
    "make_session_factory",
    "resolve_db_url",
]
