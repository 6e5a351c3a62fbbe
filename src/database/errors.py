"""PostgreSQL error classification for driver exceptions wrapped by SQLAlchemy."""

from __future__ import annotations

from sqlalchemy.exc import DBAPIError

UNDEFINED_FUNCTION = "42883"
UNIQUE_VIOLATION = "23505"
LOCK_NOT_AVAILABLE = "55P03"
QUERY_CANCELED = "57014"


def sqlstate(exc: DBAPIError) -> str | None:
    """Return the SQLSTATE of the underlying driver error, if any.

    asyncpg exposes it as ``sqlstate`` on the exception SQLAlchemy wraps in
    ``__cause__``; psycopg-style drivers use ``pgcode``.
    """
    for candidate in (exc.orig, getattr(exc.orig, "__cause__", None)):
        code = getattr(candidate, "pgcode", None) or getattr(candidate, "sqlstate", None)
        if code:
            return str(code)
    return None


def constraint_name(exc: DBAPIError) -> str | None:
    for candidate in (exc.orig, getattr(exc.orig, "__cause__", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return str(name)
    return None


def is_lock_timeout(exc: DBAPIError) -> bool:
    return sqlstate(exc) in (LOCK_NOT_AVAILABLE, QUERY_CANCELED)
