from src.database.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, pg_enum
from src.database.engine import async_session, engine
from src.database.session import get_db, session_scope

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "pg_enum",
    "async_session",
    "engine",
    "get_db",
    "session_scope",
]
