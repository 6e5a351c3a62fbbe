from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.database.engine import async_session


async def _apply_lock_timeout(session: AsyncSession) -> None:
    # SET does not take bind parameters; the value is an int from settings
    await session.execute(text(f"SET LOCAL lock_timeout = {int(settings.db_lock_timeout_ms)}"))


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one transaction per request.

    Commits when the handler returns (refused phase advances included, so a
    persisted blocked reason survives the 409) and rolls back on any error.
    """
    async with async_session() as session:
        try:
            await _apply_lock_timeout(session)
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Transaction scope for Celery tasks, which run outside the request cycle."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
