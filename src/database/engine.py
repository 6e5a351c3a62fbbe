from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from src.config import settings

engine = create_async_engine(
    settings.database_url,
    pool_size=20,
    pool_pre_ping=True,
    pool_recycle=3600,
    max_overflow=5,
    echo=settings.environment == "development",
)

# Sprint/dispute mutations take row locks (SELECT ... FOR UPDATE) inside the
# request transaction; expire_on_commit=False keeps loaded rows serializable
# into responses after get_db commits.
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
