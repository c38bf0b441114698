"""Database configuration for FastAPI.

This module uses SQLAlchemy's asyncio support with asyncpg to connect to
PostgreSQL.  The connection URL comes from `settings.database_url`,
which is assembled from the DB_* environment variables unless
SERENITY_DATABASE_URL overrides it.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .gateway import PersistenceGateway, SqlAlchemyGateway
from .models import Base
from .settings import settings


engine = create_async_engine(settings.database_url, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(
    bind=engine, class_=AsyncSession, expire_on_commit=False
)

gateway = SqlAlchemyGateway(AsyncSessionLocal)


async def init_db() -> None:
    """Create the tables if they do not exist yet."""
    if not settings.create_tables:
        return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def get_gateway() -> PersistenceGateway:
    """FastAPI dependency returning the process-wide persistence gateway."""
    return gateway
