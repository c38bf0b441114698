from __future__ import annotations

import os

# The app module builds its engine at import time; point it at SQLite so
# importing it never needs a running PostgreSQL.
os.environ.setdefault("SERENITY_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SERENITY_CREATE_TABLES", "false")

import pytest
import pytest_asyncio

from serenity.emotions import EmotionObservation, EmotionSource


@pytest_asyncio.fixture
async def gateway():
    pytest.importorskip("aiosqlite")
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
    from sqlalchemy.pool import StaticPool

    from serenity.gateway import SqlAlchemyGateway
    from serenity.models import Base

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    try:
        yield SqlAlchemyGateway(factory)
    finally:
        await engine.dispose()


@pytest.fixture
def anxious_observation() -> EmotionObservation:
    return EmotionObservation.from_scores(EmotionSource.FACIAL, {"anxious": 0.7, "neutral": 0.3})
