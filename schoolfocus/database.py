"""
Database configuration and session management
SQLAlchemy 2.0 async with connection pooling
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from schoolfocus.config import Settings


class Base(DeclarativeBase):
    """Base class for all models"""
    pass


def normalize_database_url(url: str) -> str:
    """
    Railway and other platforms provide postgresql:// by default
    but SQLAlchemy async requires postgresql+asyncpg://
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def create_engine(settings: Settings) -> AsyncEngine:
    """Create async engine with connection pooling"""
    database_url = normalize_database_url(settings.DATABASE_URL)
    kwargs = {"echo": settings.DEBUG}  # Log SQL in debug mode
    if not database_url.startswith("sqlite"):
        kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
    return create_async_engine(database_url, **kwargs)


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine):
    """Create all tables (for development)"""
    # Register models on Base.metadata
    from schoolfocus import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine):
    """Close database connections"""
    await engine.dispose()
