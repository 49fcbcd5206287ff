"""
Database Configuration using SQLAlchemy async (asyncpg in production, aiosqlite locally).
"""
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from utils.config import DATABASE_URL


def build_engine(url: str = DATABASE_URL) -> AsyncEngine:
    """Create an async engine with pool settings suited to the backend."""
    if url.startswith("sqlite"):
        # One connection per session so separate sessions really are separate writers
        return create_async_engine(url, echo=False, poolclass=NullPool)
    return create_async_engine(
        url,
        echo=False,
        # Pool settings can be adjusted based on load
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


# Base class for SQLAlchemy models to inherit from
class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for obtaining an async database session.

    Usage in FastAPI:
        @router.get("/kyc/{kyc_id}")
        async def read_kyc(kyc_id: str, db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind: AsyncEngine = None):
    """
    Initialize database tables.
    Creates missing tables on startup; there are no migrations to run.
    """
    # Register the mapped classes on Base.metadata
    import models.sql_models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping_db(bind: AsyncEngine = None) -> bool:
    """Return True if the database answers a trivial query."""
    try:
        async with (bind or engine).connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False
