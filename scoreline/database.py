"""Async database connection using SQLAlchemy (supports SQLite and PostgreSQL)."""

import logging
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from scoreline.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def get_database_url(url: Optional[str] = None) -> str:
    """Convert database URL to async format."""
    url = url or settings.DATABASE_URL

    # SQLite
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)

    # PostgreSQL
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)

    return url


def build_engine(url: Optional[str] = None) -> AsyncEngine:
    """Create an async engine with dialect-specific pool settings."""
    database_url = get_database_url(url)
    engine_kwargs = {"echo": False}

    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_pre_ping"] = True
        engine_kwargs["pool_size"] = 5
        engine_kwargs["max_overflow"] = 10
        engine_kwargs["pool_recycle"] = 300
        engine_kwargs["pool_reset_on_return"] = "rollback"

    return create_async_engine(database_url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


async_engine = build_engine()

AsyncSessionLocal = build_session_factory(async_engine)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database sessions."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """Initialize database tables."""
    # Import registers every table on SQLModel.metadata
    import scoreline.models  # noqa: F401

    engine = engine or async_engine
    logger.info("Initializing database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("Database tables created successfully.")


async def close_db(engine: Optional[AsyncEngine] = None) -> None:
    """Close database connections."""
    engine = engine or async_engine
    logger.info("Closing database connections...")
    await engine.dispose()
    logger.info("Database connections closed.")
