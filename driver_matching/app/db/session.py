"""
Database session configuration.

This module handles database engine creation and session management
using SQLAlchemy with async support. PostgreSQL (asyncpg) in deployment,
SQLite (aiosqlite) in tests.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from driver_matching.app.core.config import Settings

# Create declarative base for models
Base = declarative_base()


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine described by settings."""
    options = {"echo": settings.db_echo, "future": True}
    if not settings.database_url.startswith("sqlite"):
        options["pool_size"] = settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow
    return create_async_engine(settings.database_url, **options)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    """Create an async session factory bound to engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables registered on Base."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
