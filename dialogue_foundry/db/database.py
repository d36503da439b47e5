"""
Database engine and session factory construction for PostgreSQL.

Engines are built from explicit settings and owned by whoever builds them
(the app lifespan in production); there is no module-level engine.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from dialogue_foundry.db.config import DatabaseSettings
from dialogue_foundry.utils.logger import logger


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def create_engine_from_settings(settings: DatabaseSettings) -> AsyncEngine:
    """Create the async engine described by the settings."""
    engine_kwargs = {"echo": settings.echo, "pool_pre_ping": True}
    if not settings.get_async_url().startswith("sqlite"):
        engine_kwargs["pool_size"] = settings.pool_size
        engine_kwargs["max_overflow"] = settings.max_overflow
    return create_async_engine(settings.get_async_url(), **engine_kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to the engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """
    Create all tables.

    Note:
        Schema management is expected to happen outside the app; this is for
        local development.
    """
    logger.info("Initializing database tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized successfully")


async def close_db(engine: AsyncEngine) -> None:
    """Dispose of the engine's connection pool. Call on application shutdown."""
    logger.info("Closing database connections...")
    await engine.dispose()
    logger.info("Database connections closed")
