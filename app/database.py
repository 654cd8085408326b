"""
Database connection and session management for Postgres.
Uses asyncpg with SQLAlchemy async.

The engine and session factory live in the ``Database`` registry. They are
created once by the application lifespan (``Database.init``), handed to
request handlers through ``get_db`` and disposed by ``Database.close``.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def get_database_url() -> str:
    """Get database URL without sslmode and with proper params."""
    url = settings.database_url
    if not url:
        return ""
    # Remove sslmode from URL (asyncpg doesn't support it as query param)
    if "?sslmode=" in url:
        url = url.split("?sslmode=")[0]
    elif "&sslmode=" in url:
        url = url.replace("&sslmode=require", "").replace("&sslmode=disable", "")
    return url


class Database:
    """Process-wide engine and session factory."""

    _engine: Optional[AsyncEngine] = None
    _session_maker: Optional[async_sessionmaker] = None

    @classmethod
    def init(cls, url: Optional[str] = None, **engine_kwargs) -> Optional[AsyncEngine]:
        """Create the engine once. Returns None if no URL is configured."""
        if cls._engine is not None:
            return cls._engine

        db_url = url or get_database_url()
        if not db_url:
            logger.warning("DATABASE_URL not configured. Database features disabled.")
            return None

        if not engine_kwargs and db_url.startswith("postgresql"):
            engine_kwargs = {
                "pool_pre_ping": True,
                "pool_size": 5,
                "max_overflow": 10,
            }
            if settings.database_ssl:
                engine_kwargs["connect_args"] = {"ssl": True}

        cls._engine = create_async_engine(db_url, echo=settings.debug, **engine_kwargs)
        cls._session_maker = async_sessionmaker(
            cls._engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info("Database engine initialized")
        return cls._engine

    @classmethod
    def session_maker(cls) -> async_sessionmaker:
        if cls._session_maker is None:
            raise RuntimeError("Database not configured. Set DATABASE_URL environment variable.")
        return cls._session_maker

    @classmethod
    def engine(cls) -> Optional[AsyncEngine]:
        return cls._engine

    @classmethod
    async def close(cls) -> None:
        """Dispose of the engine and forget the session factory."""
        if cls._engine is not None:
            await cls._engine.dispose()
            logger.info("Database engine disposed")
        cls._engine = None
        cls._session_maker = None


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with Database.session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for database session (for use outside FastAPI)."""
    async with Database.session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create tables for all registered models."""
    engine = Database.engine()
    if not engine:
        logger.info("Skipping database initialization - DATABASE_URL not configured")
        return

    # Register models on the metadata
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
