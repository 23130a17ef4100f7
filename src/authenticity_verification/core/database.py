"""
Database configuration and session management.
"""

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class Database:
    """
    Owns the async engine and session factory for one process.

    Constructed once at application startup and handed to the repositories,
    so nothing in the request path reaches for module-level connection state.
    """

    def __init__(self, database_url: str, echo: bool = False):
        engine_options = {"echo": echo, "pool_pre_ping": True}
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # In-memory databases live on a single connection
            engine_options["poolclass"] = StaticPool
        elif not database_url.startswith("sqlite"):
            engine_options.update(pool_size=20, max_overflow=30, pool_recycle=3600, pool_timeout=30)

        self.database_url = database_url
        self.engine: AsyncEngine = create_async_engine(database_url, **engine_options)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )
        logger.info("Database engine created", dialect=self.engine.dialect.name)

    async def create_schema(self) -> None:
        """Create all tables registered on the declarative base."""
        # Register models on Base.metadata
        from ..models import database  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

        logger.info("Database schema initialized")

    async def check_connection(self) -> bool:
        """
        Check if database connection is working.

        Returns:
            bool: True if connection is successful, False otherwise
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                row = result.fetchone()
                if row and row[0] == 1:
                    logger.debug("Database connection check successful")
                    return True
                logger.warning("Database connection check returned unexpected result")
                return False
        except Exception as e:
            logger.error("Database connection check failed", error=str(e), error_type=type(e).__name__)
            return False

    async def close(self) -> None:
        """Close database connections."""
        await self.engine.dispose()
        logger.info("Database connections closed")

