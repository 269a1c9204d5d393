"""
Async engine and session factory for the medinews database.

One PostgreSQL database holds the pre-embedded chunk pool (pgvector) next to
the published articles, the consumed-chunk set and the generation counters.
SQLite via aiosqlite is accepted for local runs and tests.
"""
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator
import logging

from medinews.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    future=True,
    pool_pre_ping=True,
    poolclass=NullPool,
)

# expire_on_commit=False: articles returned by the store are read after commit
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a request-scoped session.

    Committed when the request handler returns, rolled back on error.

    Example:
        @router.get("/")
        async def health_check(db: AsyncSession = Depends(get_db)):
            await db.execute(text("SELECT 1"))
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error(f"Database session error: {e}")
            raise
        finally:
            await session.close()


async def init_db() -> None:
    """
    Create the chunks, articles, used_chunks and generation_stats tables if
    missing.  On PostgreSQL the pgvector extension is enabled first so the
    chunk embedding column can be created.
    """
    try:
        async with engine.begin() as conn:
            from medinews.models import database_models  # noqa: F401

            if conn.dialect.name == "postgresql":
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                logger.info("pgvector extension created/verified")

            await conn.run_sync(Base.metadata.create_all)
            logger.info("medinews tables created/verified")

    except Exception as e:
        logger.error(f"Error initializing database: {e}")
        raise


async def close_db() -> None:
    """Dispose of the engine on application shutdown."""
    try:
        await engine.dispose()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error closing database: {e}")
        raise
