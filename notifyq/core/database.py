"""
Database engine and session factory
Services own their transactions; sessions handed out here never auto-commit
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator, Dict, Any
import logging

from .config import settings

logger = logging.getLogger(__name__)

def engine_options(url: str) -> Dict[str, Any]:
    """Pool settings per backend; SQLite gets a connection per checkout"""
    if url.startswith("sqlite"):
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,
        "pool_timeout": settings.DATABASE_POOL_TIMEOUT,
        "pool_pre_ping": True,
    }

engine = create_async_engine(
    settings.database_url_async,
    echo=settings.DATABASE_ECHO,
    **engine_options(settings.database_url_async)
)

# Claimed items are read after commit, so attributes must not expire
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; anything left uncommitted is rolled back on close"""
    async with AsyncSessionLocal() as session:
        yield session

def get_session_factory() -> async_sessionmaker:
    """Session factory handed to the dispatcher and the Celery tasks"""
    return AsyncSessionLocal

async def init_db() -> None:
    """Create missing tables"""
    from notifyq.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Database tables ready ({engine.url.get_backend_name()})")

async def close_db() -> None:
    """Dispose pooled connections"""
    await engine.dispose()
    logger.info("Database connections closed")
