"""
Database session configuration.

Async SQLAlchemy engine, the session factory shared by request handlers
and the background scheduler, and the declarative base for models.
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from parcelhop.app.core.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    future=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()


def get_session_factory() -> async_sessionmaker:
    """
    FastAPI dependency returning the session factory.

    Background work (notification dispatch, sweeps) opens its own
    sessions from this factory instead of sharing the request session.
    """
    return AsyncSessionLocal


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
