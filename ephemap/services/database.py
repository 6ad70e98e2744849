"""Async database session management.

This module provides the async SQLAlchemy engine and session
factory for non-blocking database operations.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ephemap.core.config import settings
from ephemap.models import Base


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, pooling only for server databases.

    Args:
        url: Async SQLAlchemy URL.
        echo: Log every SQL statement.

    Returns:
        Configured AsyncEngine.
    """
    options: Dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if not url.startswith("sqlite"):
        options.update(pool_size=5, max_overflow=10)
    return create_async_engine(url, **options)


engine = build_engine(settings.SQLALCHEMY_DATABASE_URI, echo=settings.DEBUG)

# Session factory for creating async sessions
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create missing tables (development and tests; use Alembic in production)."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session.

    This is a FastAPI dependency that yields an async session and
    rolls back whatever the request left uncommitted. The store
    commits its own units of work so change events can follow them.

    Yields:
        AsyncSession: SQLAlchemy async session for database operations.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
