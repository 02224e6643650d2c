"""
Database engine and session factory.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from mlm_engine.config.settings import settings


def create_engine(database_url: str | None = None, **kwargs) -> AsyncEngine:
    """Create async engine from settings (or an explicit URL)."""
    return create_async_engine(
        database_url or settings.database_url,
        echo=settings.database_echo,
        **kwargs,
    )


def create_session_maker(
    engine: AsyncEngine,
) -> async_sessionmaker[AsyncSession]:
    """Create session maker bound to engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
