"""Async engine, session factory and declarative base (SQLAlchemy 2.0 + asyncpg)."""
from collections.abc import AsyncGenerator

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from portfolio_ai.config import get_settings

settings = get_settings()

# Constraint names stay stable across autogenerated migrations.
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
}

# No connection is opened until the first query.
engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    pool_pre_ping=True,
)

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=NAMING_CONVENTION)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session for direct queries (readiness probe). Repositories open their own."""
    async with async_session_factory() as session:
        yield session


async def dispose_engine() -> None:
    await engine.dispose()
