"""Async SQLAlchemy engine and session factory for the bridge state."""

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the form SQLite hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for a database URL.

    In-memory SQLite needs a single shared connection, otherwise every session
    would see its own empty database.

    Args:
        database_url (str): SQLAlchemy URL (e.g. "sqlite+aiosqlite:///./data/policy_rag.db").
        echo (bool): Log all SQL statements.

    Returns:
        AsyncEngine: The engine.
    """
    if ":memory:" in database_url:
        return create_async_engine(database_url, echo=echo, poolclass=StaticPool)
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


def create_sessionmaker(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create all state tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
