"""Async database engine, session factory and declarative base."""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from staybook.core.config import get_settings

settings = get_settings()


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


def _engine_kwargs(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        # In-memory SQLite lives in one connection, so every session shares it
        # and units of work are effectively single-request
        if ":memory:" in database_url or "mode=memory" in database_url:
            return {
                "poolclass": StaticPool,
                "connect_args": {"check_same_thread": False},
            }
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    **_engine_kwargs(settings.database_url),
)

async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with async_session_factory() as session:
        yield session


async def create_all() -> None:
    """Create tables directly (debug/SQLite only; production uses Alembic)."""
    import staybook.models  # noqa: F401  registers mappers

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
