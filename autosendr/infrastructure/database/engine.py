"""
Async database engine, session factory, and ORM base.

  • Every DB call goes through AsyncSession.
  • Sessions are request-scoped via FastAPI's Depends(get_db_session); the
    factory itself lives on app.state, built once in the lifespan.
"""

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Shared declarative base for all SQLAlchemy models."""


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    # pool_pre_ping: drop stale connections before reuse
    kwargs = {"echo": echo}
    if not database_url.startswith("sqlite"):
        kwargs["pool_pre_ping"] = True
    return create_async_engine(database_url, **kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,  # avoid lazy-load issues after commit
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create missing tables. Existing tables are left untouched."""
    # Register the mapped classes on Base.metadata.
    from autosendr.infrastructure.database import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a scoped async session for one request.

    The session is committed by the repository; this generator only
    guarantees cleanup on exit.
    """
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()
