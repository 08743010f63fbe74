"""Database engine and session factory for the paste metadata store.

This module provides SQLAlchemy async engine setup, session factories and
schema lifecycle operations. PostgreSQL (asyncpg) is the production backend;
any SQLAlchemy async URL works, which the tests use with aiosqlite.

Flow Diagram — Database Lifecycle
=================================
::
    ┌─────────────┐
    │  lifespan() │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │create_engine│
    │ (settings)  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ init_db()   │
    │ create_all  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ session per │
    │ store call  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ close_db()  │
    │ (shutdown)  │
    └─────────────┘

How to Use
===========
**Step 1 — Create on startup**::
    engine = create_engine(settings)
    await init_db(engine)

**Step 2 — Hand the session factory to the store**::
    store = SqlMetadataStore(create_session_factory(engine))

**Step 3 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- Engines are created by the application lifespan, never at import time.
- Connection pooling is configured for production workloads on PostgreSQL.
- Tables are created automatically on application startup.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_engine():  Build the async engine from settings.
    create_session_factory():  Build the session factory for an engine.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import Settings

__all__ = ["Base", "create_engine", "create_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def create_engine(settings: Settings) -> AsyncEngine:
    kwargs: dict = {
        "echo": False,
        "pool_pre_ping": True,
    }
    if not settings.DATABASE_URL.startswith("sqlite"):
        kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
        kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
    return create_async_engine(settings.DATABASE_URL, **kwargs)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Import registers the tables on Base.metadata.
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
