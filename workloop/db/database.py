"""
Database engine and session factory helpers.

Automatically adapts to SQLite (local) or PostgreSQL (production). The
engine is created once at process start by the container and shared by all
stores; each store operation opens its own short-lived session.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

# Declarative Base class for ORM models
Base = declarative_base()

SessionFactory = async_sessionmaker[AsyncSession]


def normalize_database_url(url: str) -> str:
    """Ensure SQLite URLs use the async driver."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


def create_engine(database_url: str, pooled: bool = True) -> AsyncEngine:
    """
    Create the async engine for *database_url*.

    Dramatiq workers run every job under a fresh event loop, so they ask for
    an unpooled engine: pooled connections are bound to the loop that opened them.
    """
    url = normalize_database_url(database_url)
    is_sqlite = url.startswith("sqlite")

    kwargs = {}
    if not pooled:
        kwargs["poolclass"] = NullPool
    elif not is_sqlite:
        kwargs["pool_pre_ping"] = True

    engine = create_async_engine(
        url,
        echo=False,
        connect_args={"timeout": 15} if is_sqlite else {},
        **kwargs,
    )

    if is_sqlite:
        # SQLite enforces foreign keys only when asked to.
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):  # pragma: no cover - driver hook
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


def is_unique_violation(exc: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed", PostgreSQL: "violates unique constraint"
    return "unique" in str(exc.orig).lower()


def create_session_factory(engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    from workloop.db import tables  # noqa: F401  (registers the models)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
