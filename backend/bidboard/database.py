"""
BidBoard Backend - Database Session Management
===============================================

What:  Async SQLAlchemy engine, session factory, declarative base and the
       FastAPI session dependency.
How:   Creates an async engine with connection pooling, provides a session
       dependency that commits on success and rolls back on error.
Who:   Used by route handlers via FastAPI's dependency injection system and by
       the repository layer.
When:  Engine is created at module import; sessions are created per-request.

Transactions:
    One request = one AsyncSession = one unit of work. The lifecycle
    coordinator commits explicitly before it dispatches notifications; the
    dependency's trailing commit is then a no-op.

    PostgreSQL runs at READ COMMITTED. A conditional UPDATE that waits on a
    row lock held by another transaction re-evaluates its WHERE clause after
    that transaction commits, which is what the accept claim relies on.

    SQLite (development and tests) gets `BEGIN IMMEDIATE` so a transaction
    takes the write lock up front and concurrent writers queue on the busy
    timeout instead of failing with "database is locked" on lock upgrade.
"""

from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from bidboard.config import settings


def _enable_sqlite_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Replace pysqlite's deferred BEGIN with BEGIN IMMEDIATE.

    The driver's own transaction handling is switched off on connect and
    SQLAlchemy emits the BEGIN itself on every transaction start.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str) -> AsyncEngine:
    """
    Create an async engine configured for the given URL.

    PostgreSQL gets the pooled configuration from settings; SQLite gets a
    busy timeout and immediate transactions.
    """
    if database_url.startswith("sqlite"):
        sqlite_engine = create_async_engine(
            database_url,
            connect_args={"timeout": settings.sqlite_busy_timeout},
            echo=settings.log_level == "DEBUG",
        )
        _enable_sqlite_immediate_transactions(sqlite_engine)
        return sqlite_engine

    return create_async_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        pool_recycle=3600,
        echo=settings.log_level == "DEBUG",
    )


# ── Engine Configuration ──────────────────────────────────────────────────
engine = build_engine(settings.database_url)

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: attributes stay readable after the coordinator's
# explicit commit without another round trip
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Registers every model with one metadata object (used by Alembic and by
    the test suite's create_all).
    """
    pass


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler
        3. On success: commits whatever is still pending
        4. On error: rolls back
        5. Always: closes the session (returns connection to pool)
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """Closes all pooled connections. Called from the lifespan shutdown."""
    await engine.dispose()
