"""
Database engine and session management for the storefront backend.

Uses SQLAlchemy async engine (aiosqlite by default) for non-blocking DB
operations inside FastAPI. Tables are auto-created on server startup via
init_db().

SQLite has no row locks, so every SQLite transaction is opened with
BEGIN IMMEDIATE: writers are serialised and a contending writer waits up to
the busy timeout instead of reading pre-decrement stock.
"""
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


def to_async_url(url: str) -> str:
    """Convert sqlite:///... → sqlite+aiosqlite:///... for the async driver."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


def enable_sqlite_immediate_transactions(engine: AsyncEngine) -> None:
    """
    Make every transaction on a SQLite engine start with BEGIN IMMEDIATE.

    The driver's own implicit BEGIN is disabled and replaced, so the write
    lock is taken before the first read of the transaction.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Create an async engine; SQLite engines get a busy timeout and IMMEDIATE transactions."""
    async_url = to_async_url(url)
    is_sqlite = async_url.startswith("sqlite")
    if is_sqlite:
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("timeout", settings.sqlite_busy_timeout_seconds)
        kwargs["connect_args"] = connect_args

    new_engine = create_async_engine(async_url, future=True, **kwargs)
    if is_sqlite:
        enable_sqlite_immediate_transactions(new_engine)
    return new_engine


# ── Engine ──────────────────────────────────────────────────────────

engine = build_engine(
    settings.database_url,
    echo=False,
)

async_session = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


# ── Helpers ─────────────────────────────────────────────────────────

async def init_db() -> None:
    """Create all tables. Called once on server startup."""
    # Import models so Base.metadata knows about them
    import db_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created (or already exist)")


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields an async session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """FastAPI dependency — the session factory, for work that opens its own sessions."""
    return async_session
