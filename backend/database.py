"""
Database engine and session management for the Alternus checkout service.

Uses SQLAlchemy async engine with aiosqlite for non-blocking DB operations
inside FastAPI. Tables are auto-created on server startup via init_db().

SQLite transactions are opened with BEGIN IMMEDIATE so that concurrent
handlers (browser request + processor webhook) queue on the write lock
instead of failing with "database is locked" half-way through a
compare-and-swap.
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


def configure_sqlite_locking(async_engine: AsyncEngine) -> None:
    """
    Take over transaction control from the sqlite3 driver.

    pysqlite defers BEGIN until the first DML statement, which lets two
    connections both read and then deadlock when upgrading to a write lock.
    """
    if async_engine.dialect.name != "sqlite":
        return

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# ── Engine ──────────────────────────────────────────────────────────

_async_url = to_async_url(settings.database_url)

# Writers queue on the lock; no transaction is held across a processor call
_connect_args = {"timeout": 30} if _async_url.startswith("sqlite") else {}

engine = create_async_engine(
    _async_url,
    echo=False,
    future=True,
    connect_args=_connect_args,
)
configure_sqlite_locking(engine)

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
    """FastAPI dependency - yields an async session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
