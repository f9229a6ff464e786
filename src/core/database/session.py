import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from src.core.config import settings

logger = logging.getLogger(__name__)

if not settings.database_url:
    raise ValueError("DATABASE_URL environment variable is not set")

# Hide credentials in logs
_url_for_log = (
    settings.database_url.split("@")[1] if "@" in settings.database_url else settings.database_url[:30]
)
logger.info("Connecting to database: ...@%s", _url_for_log)


def enable_sqlite_immediate_transactions(engine: AsyncEngine) -> AsyncEngine:
    """
    Make every SQLite transaction start with BEGIN IMMEDIATE.

    SQLite has no SELECT ... FOR UPDATE. Taking the write lock when the
    transaction opens gives the same read-validate-write exclusivity the
    ledger gets from row locks on PostgreSQL.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
)
if settings.is_sqlite:
    enable_sqlite_immediate_transactions(engine)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a block as one unit of work: commit on success, roll back on any
    exception, including task cancellation.
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise
