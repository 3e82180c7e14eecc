"""
Database connection management with the SQLAlchemy async engine.

PostgreSQL (asyncpg) is the production target. SQLite (aiosqlite) is
supported for tests and local development; on SQLite every transaction is
opened with ``BEGIN IMMEDIATE`` so concurrent writers queue on the
database lock the same way ``SELECT ... FOR UPDATE`` queues them on
PostgreSQL.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from motorshop.core.config import get_settings
from motorshop.core.logging import get_logger

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _convert_database_url_to_async(url: str) -> str:
    """
    Convert a plain PostgreSQL URL to the asyncpg driver form.
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _enable_sqlite_write_locking(engine: AsyncEngine) -> None:
    """
    Take the SQLite write lock when a transaction begins.

    The driver's implicit BEGIN is disabled and replaced by
    BEGIN IMMEDIATE, so a second writer waits for the first to commit
    instead of failing mid-transaction on lock upgrade.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    Args:
        database_url: Override for ``settings.database_url``

    Returns:
        Configured async SQLAlchemy engine
    """
    settings = get_settings()
    url = _convert_database_url_to_async(database_url or settings.database_url)

    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            echo=settings.debug,
            connect_args={"timeout": 30},
        )
        _enable_sqlite_write_locking(engine)
        logger.info("SQLite database engine created", url=url)
        return engine

    pool_options = (
        {"poolclass": NullPool}
        if settings.is_test
        else {
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_recycle": 3600,
        }
    )

    engine = create_async_engine(
        url,
        echo=settings.debug,
        pool_pre_ping=True,
        connect_args={
            "server_settings": {"application_name": settings.app_name},
            "command_timeout": 60,
            "timeout": 10,
        },
        **pool_options,
    )

    logger.info(
        "Database engine created",
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        environment=settings.environment,
    )

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Build a session factory bound to ``engine``.

    Sessions keep loaded state after commit so operation results stay
    readable once their transaction has closed.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_engine() -> AsyncEngine:
    """
    Get or create the process-wide async engine.

    Raises:
        RuntimeError: If engine initialization fails
    """
    global _engine

    if _engine is None:
        try:
            _engine = create_engine()
        except Exception as e:
            logger.error(
                "Failed to create database engine",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RuntimeError(f"Database engine initialization failed: {e}") from e

    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the process-wide session factory.
    """
    global _session_factory

    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
        logger.info("Database session factory created")

    return _session_factory


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a session that commits on success and rolls back on error.

    Used by worker tasks; lifecycle operations manage their own
    transactions through the session factory.
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.error(
            "Database session rolled back",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await session.close()


async def check_database_health() -> bool:
    """
    Run a trivial query against the database.

    Returns:
        True if the database answered, False otherwise
    """
    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as e:
        logger.warning(
            "Database health check failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        return False


async def close_database_connections() -> None:
    """
    Dispose of the engine and forget the session factory.
    """
    global _engine, _session_factory

    if _engine is not None:
        try:
            await _engine.dispose()
            logger.info("Database connections closed and engine disposed")
        finally:
            _engine = None
            _session_factory = None
