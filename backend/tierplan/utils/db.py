"""Database connection, session management and transaction helpers."""

import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from sqlalchemy import event, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from tierplan.config import get_settings
from tierplan.utils.errors import TransactionError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Substrings of driver errors that mean "try again", not "bad request"
TRANSIENT_ERROR_MARKERS = (
    "deadlock detected",
    "could not serialize access",
    "canceling statement due to statement timeout",
    "canceling statement due to lock timeout",
    "lock not available",
    "database is locked",
)


def create_engine_for(url: str, **overrides: Any) -> AsyncEngine:
    """Create an async engine with pool options suited to the backend."""
    settings = get_settings()
    options: dict[str, Any] = {"echo": settings.app_debug, "future": True}
    if not url.startswith("sqlite") and "poolclass" not in overrides:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=True,
        )
    options.update(overrides)
    async_engine = create_async_engine(url, **options)
    if url.startswith("sqlite"):
        _serialize_sqlite_writers(async_engine)
    return async_engine


def _serialize_sqlite_writers(async_engine: AsyncEngine) -> None:
    """Make every SQLite transaction take the write lock up front.

    Concurrent transactions then queue on the busy timeout instead of
    failing lock upgrades halfway through.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory used by the app and by tests."""
    return async_sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = create_engine_for(get_settings().database_url)
async_session_factory = create_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database session.

    Usage:
        @app.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Test the connection pool at startup."""
    async with engine.begin() as conn:
        await conn.run_sync(lambda _: None)


async def close_db() -> None:
    """Close database connection pool."""
    await engine.dispose()


# =============================================================================
# Transaction helpers
# =============================================================================


def dialect_name(session: AsyncSession) -> str:
    return session.get_bind().dialect.name


def is_transient_error(exc: BaseException) -> bool:
    """Whether a driver error is a timeout/deadlock/serialization failure."""
    if not isinstance(exc, DBAPIError):
        return False
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in message for marker in TRANSIENT_ERROR_MARKERS)


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Run a unit of work that commits on success and rolls back on any error.

    On PostgreSQL the statement and lock timeouts are bounded for the duration
    of the transaction. Transient driver errors surface as TransactionError.
    """
    timeout_ms = int(get_settings().db_transaction_timeout_ms)
    try:
        if dialect_name(session) == "postgresql":
            await session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
            await session.execute(text(f"SET LOCAL lock_timeout = {timeout_ms}"))
        yield session
        await session.commit()
    except DBAPIError as e:
        await session.rollback()
        if is_transient_error(e):
            logger.warning(f"Transient transaction failure: {type(e.orig).__name__}")
            raise TransactionError() from e
        raise
    except Exception:
        await session.rollback()
        raise


async def retry_transient(operation: Callable[[], Awaitable[T]]) -> T:
    """Retry an idempotent operation once after a TransactionError."""
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(2),
        wait=wait_fixed(0.05),
        retry=retry_if_exception_type(TransactionError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await operation()
    raise AssertionError("unreachable")


def insert_ignoring_conflicts(
    session: AsyncSession,
    model: type,
    values: dict[str, Any],
    index_elements: list[str],
):
    """INSERT ... ON CONFLICT DO NOTHING for the session's dialect.

    The caller inspects ``rowcount`` on the result; 0 means the row existed.
    """
    name = dialect_name(session)
    if name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif name == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"Unsupported dialect for insert-or-ignore: {name}")
    return (
        insert(model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=index_elements)
    )
