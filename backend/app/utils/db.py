"""Database connection and session management."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from functools import wraps
import logging
from typing import Any, TypeVar

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import Settings, get_settings
from app.utils.errors import StoreUnavailableError

settings = get_settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")

# Driver-level failures that mean "the database is not reachable right now"
TRANSIENT_DB_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


def build_engine(config: Settings) -> AsyncEngine:
    """Create an async engine for the configured URL.

    SQLite (tests, local dev) does not accept queue pool sizing.
    """
    options: dict[str, Any] = {"echo": config.db_echo, "future": True}
    if not config.is_sqlite:
        options.update(
            pool_size=config.db_pool_size,
            max_overflow=config.db_max_overflow,
            pool_recycle=config.db_pool_recycle,
            pool_pre_ping=True,
        )
    return create_async_engine(config.database_url, **options)


engine = build_engine(settings)

# Session factory
async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database session.

    Commits when the request handler returns, rolls back on any error.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def translate_store_errors() -> AsyncGenerator[None, None]:
    """Re-raise driver connectivity failures as StoreUnavailableError."""
    try:
        yield
    except TRANSIENT_DB_ERRORS as e:
        logger.warning(f"Reward store unavailable: {type(e).__name__}: {e}")
        raise StoreUnavailableError() from e


def retry_on_store_unavailable(
    func: Callable[..., Awaitable[T]],
) -> Callable[..., Awaitable[T]]:
    """Retry a read-only coroutine on StoreUnavailableError.

    Only for service methods that do not write: the owning session
    (``self.session``) is rolled back before the next attempt.
    """

    @wraps(func)
    @retry(
        stop=stop_after_attempt(settings.store_retry_attempts),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
        retry=retry_if_exception_type(StoreUnavailableError),
        reraise=True,
    )
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        try:
            return await func(*args, **kwargs)
        except StoreUnavailableError:
            session = getattr(args[0], "session", None) if args else None
            if session is not None:
                await session.rollback()
            raise

    return wrapper


async def init_db() -> None:
    """Verify connectivity and optionally create tables."""
    # Import models so every table is registered on the metadata
    from app.models import Base

    async with engine.begin() as conn:
        if settings.db_auto_create:
            await conn.run_sync(Base.metadata.create_all)
        else:
            await conn.run_sync(lambda _: None)


async def close_db() -> None:
    """Close database connection pool."""
    await engine.dispose()
