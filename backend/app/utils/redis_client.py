"""Redis client and per-user distributed locks."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import logging
from uuid import uuid4

from redis.asyncio import ConnectionPool, Redis

from app.config import get_settings
from app.utils.errors import LockNotAcquiredError

settings = get_settings()
logger = logging.getLogger(__name__)

# Global Redis connection pool and client instance
redis_pool: ConnectionPool | None = None
redis_client: Redis | None = None

# Release only if the lock still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


async def init_redis() -> Redis | None:
    """Initialize the Redis connection pool if REDIS_URL is configured."""
    global redis_pool, redis_client

    if not settings.redis_url:
        logger.info("REDIS_URL not set, distributed ledger locks disabled")
        return None

    redis_pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        retry_on_timeout=True,
        encoding="utf-8",
        decode_responses=True,
    )
    redis_client = Redis(connection_pool=redis_pool)

    # Test connection
    await redis_client.ping()
    return redis_client


async def close_redis() -> None:
    """Close Redis connection and pool."""
    global redis_pool, redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None


def get_redis() -> Redis | None:
    """Return the shared client, or None when Redis is not configured."""
    return redis_client


class UserLock:
    """Short-lived per-user lock (SET NX EX) shared by all API workers.

    Serializes balance-changing operations of one user across processes.
    A ``None`` client turns the lock into a no-op so single-process
    deployments and tests rely on database transactions alone.
    """

    KEY_PREFIX = "ledger:lock:"

    def __init__(self, client: Redis | None, ttl: int | None = None) -> None:
        self.client = client
        self.ttl = ttl or settings.transfer_lock_ttl

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncGenerator[None, None]:
        if self.client is None:
            yield
            return

        key = f"{self.KEY_PREFIX}{user_id}"
        token = str(uuid4())
        acquired = await self.client.set(key, token, nx=True, ex=self.ttl)
        if not acquired:
            raise LockNotAcquiredError(user_id)

        try:
            yield
        finally:
            await self.client.eval(_RELEASE_SCRIPT, 1, key, token)
