"""Utility modules."""

from app.utils.db import engine, get_db
from app.utils.redis_client import UserLock, get_redis

__all__ = [
    "engine",
    "get_db",
    "get_redis",
    "UserLock",
]
