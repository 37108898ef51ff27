"""API dependencies for authentication and common utilities."""

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from app.logging_config import bind_context
from app.models.user import User
from app.services.user import UserService
from app.utils.db import get_db
from app.utils.redis_client import get_redis
from app.utils.security import TokenError, verify_access_token

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


def _auth_error(code: str, message: str, status_code: int = status.HTTP_401_UNAUTHORIZED) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": code,
                "message": message,
                "details": {},
            }
        },
        headers=headers,
    )


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get current user from the bearer token (required auth).

    Raises:
        HTTPException: If not authenticated, token invalid, or account inactive
    """
    if not credentials:
        raise _auth_error("AUTH_REQUIRED", "Authentication required")

    try:
        payload = verify_access_token(credentials.credentials)
    except TokenError as e:
        raise _auth_error(e.code, e.message)

    if not payload or not payload.get("sub"):
        raise _auth_error("AUTH_INVALID_TOKEN", "Invalid or expired token")

    user = await UserService(db).get_user(payload["sub"])
    if not user:
        raise _auth_error("AUTH_USER_NOT_FOUND", "User not found")

    if not user.is_active:
        raise _auth_error(
            "AUTH_ACCOUNT_INACTIVE",
            f"Account is {user.status}",
            status_code=status.HTTP_403_FORBIDDEN,
        )

    bind_context(user_id=user.id)
    return user


# Type aliases for cleaner annotations
CurrentUser = Annotated[User, Depends(get_current_user)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
RedisClient = Annotated[Redis | None, Depends(get_redis)]
