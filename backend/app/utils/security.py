"""Bearer token verification.

Tokens are issued by the account service and share its HS256 secret. This
service only verifies them; ``create_access_token`` exists for local tooling
and tests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTClaimsError, JWTError

from app.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class TokenError(Exception):
    """Token validation error with specific code."""

    def __init__(self, code: str, message: str):
        self.code = code
        self.message = message
        super().__init__(message)


def create_access_token(
    user_id: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token for ``user_id``."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.jwt_access_token_expire_minutes)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "type": "access",
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str) -> dict[str, Any] | None:
    """Verify an access token and return its payload.

    Args:
        token: JWT access token

    Returns:
        Token payload if valid, None otherwise

    Raises:
        TokenError: If the token has expired
    """
    if not token:
        return None

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require_exp": True, "require_sub": True, "require_iat": True},
        )
    except ExpiredSignatureError:
        logger.debug("Access token verification failed: token expired")
        raise TokenError("AUTH_TOKEN_EXPIRED", "Token has expired")
    except JWTClaimsError as e:
        logger.debug(f"Access token verification failed: invalid claims - {e}")
        return None
    except JWTError as e:
        logger.warning(f"Access token verification failed: {type(e).__name__}")
        return None

    if payload.get("type") != "access":
        logger.debug("Access token verification failed: wrong token type")
        return None

    return payload
