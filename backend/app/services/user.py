"""User directory lookups used by the ledger."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.utils.db import translate_store_errors
from app.utils.errors import UserNotFoundError


class UserService:
    """Resolves user ids to accounts."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: str) -> User | None:
        """Get user by ID.

        Args:
            user_id: User ID

        Returns:
            User object or None
        """
        async with translate_store_errors():
            result = await self.session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def require_user(self, user_id: str, *, for_update: bool = False) -> User:
        """Get an existing user or raise UserNotFoundError.

        Args:
            user_id: User ID
            for_update: Lock the user row until the transaction ends

        Raises:
            UserNotFoundError: If no such user exists
        """
        query = select(User).where(User.id == user_id)
        if for_update:
            query = query.with_for_update()

        async with translate_store_errors():
            result = await self.session.execute(query)
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(user_id)
        return user

    async def require_user_by_nickname(self, nickname: str) -> User:
        """Resolve a nickname to an existing user.

        Raises:
            UserNotFoundError: If no user has this nickname
        """
        async with translate_store_errors():
            result = await self.session.execute(select(User).where(User.nickname == nickname))
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(nickname=nickname)
        return user
