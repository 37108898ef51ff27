"""User directory model."""

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from app.models.reward import RewardRecord


class UserStatus(str, Enum):
    """User account status."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class User(Base, UUIDMixin, TimestampMixin):
    """User account as seen by the reward ledger.

    Accounts are owned by the account service; this table mirrors the fields
    the ledger needs (existence, status, display name for leaderboards).
    Balances are always derived from reward records.
    """

    __tablename__ = "users"

    nickname: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    avatar_url: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=UserStatus.ACTIVE.value,
        nullable=False,
    )

    reward_records: Mapped[list["RewardRecord"]] = relationship(
        "RewardRecord",
        back_populates="user",
        lazy="noload",
    )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    def __repr__(self) -> str:
        return f"<User {self.nickname}>"
