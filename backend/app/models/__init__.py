"""Database models."""

from app.models.base import Base, TimestampMixin, UUIDMixin
from app.models.reward import (
    DAILY_LIMITS,
    EARNING_POLICIES,
    STREAK_BONUSES,
    ReferenceKind,
    RewardActionType,
    RewardPolicy,
    RewardRecord,
    RewardStatus,
)
from app.models.user import User, UserStatus

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # User
    "User",
    "UserStatus",
    # Reward ledger
    "RewardRecord",
    "RewardActionType",
    "RewardStatus",
    "ReferenceKind",
    "RewardPolicy",
    "EARNING_POLICIES",
    "DAILY_LIMITS",
    "STREAK_BONUSES",
]
