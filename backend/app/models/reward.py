"""Reward ledger models and earning policy tables.

- RewardActionType: what a reward was granted (or spent) for
- RewardStatus: lifecycle of a record; only COMPLETED counts toward balance
- RewardRecord: one signed ledger entry, immutable apart from status
- EARNING_POLICIES / DAILY_LIMITS / STREAK_BONUSES: reward tables
"""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDMixin
from app.utils.clock import as_utc

if TYPE_CHECKING:
    from app.models.user import User


class RewardActionType(str, Enum):
    """Ledger entry categories."""

    # Content
    POST_CREATE = "post_create"
    POST_COMMENT = "post_comment"
    POST_LIKE = "post_like"
    POST_SHARE = "post_share"
    BLOG_CREATE = "blog_create"
    NFT_MINT = "nft_mint"
    AI_CONTENT_GENERATION = "ai_content_generation"

    # Engagement
    DAILY_CHECKIN = "daily_checkin"
    WEEK_STREAK = "week_streak"
    MONTH_STREAK = "month_streak"
    FIRST_POST = "first_post"

    # Account
    REFERRAL = "referral"
    SIGNUP = "signup"
    PROFILE_COMPLETE = "profile_complete"
    EMAIL_VERIFY = "email_verify"

    # Wallet
    TRANSFER = "transfer"
    OTHER = "other"


class RewardStatus(str, Enum):
    """Record status. Only completed records count toward balance."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReferenceKind(str, Enum):
    """What a record's reference_id points at."""

    POST = "post"
    BLOG = "blog"
    COMMENT = "comment"
    NFT = "nft"
    USER = "user"
    DAY = "day"
    ACHIEVEMENT = "achievement"
    OTHER = "other"


# pending is the only non-terminal status
ALLOWED_STATUS_TRANSITIONS: dict[RewardStatus, frozenset[RewardStatus]] = {
    RewardStatus.PENDING: frozenset(
        {RewardStatus.COMPLETED, RewardStatus.FAILED, RewardStatus.CANCELLED}
    ),
    RewardStatus.COMPLETED: frozenset(),
    RewardStatus.FAILED: frozenset(),
    RewardStatus.CANCELLED: frozenset(),
}


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class RewardRecord(Base, UUIDMixin, TimestampMixin):
    """Signed ledger entry.

    Positive amounts are credits, negative amounts debits. ``amount``,
    ``action_type``, ``reference_id`` and ``created_at`` are written once;
    ``status`` may leave PENDING exactly once.
    """

    __tablename__ = "reward_records"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="Signed token amount (+credit/-debit)",
    )
    action_type: Mapped[RewardActionType] = mapped_column(
        SQLEnum(
            RewardActionType,
            name="reward_action_type",
            native_enum=False,
            length=32,
            values_callable=_enum_values,
        ),
        nullable=False,
        index=True,
    )
    reason_text: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )
    reference_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="Idempotency key / triggering entity id",
    )
    reference_kind: Mapped[ReferenceKind | None] = mapped_column(
        SQLEnum(
            ReferenceKind,
            name="reward_reference_kind",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        nullable=True,
    )
    transfer_id: Mapped[str | None] = mapped_column(
        String(36),
        nullable=True,
        index=True,
        comment="Shared by the debit and credit legs of one transfer",
    )
    status: Mapped[RewardStatus] = mapped_column(
        SQLEnum(
            RewardStatus,
            name="reward_status",
            native_enum=False,
            length=16,
            values_callable=_enum_values,
        ),
        default=RewardStatus.COMPLETED,
        nullable=False,
        index=True,
    )
    integrity_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 over the write-once fields",
    )

    user: Mapped["User"] = relationship("User", back_populates="reward_records")

    __table_args__ = (
        CheckConstraint("amount <> 0", name="ck_reward_amount_nonzero"),
        # At most one reward per (user, action, reference). Transfer legs
        # reference the counterparty, who may be paid more than once.
        Index(
            "uq_reward_user_action_reference",
            "user_id",
            "action_type",
            "reference_id",
            unique=True,
            postgresql_where=text("action_type <> 'transfer'"),
            sqlite_where=text("action_type <> 'transfer'"),
        ),
        Index("ix_reward_user_created", "user_id", "created_at"),
    )

    @staticmethod
    def compute_integrity_hash(
        *,
        user_id: str,
        action_type: RewardActionType,
        amount: int,
        reference_id: str | None,
        created_at: datetime,
    ) -> str:
        """Hash the write-once fields of a record."""
        stamp = as_utc(created_at).strftime("%Y-%m-%dT%H:%M:%S.%f")
        data = f"{user_id}:{action_type.value}:{amount}:{reference_id or ''}:{stamp}"
        return hashlib.sha256(data.encode()).hexdigest()

    def verify_integrity(self) -> bool:
        """Check that no write-once field changed since insert."""
        expected = self.compute_integrity_hash(
            user_id=self.user_id,
            action_type=self.action_type,
            amount=self.amount,
            reference_id=self.reference_id,
            created_at=self.created_at,
        )
        return expected == self.integrity_hash

    def __repr__(self) -> str:
        return (
            f"<RewardRecord user={self.user_id} action={self.action_type.value} "
            f"amount={self.amount:+} status={self.status.value}>"
        )


@dataclass(frozen=True)
class RewardPolicy:
    """Reward amount for one action: fixed, or a uniform random integer in a range."""

    min_amount: int
    max_amount: int
    description: str
    claimable: bool = True

    @classmethod
    def fixed(cls, amount: int, description: str, *, claimable: bool = True) -> RewardPolicy:
        return cls(amount, amount, description, claimable)

    @classmethod
    def ranged(
        cls, min_amount: int, max_amount: int, description: str, *, claimable: bool = True
    ) -> RewardPolicy:
        if min_amount > max_amount:
            raise ValueError("min_amount must not exceed max_amount")
        return cls(min_amount, max_amount, description, claimable)

    @property
    def is_range(self) -> bool:
        return self.min_amount != self.max_amount

    def draw(self, rng: random.Random | None = None) -> int:
        if not self.is_range:
            return self.min_amount
        return (rng or random).randint(self.min_amount, self.max_amount)


# Non-claimable policies are only granted by the engine itself (bonuses)
EARNING_POLICIES: dict[RewardActionType, RewardPolicy] = {
    RewardActionType.POST_CREATE: RewardPolicy.fixed(5, "Created a post"),
    RewardActionType.POST_COMMENT: RewardPolicy.fixed(2, "Commented on a post"),
    RewardActionType.POST_LIKE: RewardPolicy.fixed(1, "Liked a post"),
    RewardActionType.POST_SHARE: RewardPolicy.fixed(3, "Shared a post"),
    RewardActionType.BLOG_CREATE: RewardPolicy.fixed(25, "Published a blog"),
    RewardActionType.NFT_MINT: RewardPolicy.fixed(10, "Minted an NFT"),
    RewardActionType.AI_CONTENT_GENERATION: RewardPolicy.fixed(2, "Generated AI content"),
    RewardActionType.DAILY_CHECKIN: RewardPolicy.fixed(10, "Daily check-in"),
    RewardActionType.WEEK_STREAK: RewardPolicy.fixed(20, "7-day check-in streak", claimable=False),
    RewardActionType.MONTH_STREAK: RewardPolicy.fixed(100, "30-day check-in streak", claimable=False),
    RewardActionType.FIRST_POST: RewardPolicy.fixed(15, "First post bonus", claimable=False),
    RewardActionType.REFERRAL: RewardPolicy.fixed(50, "Referred a new member"),
    RewardActionType.SIGNUP: RewardPolicy.ranged(50, 200, "Welcome bonus"),
    RewardActionType.PROFILE_COMPLETE: RewardPolicy.fixed(10, "Completed profile"),
    RewardActionType.EMAIL_VERIFY: RewardPolicy.fixed(5, "Verified email"),
}

# Max rewarded events per UTC day
DAILY_LIMITS: dict[RewardActionType, int] = {
    RewardActionType.POST_LIKE: 50,
    RewardActionType.POST_COMMENT: 20,
    RewardActionType.POST_SHARE: 10,
    RewardActionType.AI_CONTENT_GENERATION: 20,
    RewardActionType.DAILY_CHECKIN: 1,
}

# streak length divisor -> bonus action
STREAK_BONUSES: dict[int, RewardActionType] = {
    7: RewardActionType.WEEK_STREAK,
    30: RewardActionType.MONTH_STREAK,
}
